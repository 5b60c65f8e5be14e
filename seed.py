#!/usr/bin/env python3
"""
Populate the Home Services database with demo data.

Creates a small service catalogue, an administrator, a customer and a
verified provider offering two of the services.  Existing rows (matched
by e-mail or service name) are left untouched, so the script can be run
repeatedly.

Usage:
    python seed.py
    python seed.py --password "DemoPass!234"
"""

import argparse
import logging

from home_services_api.app.core.db import dump_json, get_cursor, init_db
from home_services_api.app.core.logging_config import setup_logging
from home_services_api.app.core.security import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_PROVIDER, hash_password

logger = logging.getLogger("seed")

SERVICES = [
    ("Deep Home Cleaning", "cleaning", "Full-home deep cleaning including kitchen and bathrooms", 2499, 240,
     ["deep-clean", "home"]),
    ("Bathroom Cleaning", "cleaning", "Scrubbing, descaling and disinfection of one bathroom", 499, 60,
     ["bathroom"]),
    ("Tap and Leak Repair", "plumbing", "Fixing leaking taps, pipes and fittings", 299, 45, ["leak", "tap"]),
    ("Fan Installation", "electrical", "Installation of a ceiling or wall fan", 349, 60, ["fan", "install"]),
    ("AC Servicing", "appliance-repair", "Split or window AC cleaning and gas check", 699, 90, ["ac", "service"]),
    ("Wall Painting", "painting", "Interior wall painting per room", 3999, 480, ["paint", "interior"]),
]

USERS = [
    ("Platform Admin", "admin@homeservices.in", "9000000001", ROLE_ADMIN),
    ("Asha Rao", "asha@example.com", "9000000002", ROLE_CUSTOMER),
    ("Ravi Kumar", "ravi@example.com", "9000000003", ROLE_PROVIDER),
]


def _ensure_user(cursor, name, email, phone, role_id, password_hash):
    row = cursor.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
    if row:
        return row["id"]
    cursor.execute(
        "INSERT INTO users (name, email, phone, password, role_id, is_email_verified, is_phone_verified) "
        "VALUES (?, ?, ?, ?, ?, 1, 1)",
        (name, email, phone, password_hash, role_id),
    )
    logger.info("Created user %s", email)
    return cursor.lastrowid


def main():
    ap = argparse.ArgumentParser(description="Seed the Home Services database with demo data.")
    ap.add_argument("--password", default="password123", help="Password set on the demo accounts")
    args = ap.parse_args()

    setup_logging("INFO")
    init_db()
    password_hash = hash_password(args.password)

    with get_cursor() as cursor:
        service_ids = []
        for name, category, description, price, duration, tags in SERVICES:
            row = cursor.execute("SELECT id FROM services WHERE name = ?", (name,)).fetchone()
            if row:
                service_ids.append(row["id"])
                continue
            cursor.execute(
                "INSERT INTO services (name, category, description, base_price, duration, tags) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (name, category, description, price, duration, dump_json(tags)),
            )
            service_ids.append(cursor.lastrowid)
            logger.info("Created service %s", name)

        user_ids = {email: _ensure_user(cursor, name, email, phone, role_id, password_hash)
                    for name, email, phone, role_id in USERS}

        provider_user_id = user_ids["ravi@example.com"]
        if not cursor.execute("SELECT id FROM providers WHERE user_id = ?", (provider_user_id,)).fetchone():
            cursor.execute(
                """
                INSERT INTO providers (user_id, experience, hourly_rate, description, skills, service_cities,
                                       is_verified, verified_at)
                VALUES (?, ?, ?, ?, ?, ?, 1, strftime('%Y-%m-%dT%H:%M:%S', 'now'))
                """,
                (
                    provider_user_id,
                    6,
                    400,
                    "Cleaning and plumbing professional serving Bengaluru.",
                    dump_json(["deep cleaning", "plumbing"]),
                    dump_json(["Bengaluru"]),
                ),
            )
            provider_id = cursor.lastrowid
            for service_id in service_ids[:3]:
                cursor.execute(
                    "INSERT INTO provider_services (provider_id, service_id) VALUES (?, ?)",
                    (provider_id, service_id),
                )
            logger.info("Created verified provider profile %s", provider_id)

    print(f"[+] Demo data ready. Accounts use the password: {args.password}")


if __name__ == "__main__":
    main()
