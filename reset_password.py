#!/usr/bin/env python3
"""
Reset a user's password in the Home Services SQLite database.

This script DOES NOT read or reveal any existing passwords. It simply sets a new password
hash (PBKDF2-HMAC-SHA256, format "salthex$hashhex") for the specified user email, clears
any login lockout and invalidates pending reset links.

Usage:
    python reset_password.py --email admin@homeservices.in --password "NewStrongPass!234"
    python reset_password.py --db ./home_services_api/home_services.db --email admin@homeservices.in

If --db is omitted, the path configured by DATABASE_URL is used.
If --password is omitted, you will be prompted to enter it securely.
"""

import argparse
import getpass
import os
import sqlite3
import sys

from home_services_api.app.core.db import get_database_path, to_db_datetime, utcnow
from home_services_api.app.core.security import hash_password


def main():
    ap = argparse.ArgumentParser(description="Reset a Home Services user password (SQLite).")
    ap.add_argument("--db", help="Path to SQLite DB file (defaults to the configured DATABASE_URL)")
    ap.add_argument("--email", required=True, help="User email to update")
    ap.add_argument("--password", help="New password. If omitted, you'll be prompted securely.")
    args = ap.parse_args()

    db_path = args.db or get_database_path()
    if not os.path.exists(db_path):
        print(f"[!] DB not found: {db_path}", file=sys.stderr)
        sys.exit(1)

    new_password = args.password or getpass.getpass("Enter NEW password: ")
    if len(new_password) < 6:
        print("[!] Password must be at least 6 characters.", file=sys.stderr)
        sys.exit(1)

    conn = sqlite3.connect(db_path)
    try:
        cur = conn.cursor()
        cur.execute("SELECT id FROM users WHERE email = ?", (args.email.lower(),))
        if not cur.fetchone():
            print(f"[!] No user found with email: {args.email}", file=sys.stderr)
            sys.exit(2)

        cur.execute(
            """
            UPDATE users
            SET password = ?, login_attempts = 0, lock_until = NULL,
                password_reset_token = NULL, password_reset_expires = NULL, updated_at = ?
            WHERE email = ?
            """,
            (hash_password(new_password), to_db_datetime(utcnow()), args.email.lower()),
        )
        conn.commit()
        print(f"[+] Password updated for user: {args.email}")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
