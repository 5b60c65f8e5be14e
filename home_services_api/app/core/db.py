"""
SQLite database integration and simple migration system.

This module provides functions for obtaining a database connection
(``get_connection``), applying migrations on application start
(``init_db``) and a few helpers shared by the services for the storage
formats used in the tables:

* timestamps are stored as naive UTC ISO-8601 strings
  (``YYYY-MM-DDTHH:MM:SS``) so that string comparison orders them
  correctly;
* list and dict columns (addresses, tags, availability, ...) are stored
  as JSON text.

Applied migration versions are recorded in the ``migrations`` table and
new migrations run in order.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from .config import settings

logger = logging.getLogger(__name__)

# SQLite expression producing the same timestamp format as ``to_db_datetime``.
SQL_NOW = "strftime('%Y-%m-%dT%H:%M:%S', 'now')"


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    If ``settings.database_url`` is an absolute path, use it directly.
    Otherwise resolve it relative to the project root.
    """
    db_url = settings.database_url
    if os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent  # home_services_api/
    return str((base_dir / db_url).resolve())


def get_connection() -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    Rows are returned as ``sqlite3.Row`` objects so columns can be read
    by name.  Foreign key enforcement is switched on per connection.
    """
    conn = sqlite3.connect(get_database_path())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor() -> Iterator[sqlite3.Cursor]:
    """Context manager that yields a cursor, commits on success and closes the connection."""
    conn = get_connection()
    try:
        yield conn.cursor()
        conn.commit()
    finally:
        conn.close()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_db_datetime(value: datetime) -> str:
    """Serialize a datetime for storage, converting aware values to UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat()


def from_db_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace(" ", "T"))


def dump_json(value: Any) -> Optional[str]:
    return None if value is None else json.dumps(value)


def load_json(value: Optional[str], default: Any = None) -> Any:
    """Deserialize a JSON column, returning ``default`` for NULL or corrupt data."""
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Could not decode JSON column value %r", value[:80])
        return default


MIGRATIONS: list[tuple[int, str]] = [
    # Migration 1: base schema
    (
        1,
        f"""
        CREATE TABLE IF NOT EXISTS roles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE
        );

        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            phone TEXT NOT NULL UNIQUE,
            password TEXT NOT NULL,
            role_id INTEGER NOT NULL DEFAULT 3,
            avatar TEXT,
            date_of_birth TEXT,
            gender TEXT,
            preferences TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            is_email_verified INTEGER NOT NULL DEFAULT 0,
            is_phone_verified INTEGER NOT NULL DEFAULT 0,
            email_verification_token TEXT,
            email_verification_expires TEXT,
            password_reset_token TEXT,
            password_reset_expires TEXT,
            phone_otp TEXT,
            phone_otp_expires TEXT,
            login_attempts INTEGER NOT NULL DEFAULT 0,
            lock_until TEXT,
            last_login TEXT,
            deactivated_at TEXT,
            deactivated_by TEXT,
            created_at TEXT DEFAULT ({SQL_NOW}),
            updated_at TEXT DEFAULT ({SQL_NOW}),
            FOREIGN KEY(role_id) REFERENCES roles(id)
        );

        CREATE TABLE IF NOT EXISTS user_addresses (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            type TEXT NOT NULL DEFAULT 'home',
            street TEXT NOT NULL,
            city TEXT NOT NULL,
            state TEXT NOT NULL,
            pincode TEXT NOT NULL,
            country TEXT NOT NULL DEFAULT 'India',
            landmark TEXT,
            is_default INTEGER NOT NULL DEFAULT 0,
            created_at TEXT DEFAULT ({SQL_NOW}),
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS services (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            category TEXT NOT NULL,
            subcategory TEXT,
            description TEXT NOT NULL,
            long_description TEXT,
            base_price REAL NOT NULL,
            price_unit TEXT NOT NULL DEFAULT 'fixed',
            duration INTEGER NOT NULL,
            tags TEXT,
            requirements TEXT,
            images TEXT,
            is_active INTEGER NOT NULL DEFAULT 1,
            popularity INTEGER NOT NULL DEFAULT 0,
            average_rating REAL NOT NULL DEFAULT 0,
            total_reviews INTEGER NOT NULL DEFAULT 0,
            created_at TEXT DEFAULT ({SQL_NOW}),
            updated_at TEXT DEFAULT ({SQL_NOW})
        );

        CREATE TABLE IF NOT EXISTS providers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL UNIQUE,
            experience INTEGER NOT NULL DEFAULT 0,
            hourly_rate REAL NOT NULL,
            description TEXT,
            skills TEXT,
            service_cities TEXT,
            max_distance INTEGER NOT NULL DEFAULT 25,
            availability TEXT,
            is_verified INTEGER NOT NULL DEFAULT 0,
            is_available INTEGER NOT NULL DEFAULT 1,
            auto_accept_bookings INTEGER NOT NULL DEFAULT 0,
            rating REAL NOT NULL DEFAULT 0,
            total_reviews INTEGER NOT NULL DEFAULT 0,
            total_bookings INTEGER NOT NULL DEFAULT 0,
            completed_bookings INTEGER NOT NULL DEFAULT 0,
            verification_notes TEXT,
            verified_at TEXT,
            created_at TEXT DEFAULT ({SQL_NOW}),
            updated_at TEXT DEFAULT ({SQL_NOW}),
            FOREIGN KEY(user_id) REFERENCES users(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS provider_services (
            provider_id INTEGER NOT NULL,
            service_id INTEGER NOT NULL,
            PRIMARY KEY (provider_id, service_id),
            FOREIGN KEY(provider_id) REFERENCES providers(id) ON DELETE CASCADE,
            FOREIGN KEY(service_id) REFERENCES services(id)
        );

        CREATE TABLE IF NOT EXISTS bookings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            booking_number TEXT NOT NULL UNIQUE,
            customer_id INTEGER NOT NULL,
            provider_id INTEGER NOT NULL,
            service_id INTEGER NOT NULL,
            scheduled_date TEXT NOT NULL,
            estimated_duration INTEGER NOT NULL,
            address TEXT NOT NULL,
            contact_phone TEXT NOT NULL,
            special_instructions TEXT,
            status TEXT NOT NULL DEFAULT 'pending',
            base_price REAL NOT NULL,
            tax REAL NOT NULL DEFAULT 0,
            total_amount REAL NOT NULL,
            payment_status TEXT NOT NULL DEFAULT 'pending',
            payment_method TEXT,
            transaction_id TEXT,
            paid_amount REAL,
            paid_at TEXT,
            refund_transaction_id TEXT,
            refund_amount REAL,
            refunded_at TEXT,
            cancelled_by TEXT,
            cancellation_reason TEXT,
            cancellation_date TEXT,
            cancellation_refund_amount REAL,
            work_start_time TEXT,
            work_end_time TEXT,
            actual_duration INTEGER,
            work_summary TEXT,
            created_at TEXT DEFAULT ({SQL_NOW}),
            updated_at TEXT DEFAULT ({SQL_NOW}),
            FOREIGN KEY(customer_id) REFERENCES users(id),
            FOREIGN KEY(provider_id) REFERENCES providers(id),
            FOREIGN KEY(service_id) REFERENCES services(id)
        );

        CREATE TABLE IF NOT EXISTS booking_status_history (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            booking_id INTEGER NOT NULL,
            status TEXT NOT NULL,
            changed_by INTEGER,
            reason TEXT,
            comments TEXT,
            changed_at TEXT DEFAULT ({SQL_NOW}),
            FOREIGN KEY(booking_id) REFERENCES bookings(id) ON DELETE CASCADE,
            FOREIGN KEY(changed_by) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS reviews (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            booking_id INTEGER NOT NULL UNIQUE,
            customer_id INTEGER NOT NULL,
            provider_id INTEGER NOT NULL,
            service_id INTEGER NOT NULL,
            rating INTEGER NOT NULL,
            comment TEXT,
            aspects TEXT,
            images TEXT,
            is_anonymous INTEGER NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'active',
            report_count INTEGER NOT NULL DEFAULT 0,
            provider_response TEXT,
            response_date TEXT,
            moderated_by INTEGER,
            created_at TEXT DEFAULT ({SQL_NOW}),
            updated_at TEXT DEFAULT ({SQL_NOW}),
            FOREIGN KEY(booking_id) REFERENCES bookings(id),
            FOREIGN KEY(customer_id) REFERENCES users(id),
            FOREIGN KEY(provider_id) REFERENCES providers(id),
            FOREIGN KEY(service_id) REFERENCES services(id)
        );

        CREATE TABLE IF NOT EXISTS review_reports (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            review_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            reason TEXT NOT NULL,
            description TEXT,
            created_at TEXT DEFAULT ({SQL_NOW}),
            UNIQUE(review_id, user_id),
            FOREIGN KEY(review_id) REFERENCES reviews(id) ON DELETE CASCADE,
            FOREIGN KEY(user_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS payments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            booking_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL,
            order_id TEXT UNIQUE,
            gateway_payment_id TEXT,
            payment_link_id TEXT,
            amount REAL NOT NULL,
            currency TEXT NOT NULL DEFAULT 'INR',
            status TEXT NOT NULL DEFAULT 'created',
            method TEXT,
            created_at TEXT DEFAULT ({SQL_NOW}),
            updated_at TEXT DEFAULT ({SQL_NOW}),
            FOREIGN KEY(booking_id) REFERENCES bookings(id),
            FOREIGN KEY(user_id) REFERENCES users(id)
        );

        CREATE TABLE IF NOT EXISTS notifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            recipient_id INTEGER NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            data TEXT,
            priority TEXT NOT NULL DEFAULT 'normal',
            channels TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            scheduled_for TEXT,
            sent_at TEXT,
            delivered_at TEXT,
            read_at TEXT,
            expires_at TEXT,
            delivery_errors TEXT,
            created_at TEXT DEFAULT ({SQL_NOW}),
            FOREIGN KEY(recipient_id) REFERENCES users(id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            type TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS audit_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER,
            action TEXT NOT NULL,
            object_type TEXT,
            object_id INTEGER,
            timestamp TEXT DEFAULT ({SQL_NOW}),
            details TEXT
        );
        """,
    ),
    # Migration 2: indices for the common lookups
    (
        2,
        """
        CREATE INDEX IF NOT EXISTS idx_bookings_customer ON bookings(customer_id, status);
        CREATE INDEX IF NOT EXISTS idx_bookings_provider ON bookings(provider_id, status);
        CREATE INDEX IF NOT EXISTS idx_bookings_scheduled ON bookings(scheduled_date);
        CREATE INDEX IF NOT EXISTS idx_reviews_provider ON reviews(provider_id, status);
        CREATE INDEX IF NOT EXISTS idx_reviews_service ON reviews(service_id, status);
        CREATE INDEX IF NOT EXISTS idx_services_category ON services(category, is_active);
        CREATE INDEX IF NOT EXISTS idx_notifications_recipient ON notifications(recipient_id, status);
        CREATE INDEX IF NOT EXISTS idx_notifications_scheduled ON notifications(status, scheduled_for);
        CREATE INDEX IF NOT EXISTS idx_payments_booking ON payments(booking_id);
        """,
    ),
]

# Platform settings seeded on first start: key -> (value, type).
DEFAULT_SETTINGS: dict[str, tuple[str, str]] = {
    "platform_fee_percentage": ("10.0", "float"),
    "max_booking_days": ("30", "int"),
    "review_edit_window": ("7", "int"),
    "maintenance_mode": ("0", "bool"),
    "allow_new_registrations": ("1", "bool"),
}


def init_db() -> None:
    """Initialise the database and apply pending migrations.

    Creates the ``migrations`` table if it does not exist, checks the
    current schema version and applies any newer entries from
    ``MIGRATIONS``.  Default roles and platform settings are inserted
    when missing.
    """
    with get_cursor() as cursor:
        cursor.execute("CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)")
        row = cursor.execute("SELECT MAX(version) AS version FROM migrations").fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        for version, sql in MIGRATIONS:
            if version > current_version:
                cursor.executescript(sql)
                cursor.execute("INSERT INTO migrations (version) VALUES (?)", (version,))
                logger.info("Applied database migration %s", version)
                current_version = version

        # Role ids are referenced by ``require_roles``: admin (1), provider (2), customer (3)
        for role_id, name in ((1, "admin"), (2, "provider"), (3, "customer")):
            cursor.execute("INSERT OR IGNORE INTO roles (id, name) VALUES (?, ?)", (role_id, name))
        for key, (value, type_str) in DEFAULT_SETTINGS.items():
            cursor.execute(
                "INSERT OR IGNORE INTO settings (key, value, type) VALUES (?, ?, ?)",
                (key, value, type_str),
            )
