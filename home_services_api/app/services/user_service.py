"""
Business logic for user accounts and authentication.

Covers registration, login with brute-force lockout, token refresh,
password changes and resets, e-mail and phone verification, profile
and preference updates, saved addresses, self-service deactivation and
the administrator's user management.

Passwords are hashed with PBKDF2 (see ``core.security``).  Five
consecutive failed logins lock an account for two hours.
"""

import logging
import sqlite3
from datetime import timedelta
from typing import Any, Dict, List, Optional

from home_services_api.app.core.db import dump_json, get_connection, load_json, to_db_datetime, utcnow
from home_services_api.app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ServiceUnavailableError,
)
from home_services_api.app.core.security import (
    ROLE_CUSTOMER,
    ROLE_IDS,
    ROLE_NAMES,
    create_token_pair,
    decode_refresh_token,
    generate_otp,
    generate_token,
    hash_password,
    hash_token,
    verify_password,
)
from home_services_api.app.schemas.common import Pagination
from home_services_api.app.schemas.user import (
    AddressCreate,
    AddressRead,
    AdminUserUpdate,
    PreferencesUpdate,
    UserCreate,
    UserPreferences,
    UserProfileUpdate,
    UserRead,
)
from home_services_api.app.services.audit_service import AuditService
from home_services_api.app.services.email_service import EmailService
from home_services_api.app.services.settings_service import SettingsService
from home_services_api.app.services.sms_service import SMSService

logger = logging.getLogger(__name__)

MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(hours=2)
EMAIL_VERIFICATION_TTL = timedelta(hours=24)
PASSWORD_RESET_TTL = timedelta(minutes=10)
PHONE_OTP_TTL = timedelta(minutes=10)


class UserService:
    """Service for user accounts."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _load_addresses(cursor: sqlite3.Cursor, user_id: int) -> List[AddressRead]:
        rows = cursor.execute(
            "SELECT * FROM user_addresses WHERE user_id = ? ORDER BY is_default DESC, id",
            (user_id,),
        ).fetchall()
        return [
            AddressRead(
                id=row["id"],
                type=row["type"],
                street=row["street"],
                city=row["city"],
                state=row["state"],
                pincode=row["pincode"],
                country=row["country"],
                landmark=row["landmark"],
                is_default=bool(row["is_default"]),
            )
            for row in rows
        ]

    @classmethod
    def _row_to_read(cls, cursor: sqlite3.Cursor, row: sqlite3.Row) -> UserRead:
        return UserRead(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            phone=row["phone"],
            role=ROLE_NAMES.get(row["role_id"], "customer"),
            avatar=row["avatar"],
            date_of_birth=row["date_of_birth"],
            gender=row["gender"],
            is_active=bool(row["is_active"]),
            is_email_verified=bool(row["is_email_verified"]),
            is_phone_verified=bool(row["is_phone_verified"]),
            preferences=UserPreferences(**(load_json(row["preferences"], {}) or {})),
            addresses=cls._load_addresses(cursor, row["id"]),
            last_login=row["last_login"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _fetch_row(cursor: sqlite3.Cursor, user_id: int) -> sqlite3.Row:
        row = cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if not row:
            raise NotFoundError(f"User {user_id} not found")
        return row

    @staticmethod
    def _ensure_phone_free(cursor: sqlite3.Cursor, phone: str, user_id: Optional[int] = None) -> None:
        row = cursor.execute("SELECT id FROM users WHERE phone = ?", (phone,)).fetchone()
        if row and row["id"] != user_id:
            raise ConflictError("Phone number is already registered")

    @classmethod
    async def get_user(cls, user_id: int) -> UserRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            return cls._row_to_read(cursor, cls._fetch_row(cursor, user_id))
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    @classmethod
    async def register(cls, data: UserCreate) -> Dict[str, Any]:
        """Create a customer account and return the user with a token pair.

        Raises ``PermissionDeniedError`` when registrations are switched
        off, ``ServiceUnavailableError`` during maintenance and
        ``ConflictError`` when the e-mail or phone is taken.
        A verification link (valid 24 hours) and a welcome e-mail are
        sent after the account is stored.
        """
        if not await SettingsService.get_value("allow_new_registrations", True):
            raise PermissionDeniedError("New registrations are currently disabled")
        if await SettingsService.get_value("maintenance_mode", False):
            raise ServiceUnavailableError("The platform is under maintenance")
        email = data.email.lower()
        verification_token = generate_token()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            if cursor.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone():
                raise ConflictError("Email is already registered")
            cls._ensure_phone_free(cursor, data.phone)
            cursor.execute(
                """
                INSERT INTO users (name, email, phone, password, role_id, preferences,
                                   email_verification_token, email_verification_expires)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data.name,
                    email,
                    data.phone,
                    hash_password(data.password),
                    ROLE_CUSTOMER,
                    dump_json(UserPreferences().model_dump()),
                    hash_token(verification_token),
                    to_db_datetime(utcnow() + EMAIL_VERIFICATION_TTL),
                ),
            )
            user_id = cursor.lastrowid
            conn.commit()
            user = cls._row_to_read(cursor, cls._fetch_row(cursor, user_id))
        finally:
            conn.close()
        logger.info("User %s registered", user_id)
        await AuditService.log(user_id, "register", "user", user_id)
        EmailService.send_welcome_email(user.email, user.name)
        EmailService.send_verification_email(user.email, user.name, verification_token)
        return {"user": user, **create_token_pair(user.email)}

    @classmethod
    async def login(cls, email: str, password: str) -> Dict[str, Any]:
        """Authenticate by e-mail and password and return the user with a token pair.

        A wrong password increments ``login_attempts``; reaching
        ``MAX_LOGIN_ATTEMPTS`` locks the account for ``LOCK_DURATION``.
        Once a lock has expired the counter starts again from zero.
        """
        now = utcnow()
        now_str = to_db_datetime(now)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT * FROM users WHERE email = ?", (email.lower(),)).fetchone()
            if not row:
                raise AuthenticationError("Invalid login credentials")
            lock_active = row["lock_until"] is not None and row["lock_until"] > now_str
            if lock_active:
                raise AuthenticationError(
                    "Account temporarily locked due to too many failed login attempts. Try again later."
                )
            if not row["is_active"]:
                raise AuthenticationError("Invalid login credentials")
            if not verify_password(password, row["password"]):
                attempts = (0 if row["lock_until"] else row["login_attempts"]) + 1
                lock_until = None
                if attempts >= MAX_LOGIN_ATTEMPTS:
                    lock_until = to_db_datetime(now + LOCK_DURATION)
                    logger.warning("User %s locked after %s failed login attempts", row["id"], attempts)
                cursor.execute(
                    "UPDATE users SET login_attempts = ?, lock_until = ? WHERE id = ?",
                    (attempts, lock_until, row["id"]),
                )
                conn.commit()
                raise AuthenticationError("Invalid login credentials")
            cursor.execute(
                "UPDATE users SET login_attempts = 0, lock_until = NULL, last_login = ? WHERE id = ?",
                (now_str, row["id"]),
            )
            conn.commit()
            user = cls._row_to_read(cursor, cls._fetch_row(cursor, row["id"]))
        finally:
            conn.close()
        return {"user": user, **create_token_pair(user.email)}

    @classmethod
    async def refresh_tokens(cls, refresh_token: str) -> Dict[str, str]:
        payload = decode_refresh_token(refresh_token)
        if not payload:
            raise AuthenticationError("Invalid or expired refresh token")
        conn = get_connection()
        try:
            row = conn.execute(
                "SELECT email, is_active FROM users WHERE email = ?",
                (payload.get("sub"),),
            ).fetchone()
        finally:
            conn.close()
        if not row or not row["is_active"]:
            raise AuthenticationError("Invalid or expired refresh token")
        return create_token_pair(row["email"])

    # ------------------------------------------------------------------
    # Passwords and verification
    # ------------------------------------------------------------------

    @classmethod
    async def change_password(cls, user_id: int, current_password: str, new_password: str) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, user_id)
            if not verify_password(current_password, row["password"]):
                raise AuthenticationError("Current password is incorrect")
            cursor.execute(
                "UPDATE users SET password = ?, updated_at = ? WHERE id = ?",
                (hash_password(new_password), to_db_datetime(utcnow()), user_id),
            )
            conn.commit()
        finally:
            conn.close()
        await AuditService.log(user_id, "change_password", "user", user_id)

    @classmethod
    async def forgot_password(cls, email: str) -> None:
        """Store a hashed reset token valid for ten minutes and e-mail the link."""
        token = generate_token()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT id, name, email FROM users WHERE email = ?", (email.lower(),)).fetchone()
            if not row:
                raise NotFoundError("No user found with that email address")
            cursor.execute(
                "UPDATE users SET password_reset_token = ?, password_reset_expires = ? WHERE id = ?",
                (hash_token(token), to_db_datetime(utcnow() + PASSWORD_RESET_TTL), row["id"]),
            )
            conn.commit()
        finally:
            conn.close()
        EmailService.send_password_reset_email(row["email"], row["name"], token)

    @classmethod
    async def reset_password(cls, token: str, new_password: str) -> Dict[str, Any]:
        now = to_db_datetime(utcnow())
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                "SELECT id FROM users WHERE password_reset_token = ? AND password_reset_expires > ?",
                (hash_token(token), now),
            ).fetchone()
            if not row:
                raise ValueError("Token is invalid or has expired")
            cursor.execute(
                """
                UPDATE users
                SET password = ?, password_reset_token = NULL, password_reset_expires = NULL,
                    login_attempts = 0, lock_until = NULL, updated_at = ?
                WHERE id = ?
                """,
                (hash_password(new_password), now, row["id"]),
            )
            conn.commit()
            user = cls._row_to_read(cursor, cls._fetch_row(cursor, row["id"]))
        finally:
            conn.close()
        await AuditService.log(user.id, "reset_password", "user", user.id)
        return {"user": user, **create_token_pair(user.email)}

    @classmethod
    async def verify_email(cls, token: str) -> None:
        now = to_db_datetime(utcnow())
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE users
                SET is_email_verified = 1, email_verification_token = NULL, email_verification_expires = NULL
                WHERE email_verification_token = ? AND email_verification_expires > ?
                """,
                (hash_token(token), now),
            )
            if cursor.rowcount == 0:
                raise ValueError("Token is invalid or has expired")
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def send_phone_otp(cls, user_id: int) -> None:
        """Generate a six-digit OTP valid for ten minutes and text it to the user's phone."""
        otp = generate_otp()
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, user_id)
            if row["is_phone_verified"]:
                raise ValueError("Phone number is already verified")
            cursor.execute(
                "UPDATE users SET phone_otp = ?, phone_otp_expires = ? WHERE id = ?",
                (hash_token(otp), to_db_datetime(utcnow() + PHONE_OTP_TTL), user_id),
            )
            conn.commit()
        finally:
            conn.close()
        SMSService.send_otp(row["phone"], otp)

    @classmethod
    async def verify_phone(cls, user_id: int, otp: str) -> None:
        now = to_db_datetime(utcnow())
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, user_id)
            if row["is_phone_verified"]:
                raise ValueError("Phone number is already verified")
            if not row["phone_otp"] or row["phone_otp_expires"] <= now or row["phone_otp"] != hash_token(otp):
                raise ValueError("Invalid or expired OTP")
            cursor.execute(
                "UPDATE users SET is_phone_verified = 1, phone_otp = NULL, phone_otp_expires = NULL WHERE id = ?",
                (user_id,),
            )
            conn.commit()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Profile, preferences and addresses
    # ------------------------------------------------------------------

    @classmethod
    async def update_profile(cls, user_id: int, data: UserProfileUpdate) -> UserRead:
        changes = data.model_dump(exclude_unset=True)
        return await cls._apply_changes(user_id, changes, actor_id=user_id)

    @classmethod
    async def _apply_changes(cls, user_id: int, changes: Dict[str, Any], actor_id: Optional[int]) -> UserRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cls._fetch_row(cursor, user_id)
            for column in ("name", "phone", "role", "is_active", "is_email_verified", "is_phone_verified"):
                if column in changes and changes[column] is None:
                    changes.pop(column)
            if changes.get("phone"):
                cls._ensure_phone_free(cursor, changes["phone"], user_id)
            if "role" in changes:
                changes["role_id"] = ROLE_IDS[changes.pop("role")]
            if changes.get("date_of_birth") is not None:
                changes["date_of_birth"] = changes["date_of_birth"].isoformat()
            for flag in ("is_active", "is_email_verified", "is_phone_verified"):
                if flag in changes:
                    changes[flag] = int(bool(changes[flag]))
            if changes:
                changes["updated_at"] = to_db_datetime(utcnow())
                assignments = ", ".join(f"{column} = ?" for column in changes)
                cursor.execute(
                    f"UPDATE users SET {assignments} WHERE id = ?",
                    tuple(changes.values()) + (user_id,),
                )
                conn.commit()
            user = cls._row_to_read(cursor, cls._fetch_row(cursor, user_id))
        finally:
            conn.close()
        if changes:
            await AuditService.log(actor_id, "update", "user", user_id, details={"fields": sorted(changes)})
        return user

    @classmethod
    async def update_preferences(cls, user_id: int, data: PreferencesUpdate) -> UserPreferences:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, user_id)
            current = UserPreferences(**(load_json(row["preferences"], {}) or {})).model_dump()
            changes = data.model_dump(exclude_unset=True, exclude_none=True)
            # Notification flags are merged one by one.
            current["notifications"].update(changes.pop("notifications", {}))
            current.update(changes)
            preferences = UserPreferences(**current)
            cursor.execute(
                "UPDATE users SET preferences = ?, updated_at = ? WHERE id = ?",
                (dump_json(preferences.model_dump()), to_db_datetime(utcnow()), user_id),
            )
            conn.commit()
            return preferences
        finally:
            conn.close()

    @classmethod
    async def add_address(cls, user_id: int, data: AddressCreate) -> List[AddressRead]:
        """Save an address.  The first address, or one flagged default, becomes the default."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cls._fetch_row(cursor, user_id)
            has_addresses = cursor.execute(
                "SELECT 1 FROM user_addresses WHERE user_id = ? LIMIT 1", (user_id,)
            ).fetchone()
            is_default = data.is_default or not has_addresses
            if is_default:
                cursor.execute("UPDATE user_addresses SET is_default = 0 WHERE user_id = ?", (user_id,))
            cursor.execute(
                """
                INSERT INTO user_addresses (user_id, type, street, city, state, pincode, country, landmark, is_default)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    data.type,
                    data.street,
                    data.city,
                    data.state,
                    data.pincode,
                    data.country,
                    data.landmark,
                    int(is_default),
                ),
            )
            conn.commit()
            return cls._load_addresses(cursor, user_id)
        finally:
            conn.close()

    @classmethod
    async def update_address(cls, user_id: int, address_id: int, data: AddressCreate) -> List[AddressRead]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                "SELECT id FROM user_addresses WHERE id = ? AND user_id = ?",
                (address_id, user_id),
            ).fetchone()
            if not row:
                raise NotFoundError(f"Address {address_id} not found")
            if data.is_default:
                cursor.execute("UPDATE user_addresses SET is_default = 0 WHERE user_id = ?", (user_id,))
            cursor.execute(
                """
                UPDATE user_addresses
                SET type = ?, street = ?, city = ?, state = ?, pincode = ?, country = ?, landmark = ?,
                    is_default = CASE WHEN ? THEN 1 ELSE is_default END
                WHERE id = ?
                """,
                (
                    data.type,
                    data.street,
                    data.city,
                    data.state,
                    data.pincode,
                    data.country,
                    data.landmark,
                    int(data.is_default),
                    address_id,
                ),
            )
            conn.commit()
            return cls._load_addresses(cursor, user_id)
        finally:
            conn.close()

    @classmethod
    async def delete_address(cls, user_id: int, address_id: int) -> List[AddressRead]:
        """Remove an address; if it was the default, the oldest remaining one takes over."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                "SELECT is_default FROM user_addresses WHERE id = ? AND user_id = ?",
                (address_id, user_id),
            ).fetchone()
            if not row:
                raise NotFoundError(f"Address {address_id} not found")
            cursor.execute("DELETE FROM user_addresses WHERE id = ?", (address_id,))
            if row["is_default"]:
                cursor.execute(
                    "UPDATE user_addresses SET is_default = 1 WHERE id = "
                    "(SELECT id FROM user_addresses WHERE user_id = ? ORDER BY id LIMIT 1)",
                    (user_id,),
                )
            conn.commit()
            return cls._load_addresses(cursor, user_id)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Account status
    # ------------------------------------------------------------------

    @classmethod
    async def deactivate(cls, user_id: int) -> None:
        """Soft-delete the caller's own account; it can be reactivated with the password."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, user_id)
            cursor.execute(
                "UPDATE users SET is_active = 0, deactivated_at = ?, deactivated_by = 'self' WHERE id = ?",
                (to_db_datetime(utcnow()), user_id),
            )
            conn.commit()
        finally:
            conn.close()
        await AuditService.log(user_id, "deactivate", "user", user_id)
        EmailService.send_account_status_email(row["email"], row["name"], is_active=False)

    @classmethod
    async def reactivate(cls, email: str, password: str) -> Dict[str, Any]:
        """Reactivate a self-deactivated account after checking its credentials.

        Accounts deactivated by an administrator stay inactive.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT * FROM users WHERE email = ?", (email.lower(),)).fetchone()
            if not row or not verify_password(password, row["password"]):
                raise AuthenticationError("Invalid login credentials")
            if row["is_active"]:
                raise ValueError("Account is already active")
            if row["deactivated_by"] != "self":
                raise PermissionDeniedError("Account was deactivated by an administrator")
            cursor.execute(
                "UPDATE users SET is_active = 1, deactivated_at = NULL, deactivated_by = NULL, "
                "last_login = ? WHERE id = ?",
                (to_db_datetime(utcnow()), row["id"]),
            )
            conn.commit()
            user = cls._row_to_read(cursor, cls._fetch_row(cursor, row["id"]))
        finally:
            conn.close()
        await AuditService.log(user.id, "reactivate", "user", user.id)
        EmailService.send_welcome_email(user.email, user.name)
        return {"user": user, **create_token_pair(user.email)}

    @classmethod
    async def get_user_stats(cls, user_id: int) -> Dict[str, Any]:
        """Activity summary for the user's own dashboard."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, user_id)
            status_rows = cursor.execute(
                "SELECT status, COUNT(*) AS count FROM bookings WHERE customer_id = ? GROUP BY status",
                (user_id,),
            ).fetchall()
            spent = cursor.execute(
                "SELECT COALESCE(SUM(paid_amount), 0) FROM bookings "
                "WHERE customer_id = ? AND payment_status IN ('paid', 'partially_refunded')",
                (user_id,),
            ).fetchone()[0]
            reviews = cursor.execute(
                "SELECT COUNT(*) FROM reviews WHERE customer_id = ?", (user_id,)
            ).fetchone()[0]
            favourite = cursor.execute(
                """
                SELECT s.id, s.name, COUNT(*) AS bookings
                FROM bookings b JOIN services s ON s.id = b.service_id
                WHERE b.customer_id = ?
                GROUP BY s.id ORDER BY bookings DESC, s.name LIMIT 3
                """,
                (user_id,),
            ).fetchall()
        finally:
            conn.close()
        by_status = {r["status"]: r["count"] for r in status_rows}
        return {
            "member_since": row["created_at"],
            "last_login": row["last_login"],
            "total_bookings": sum(by_status.values()),
            "bookings_by_status": by_status,
            "completed_bookings": by_status.get("completed", 0),
            "total_spent": spent,
            "reviews_written": reviews,
            "favourite_services": [dict(r) for r in favourite],
        }

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @classmethod
    async def list_users(
        cls,
        page: int = 1,
        limit: int = 20,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Dict[str, Any]:
        where_clauses: List[str] = []
        params: List[Any] = []
        if role:
            where_clauses.append("role_id = ?")
            params.append(ROLE_IDS[role])
        if is_active is not None:
            where_clauses.append("is_active = ?")
            params.append(int(is_active))
        if search:
            where_clauses.append("(name LIKE ? OR email LIKE ? OR phone LIKE ?)")
            params.extend([f"%{search}%"] * 3)
        where_sql = (" WHERE " + " AND ".join(where_clauses)) if where_clauses else ""
        sort_field = sort_by if sort_by in {"created_at", "name", "email", "last_login"} else "created_at"
        sort_order = order.upper() if order and order.lower() in {"asc", "desc"} else "DESC"
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute(f"SELECT COUNT(*) FROM users{where_sql}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM users{where_sql} ORDER BY {sort_field} {sort_order}, id DESC LIMIT ? OFFSET ?",
                tuple(params + [limit, (page - 1) * limit]),
            ).fetchall()
            items = [cls._row_to_read(cursor, row) for row in rows]
        finally:
            conn.close()
        return {"items": items, "pagination": Pagination.build(page, limit, total)}

    @classmethod
    async def admin_update_user(cls, user_id: int, data: AdminUserUpdate, admin_id: int) -> UserRead:
        changes = data.model_dump(exclude_unset=True)
        demoting = changes.get("role") not in (None, "admin")
        if user_id == admin_id and (changes.get("is_active") is False or demoting):
            raise ValueError("Administrators cannot deactivate or demote themselves")
        if changes.get("is_active") is False:
            changes["deactivated_at"] = to_db_datetime(utcnow())
            changes["deactivated_by"] = "admin"
        elif changes.get("is_active") is True:
            changes["deactivated_at"] = None
            changes["deactivated_by"] = None
        return await cls._apply_changes(user_id, changes, actor_id=admin_id)

    @classmethod
    async def set_user_status(cls, user_id: int, is_active: bool, admin_id: int, reason: Optional[str] = None) -> UserRead:
        """Activate or deactivate an account on behalf of an administrator and e-mail the owner."""
        if user_id == admin_id and not is_active:
            raise ValueError("Administrators cannot deactivate themselves")
        changes: Dict[str, Any] = {
            "is_active": is_active,
            "deactivated_at": None if is_active else to_db_datetime(utcnow()),
            "deactivated_by": None if is_active else "admin",
        }
        user = await cls._apply_changes(user_id, changes, actor_id=admin_id)
        EmailService.send_account_status_email(user.email, user.name, is_active, reason)
        return user

    @classmethod
    async def delete_user(cls, user_id: int, admin_id: int) -> None:
        """Hard-delete an account that has no booking or review history."""
        if user_id == admin_id:
            raise ValueError("Administrators cannot delete their own account")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cls._fetch_row(cursor, user_id)
            history = cursor.execute(
                """
                SELECT
                    (SELECT COUNT(*) FROM bookings WHERE customer_id = ?) +
                    (SELECT COUNT(*) FROM bookings b JOIN providers p ON p.id = b.provider_id WHERE p.user_id = ?) +
                    (SELECT COUNT(*) FROM reviews WHERE customer_id = ?)
                """,
                (user_id, user_id, user_id),
            ).fetchone()[0]
            if history:
                raise ConflictError("User has booking or review history; deactivate the account instead")
            cursor.execute("DELETE FROM users WHERE id = ?", (user_id,))
            conn.commit()
        finally:
            conn.close()
        logger.info("User %s deleted by admin %s", user_id, admin_id)
        await AuditService.log(admin_id, "delete", "user", user_id)

    @classmethod
    async def get_statistics(cls) -> Dict[str, Any]:
        """Platform-wide user counts for the admin dashboard."""
        month_start = utcnow().strftime("%Y-%m-01")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            overview = cursor.execute(
                """
                SELECT COUNT(*) AS total,
                       SUM(is_active) AS active,
                       SUM(is_email_verified) AS email_verified,
                       SUM(is_phone_verified) AS phone_verified,
                       SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END) AS new_this_month
                FROM users
                """,
                (month_start,),
            ).fetchone()
            by_role = cursor.execute(
                "SELECT role_id, COUNT(*) AS count FROM users GROUP BY role_id"
            ).fetchall()
            monthly = cursor.execute(
                """
                SELECT substr(created_at, 1, 7) AS month, COUNT(*) AS count
                FROM users
                WHERE created_at >= date('now', 'start of month', '-11 months')
                GROUP BY month ORDER BY month
                """
            ).fetchall()
        finally:
            conn.close()
        total = overview["total"] or 0
        active = overview["active"] or 0
        return {
            "total_users": total,
            "active_users": active,
            "inactive_users": total - active,
            "email_verified": overview["email_verified"] or 0,
            "phone_verified": overview["phone_verified"] or 0,
            "new_this_month": overview["new_this_month"] or 0,
            "by_role": {ROLE_NAMES.get(r["role_id"], str(r["role_id"])): r["count"] for r in by_role},
            "monthly_registrations": [dict(r) for r in monthly],
        }
