"""
Business logic for service provider profiles.

A user becomes a provider by registering a profile that lists the
catalogue services they offer.  Registration switches the user's role
to ``provider``; an administrator later verifies the profile.  Public
listings show only available providers, verified ones first.

The provider dashboard aggregates the provider's bookings: counts per
status, upcoming work and monthly earnings from completed, paid jobs.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from home_services_api.app.core.db import dump_json, get_connection, load_json, to_db_datetime, utcnow
from home_services_api.app.core.exceptions import ConflictError, NotFoundError
from home_services_api.app.core.security import ROLE_PROVIDER
from home_services_api.app.schemas.common import Pagination
from home_services_api.app.schemas.provider import (
    AvailabilityUpdate,
    ProviderProfileUpdate,
    ProviderRead,
    ProviderRegister,
    ProviderSettingsUpdate,
    WeeklyAvailability,
)
from home_services_api.app.schemas.service import ServiceSummary
from home_services_api.app.services.audit_service import AuditService
from home_services_api.app.services.email_service import EmailService
from home_services_api.app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

SORT_FIELDS = {"rating": "p.rating", "experience": "p.experience", "hourly_rate": "p.hourly_rate",
               "completed_bookings": "p.completed_bookings", "created_at": "p.created_at"}

PROVIDER_SELECT = (
    "SELECT p.*, u.name AS user_name, u.avatar AS user_avatar, u.email AS user_email "
    "FROM providers p JOIN users u ON u.id = p.user_id"
)


class ProviderService:
    """Service for provider profiles and the provider dashboard."""

    @staticmethod
    def _load_services(cursor: sqlite3.Cursor, provider_id: int) -> List[ServiceSummary]:
        rows = cursor.execute(
            """
            SELECT s.id, s.name, s.category, s.base_price
            FROM provider_services ps JOIN services s ON s.id = ps.service_id
            WHERE ps.provider_id = ? ORDER BY s.name
            """,
            (provider_id,),
        ).fetchall()
        return [ServiceSummary(**dict(row)) for row in rows]

    @classmethod
    def _row_to_read(cls, cursor: sqlite3.Cursor, row: sqlite3.Row) -> ProviderRead:
        availability = load_json(row["availability"], None)
        return ProviderRead(
            id=row["id"],
            user_id=row["user_id"],
            name=row["user_name"],
            avatar=row["user_avatar"],
            services=cls._load_services(cursor, row["id"]),
            experience=row["experience"],
            hourly_rate=row["hourly_rate"],
            description=row["description"],
            skills=load_json(row["skills"], []),
            service_cities=load_json(row["service_cities"], []),
            max_distance=row["max_distance"],
            availability=WeeklyAvailability(**availability) if availability else WeeklyAvailability(),
            is_verified=bool(row["is_verified"]),
            is_available=bool(row["is_available"]),
            auto_accept_bookings=bool(row["auto_accept_bookings"]),
            rating=row["rating"],
            total_reviews=row["total_reviews"],
            total_bookings=row["total_bookings"],
            completed_bookings=row["completed_bookings"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _validate_service_ids(cursor: sqlite3.Cursor, service_ids: List[int]) -> List[int]:
        unique_ids = sorted(set(service_ids))
        placeholders = ", ".join("?" for _ in unique_ids)
        found = cursor.execute(
            f"SELECT id FROM services WHERE is_active = 1 AND id IN ({placeholders})",
            tuple(unique_ids),
        ).fetchall()
        missing = set(unique_ids) - {row["id"] for row in found}
        if missing:
            raise ValueError(f"Invalid or inactive services: {', '.join(str(i) for i in sorted(missing))}")
        return unique_ids

    @staticmethod
    def _replace_services(cursor: sqlite3.Cursor, provider_id: int, service_ids: List[int]) -> None:
        cursor.execute("DELETE FROM provider_services WHERE provider_id = ?", (provider_id,))
        cursor.executemany(
            "INSERT INTO provider_services (provider_id, service_id) VALUES (?, ?)",
            [(provider_id, service_id) for service_id in service_ids],
        )

    @classmethod
    def _fetch(cls, cursor: sqlite3.Cursor, provider_id: int) -> ProviderRead:
        row = cursor.execute(f"{PROVIDER_SELECT} WHERE p.id = ?", (provider_id,)).fetchone()
        if not row:
            raise NotFoundError(f"Provider {provider_id} not found")
        return cls._row_to_read(cursor, row)

    @staticmethod
    def get_provider_id_for_user(cursor: sqlite3.Cursor, user_id: int) -> int:
        """Provider profile id of ``user_id``; raises ``NotFoundError`` if there is none."""
        row = cursor.execute("SELECT id FROM providers WHERE user_id = ?", (user_id,)).fetchone()
        if not row:
            raise NotFoundError("Provider profile not found")
        return row["id"]

    # ------------------------------------------------------------------
    # Public
    # ------------------------------------------------------------------

    @classmethod
    async def list_providers(
        cls,
        page: int = 1,
        limit: int = 12,
        category: Optional[str] = None,
        service_id: Optional[int] = None,
        city: Optional[str] = None,
        is_verified: Optional[bool] = None,
        min_rating: Optional[float] = None,
        max_rate: Optional[float] = None,
        sort_by: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Dict[str, Any]:
        """List available providers, filtered by what they offer and where they work."""
        where_clauses: List[str] = ["p.is_available = 1", "u.is_active = 1"]
        params: List[Any] = []
        if category:
            where_clauses.append(
                "EXISTS (SELECT 1 FROM provider_services ps JOIN services s ON s.id = ps.service_id "
                "WHERE ps.provider_id = p.id AND s.category = ?)"
            )
            params.append(category)
        if service_id is not None:
            where_clauses.append(
                "EXISTS (SELECT 1 FROM provider_services ps WHERE ps.provider_id = p.id AND ps.service_id = ?)"
            )
            params.append(service_id)
        if city:
            where_clauses.append("LOWER(p.service_cities) LIKE ?")
            params.append(f'%"{city.lower()}"%')
        if is_verified is not None:
            where_clauses.append("p.is_verified = ?")
            params.append(int(is_verified))
        if min_rating is not None:
            where_clauses.append("p.rating >= ?")
            params.append(min_rating)
        if max_rate is not None:
            where_clauses.append("p.hourly_rate <= ?")
            params.append(max_rate)
        where_sql = " WHERE " + " AND ".join(where_clauses)
        sort_field = SORT_FIELDS.get(sort_by or "", "p.rating")
        sort_order = order.upper() if order and order.lower() in {"asc", "desc"} else "DESC"
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute(
                f"SELECT COUNT(*) FROM providers p JOIN users u ON u.id = p.user_id{where_sql}",
                tuple(params),
            ).fetchone()[0]
            rows = cursor.execute(
                f"{PROVIDER_SELECT}{where_sql} ORDER BY p.is_verified DESC, {sort_field} {sort_order}, p.id "
                "LIMIT ? OFFSET ?",
                tuple(params + [limit, (page - 1) * limit]),
            ).fetchall()
            items = [cls._row_to_read(cursor, row) for row in rows]
        finally:
            conn.close()
        return {"items": items, "pagination": Pagination.build(page, limit, total)}

    @classmethod
    async def get_provider(cls, provider_id: int) -> ProviderRead:
        conn = get_connection()
        try:
            return cls._fetch(conn.cursor(), provider_id)
        finally:
            conn.close()

    @classmethod
    async def get_my_profile(cls, user_id: int) -> ProviderRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            return cls._fetch(cursor, cls.get_provider_id_for_user(cursor, user_id))
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Registration and profile maintenance
    # ------------------------------------------------------------------

    @classmethod
    async def register(cls, user_id: int, data: ProviderRegister) -> ProviderRead:
        """Create the provider profile for ``user_id`` and switch the user's role to provider.

        Raises ``ConflictError`` when a profile already exists and
        ``ValueError`` when a listed service is unknown or inactive.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = cursor.execute("SELECT id, name, email FROM users WHERE id = ?", (user_id,)).fetchone()
            if not user:
                raise NotFoundError(f"User {user_id} not found")
            if cursor.execute("SELECT id FROM providers WHERE user_id = ?", (user_id,)).fetchone():
                raise ConflictError("Provider profile already exists")
            service_ids = cls._validate_service_ids(cursor, data.service_ids)
            availability = data.availability or WeeklyAvailability()
            cursor.execute(
                """
                INSERT INTO providers (user_id, experience, hourly_rate, description, skills, service_cities,
                                       max_distance, availability)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    data.experience,
                    data.hourly_rate,
                    data.description,
                    dump_json(data.skills),
                    dump_json([city.strip() for city in data.service_cities]),
                    data.max_distance,
                    dump_json(availability.model_dump()),
                ),
            )
            provider_id = cursor.lastrowid
            cls._replace_services(cursor, provider_id, service_ids)
            cursor.execute(
                "UPDATE users SET role_id = ?, updated_at = ? WHERE id = ? AND role_id != 1",
                (ROLE_PROVIDER, to_db_datetime(utcnow()), user_id),
            )
            conn.commit()
            provider = cls._fetch(cursor, provider_id)
        finally:
            conn.close()
        logger.info("User %s registered as provider %s", user_id, provider_id)
        await AuditService.log(user_id, "create", "provider", provider_id)
        EmailService.send_provider_application_email(user["email"], user["name"])
        return provider

    @classmethod
    async def _update_columns(cls, user_id: int, values: Dict[str, Any], action: str) -> ProviderRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            provider_id = cls.get_provider_id_for_user(cursor, user_id)
            service_ids = values.pop("service_ids", None)
            if service_ids is not None:
                cls._replace_services(cursor, provider_id, cls._validate_service_ids(cursor, service_ids))
            if values:
                values["updated_at"] = to_db_datetime(utcnow())
                assignments = ", ".join(f"{column} = ?" for column in values)
                cursor.execute(
                    f"UPDATE providers SET {assignments} WHERE id = ?",
                    tuple(values.values()) + (provider_id,),
                )
            conn.commit()
            provider = cls._fetch(cursor, provider_id)
        finally:
            conn.close()
        await AuditService.log(user_id, action, "provider", provider_id)
        return provider

    @classmethod
    async def update_profile(cls, user_id: int, data: ProviderProfileUpdate) -> ProviderRead:
        values = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
        for field in ("skills", "service_cities"):
            if field in values:
                values[field] = dump_json(values[field])
        return await cls._update_columns(user_id, values, "update")

    @classmethod
    async def update_availability(cls, user_id: int, data: AvailabilityUpdate) -> ProviderRead:
        values: Dict[str, Any] = {"availability": dump_json(data.availability.model_dump())}
        if data.is_available is not None:
            values["is_available"] = int(data.is_available)
        return await cls._update_columns(user_id, values, "update_availability")

    @classmethod
    async def update_settings(cls, user_id: int, data: ProviderSettingsUpdate) -> ProviderRead:
        values = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
        for flag in ("auto_accept_bookings", "is_available"):
            if flag in values:
                values[flag] = int(values[flag])
        return await cls._update_columns(user_id, values, "update_settings")

    @classmethod
    async def verify_provider(cls, provider_id: int, is_verified: bool, admin_id: int, notes: Optional[str] = None) -> ProviderRead:
        """Set the verification flag and tell the provider about it."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE providers SET is_verified = ?, verification_notes = ?, verified_at = ?, updated_at = ? "
                "WHERE id = ?",
                (
                    int(is_verified),
                    notes,
                    to_db_datetime(utcnow()) if is_verified else None,
                    to_db_datetime(utcnow()),
                    provider_id,
                ),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Provider {provider_id} not found")
            conn.commit()
            provider = cls._fetch(cursor, provider_id)
        finally:
            conn.close()
        logger.info("Provider %s verification set to %s by admin %s", provider_id, is_verified, admin_id)
        await AuditService.log(admin_id, "verify", "provider", provider_id, details={"is_verified": is_verified})
        await NotificationService.notify_template(
            provider.user_id,
            "provider",
            "verification",
            {
                "verified": is_verified,
                "verification_message": (
                    "Congratulations! Your account has been verified."
                    if is_verified
                    else "Your account verification is pending review."
                ),
            },
            priority="high",
        )
        return provider

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    @classmethod
    async def get_dashboard_stats(cls, user_id: int) -> Dict[str, Any]:
        today = utcnow().date().isoformat()
        month_start = utcnow().strftime("%Y-%m-01")
        conn = get_connection()
        try:
            cursor = conn.cursor()
            provider_id = cls.get_provider_id_for_user(cursor, user_id)
            profile = cursor.execute(
                "SELECT rating, total_reviews, total_bookings, completed_bookings, is_verified FROM providers "
                "WHERE id = ?",
                (provider_id,),
            ).fetchone()
            status_rows = cursor.execute(
                "SELECT status, COUNT(*) AS count FROM bookings WHERE provider_id = ? GROUP BY status",
                (provider_id,),
            ).fetchall()
            earnings = cursor.execute(
                """
                SELECT COALESCE(SUM(total_amount), 0) AS total,
                       COALESCE(SUM(CASE WHEN work_end_time >= ? THEN total_amount ELSE 0 END), 0) AS this_month
                FROM bookings
                WHERE provider_id = ? AND status = 'completed' AND payment_status = 'paid'
                """,
                (month_start, provider_id),
            ).fetchone()
            today_count = cursor.execute(
                "SELECT COUNT(*) FROM bookings WHERE provider_id = ? AND substr(scheduled_date, 1, 10) = ? "
                "AND status IN ('confirmed', 'in-progress')",
                (provider_id, today),
            ).fetchone()[0]
        finally:
            conn.close()
        by_status = {row["status"]: row["count"] for row in status_rows}
        total = sum(by_status.values())
        completed = by_status.get("completed", 0)
        return {
            "provider_id": provider_id,
            "is_verified": bool(profile["is_verified"]),
            "rating": profile["rating"],
            "total_reviews": profile["total_reviews"],
            "total_bookings": total,
            "bookings_by_status": by_status,
            "pending_bookings": by_status.get("pending", 0),
            "completed_bookings": completed,
            "completion_rate": round(completed / total * 100, 1) if total else 0,
            "today_bookings": today_count,
            "total_earnings": earnings["total"],
            "earnings_this_month": earnings["this_month"],
        }

    @classmethod
    async def get_earnings(cls, user_id: int, months: int = 12) -> Dict[str, Any]:
        """Earnings from completed and paid bookings, grouped by month of completion."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            provider_id = cls.get_provider_id_for_user(cursor, user_id)
            monthly = cursor.execute(
                """
                SELECT substr(COALESCE(work_end_time, scheduled_date), 1, 7) AS month,
                       COUNT(*) AS bookings, SUM(total_amount) AS earnings
                FROM bookings
                WHERE provider_id = ? AND status = 'completed' AND payment_status = 'paid'
                  AND COALESCE(work_end_time, scheduled_date) >= date('now', 'start of month', ?)
                GROUP BY month ORDER BY month
                """,
                (provider_id, f"-{max(months - 1, 0)} months"),
            ).fetchall()
            totals = cursor.execute(
                "SELECT COUNT(*) AS bookings, COALESCE(SUM(total_amount), 0) AS earnings, "
                "COALESCE(AVG(total_amount), 0) AS average FROM bookings "
                "WHERE provider_id = ? AND status = 'completed' AND payment_status = 'paid'",
                (provider_id,),
            ).fetchone()
        finally:
            conn.close()
        return {
            "total_earnings": totals["earnings"],
            "completed_paid_bookings": totals["bookings"],
            "average_booking_value": round(totals["average"], 2),
            "monthly": [dict(row) for row in monthly],
        }
