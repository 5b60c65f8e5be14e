"""
Business logic for bookings.

Bookings move through a small status machine.  ``ALLOWED_TRANSITIONS``
lists, for every status, the statuses it may change to; a status with no
entry is terminal.  Every change is appended to
``booking_status_history`` together with who made it and why.

Prices are always computed here from the service's base price: the tax
is ``TAX_RATE`` of the base rounded half up to whole rupees, and the
total is base plus tax.  Cancelling returns part of the total depending
on how long before the visit the booking was cancelled (see
``refund_percentage``).
"""

import logging
import secrets
import sqlite3
import time
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple

from home_services_api.app.core.config import settings
from home_services_api.app.core.db import (
    dump_json,
    from_db_datetime,
    get_connection,
    load_json,
    to_db_datetime,
    utcnow,
)
from home_services_api.app.core.exceptions import NotFoundError, PermissionDeniedError
from home_services_api.app.core.security import ROLE_ADMIN
from home_services_api.app.schemas.booking import (
    BookingAddress,
    BookingCreate,
    BookingRead,
    CancellationInfo,
    PaymentInfo,
    Pricing,
    StatusHistoryEntry,
    WorkSummary,
)
from home_services_api.app.schemas.common import Pagination
from home_services_api.app.services.audit_service import AuditService
from home_services_api.app.services.email_service import EmailService
from home_services_api.app.services.notification_service import TEMPLATES, NotificationService
from home_services_api.app.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("in-progress", "cancelled"),
    "in-progress": ("completed", "cancelled"),
}

CANCELLABLE_STATUSES = ("pending", "confirmed")

# (minimum hours before the visit, percentage refunded), checked in order.
REFUND_TIERS = ((24, 100), (12, 75), (2, 50))
MINIMUM_REFUND_PERCENTAGE = 25

SORT_FIELDS = {"scheduled_date", "created_at", "total_amount", "status"}

BOOKING_SELECT = (
    "SELECT b.*, s.name AS service_name, s.category AS service_category "
    "FROM bookings b JOIN services s ON s.id = b.service_id"
)


def round_half_up(value: float) -> float:
    """Round to whole rupees, halves away from zero."""
    return float(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_pricing(base_price: float) -> Pricing:
    tax = round_half_up(base_price * settings.tax_rate)
    return Pricing(base_price=base_price, tax=tax, total_amount=base_price + tax)


def generate_booking_number() -> str:
    """``BK`` + last six digits of the millisecond clock + six random hex characters."""
    millis = str(int(time.time() * 1000))[-6:]
    return f"BK{millis}{secrets.token_hex(3).upper()}"


def refund_percentage(scheduled_date: datetime, now: Optional[datetime] = None) -> int:
    """Share of the total returned when a booking is cancelled at ``now``."""
    hours_left = ((scheduled_date - (now or utcnow())).total_seconds()) / 3600
    for min_hours, percentage in REFUND_TIERS:
        if hours_left > min_hours:
            return percentage
    return MINIMUM_REFUND_PERCENTAGE


def calculate_refund(total_amount: float, scheduled_date: datetime, now: Optional[datetime] = None) -> float:
    return round_half_up(total_amount * refund_percentage(scheduled_date, now) / 100)


class BookingService:
    """Service for creating bookings and driving them through their lifecycle."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _provider_id_of(cursor: sqlite3.Cursor, user_id: int) -> Optional[int]:
        row = cursor.execute("SELECT id FROM providers WHERE user_id = ?", (user_id,)).fetchone()
        return row["id"] if row else None

    @classmethod
    def _relation(cls, cursor: sqlite3.Cursor, booking: sqlite3.Row, user: Dict[str, Any]) -> str:
        """How ``user`` relates to ``booking``: ``admin``, ``customer`` or ``provider``.

        Raises ``PermissionDeniedError`` for anyone else.
        """
        if user["role_id"] == ROLE_ADMIN:
            return "admin"
        if booking["customer_id"] == user["user_id"]:
            return "customer"
        if booking["provider_id"] == cls._provider_id_of(cursor, user["user_id"]):
            return "provider"
        raise PermissionDeniedError("Not authorized to access this booking")

    @classmethod
    def _scope(cls, cursor: sqlite3.Cursor, user: Dict[str, Any]) -> Tuple[List[str], List[Any]]:
        """WHERE clauses restricting bookings to those ``user`` may see."""
        if user["role_id"] == ROLE_ADMIN:
            return [], []
        provider_id = cls._provider_id_of(cursor, user["user_id"])
        if provider_id is not None and user.get("role") == "provider":
            return ["b.provider_id = ?"], [provider_id]
        return ["b.customer_id = ?"], [user["user_id"]]

    @staticmethod
    def _fetch_row(cursor: sqlite3.Cursor, booking_id: int) -> sqlite3.Row:
        row = cursor.execute(f"{BOOKING_SELECT} WHERE b.id = ?", (booking_id,)).fetchone()
        if not row:
            raise NotFoundError(f"Booking {booking_id} not found")
        return row

    @staticmethod
    def _load_history(cursor: sqlite3.Cursor, booking_id: int) -> List[StatusHistoryEntry]:
        rows = cursor.execute(
            "SELECT status, changed_by, reason, comments, changed_at FROM booking_status_history "
            "WHERE booking_id = ? ORDER BY id",
            (booking_id,),
        ).fetchall()
        return [StatusHistoryEntry(**dict(row)) for row in rows]

    @classmethod
    def _row_to_read(cls, row: sqlite3.Row, history: Optional[List[StatusHistoryEntry]] = None) -> BookingRead:
        cancellation = None
        if row["status"] == "cancelled":
            cancellation = CancellationInfo(
                cancelled_by=row["cancelled_by"],
                reason=row["cancellation_reason"],
                cancellation_date=row["cancellation_date"],
                refund_amount=row["cancellation_refund_amount"],
            )
        work_summary = load_json(row["work_summary"], None)
        return BookingRead(
            id=row["id"],
            booking_number=row["booking_number"],
            customer_id=row["customer_id"],
            provider_id=row["provider_id"],
            service_id=row["service_id"],
            service_name=row["service_name"],
            service_category=row["service_category"],
            scheduled_date=row["scheduled_date"],
            estimated_duration=row["estimated_duration"],
            address=BookingAddress(**load_json(row["address"], {})),
            contact_phone=row["contact_phone"],
            special_instructions=row["special_instructions"],
            status=row["status"],
            pricing=Pricing(base_price=row["base_price"], tax=row["tax"], total_amount=row["total_amount"]),
            payment=PaymentInfo(
                status=row["payment_status"],
                method=row["payment_method"],
                transaction_id=row["transaction_id"],
                paid_amount=row["paid_amount"],
                paid_at=row["paid_at"],
                refund_transaction_id=row["refund_transaction_id"],
                refund_amount=row["refund_amount"],
                refunded_at=row["refunded_at"],
            ),
            cancellation=cancellation,
            work_start_time=row["work_start_time"],
            work_end_time=row["work_end_time"],
            actual_duration=row["actual_duration"],
            work_summary=WorkSummary(**work_summary) if work_summary else None,
            status_history=history or [],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _record_history(
        cursor: sqlite3.Cursor,
        booking_id: int,
        status: str,
        changed_by: Optional[int],
        reason: Optional[str] = None,
        comments: Optional[str] = None,
    ) -> None:
        cursor.execute(
            "INSERT INTO booking_status_history (booking_id, status, changed_by, reason, comments, changed_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (booking_id, status, changed_by, reason, comments, to_db_datetime(utcnow())),
        )

    @staticmethod
    def _contacts(cursor: sqlite3.Cursor, booking: sqlite3.Row) -> Dict[str, Dict[str, Any]]:
        customer = cursor.execute(
            "SELECT id, name, email FROM users WHERE id = ?", (booking["customer_id"],)
        ).fetchone()
        provider = cursor.execute(
            "SELECT u.id, u.name, u.email FROM providers p JOIN users u ON u.id = p.user_id WHERE p.id = ?",
            (booking["provider_id"],),
        ).fetchone()
        return {"customer": dict(customer), "provider": dict(provider)}

    @staticmethod
    def _email_context(booking: BookingRead) -> Dict[str, Any]:
        return {
            "id": booking.id,
            "booking_number": booking.booking_number,
            "service_name": booking.service_name,
            "scheduled_date": booking.scheduled_date.strftime("%d %b %Y, %H:%M"),
            "total_amount": booking.pricing.total_amount,
        }

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @classmethod
    async def create_booking(cls, data: BookingCreate, customer_id: int) -> BookingRead:
        """Book ``data.service_id`` with ``data.provider_id`` for the calling customer.

        Raises
        ------
        NotFoundError
            The provider does not exist or is unavailable, or the service
            does not exist or is inactive.
        ValueError
            The provider does not offer the service, the provider is
            booking themselves, or the date is in the past or beyond
            ``max_booking_days``.
        """
        scheduled = data.scheduled_date
        scheduled_db = to_db_datetime(scheduled)
        scheduled_utc = from_db_datetime(scheduled_db)
        now = utcnow()
        if scheduled_utc <= now:
            raise ValueError("Scheduled date must be in the future")
        max_days = await SettingsService.get_value("max_booking_days", 30)
        if scheduled_utc > now + timedelta(days=int(max_days)):
            raise ValueError(f"Bookings can be made at most {max_days} days in advance")

        conn = get_connection()
        try:
            cursor = conn.cursor()
            provider = cursor.execute(
                "SELECT id, user_id, is_available, auto_accept_bookings FROM providers WHERE id = ?",
                (data.provider_id,),
            ).fetchone()
            if not provider or not provider["is_available"]:
                raise NotFoundError("Provider not found or not available")
            service = cursor.execute(
                "SELECT id, name, base_price, duration, is_active FROM services WHERE id = ?",
                (data.service_id,),
            ).fetchone()
            if not service or not service["is_active"]:
                raise NotFoundError("Service not found or not available")
            offers = cursor.execute(
                "SELECT 1 FROM provider_services WHERE provider_id = ? AND service_id = ?",
                (data.provider_id, data.service_id),
            ).fetchone()
            if not offers:
                raise ValueError("Provider does not offer this service")
            if provider["user_id"] == customer_id:
                raise ValueError("You cannot book your own services")

            pricing = calculate_pricing(service["base_price"])
            cursor.execute(
                """
                INSERT INTO bookings (booking_number, customer_id, provider_id, service_id, scheduled_date,
                                      estimated_duration, address, contact_phone, special_instructions,
                                      base_price, tax, total_amount)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    generate_booking_number(),
                    customer_id,
                    data.provider_id,
                    data.service_id,
                    scheduled_db,
                    service["duration"],
                    dump_json(data.address.model_dump()),
                    data.contact_phone,
                    data.special_instructions,
                    pricing.base_price,
                    pricing.tax,
                    pricing.total_amount,
                ),
            )
            booking_id = cursor.lastrowid
            cls._record_history(cursor, booking_id, "pending", customer_id, "Booking created")
            if provider["auto_accept_bookings"]:
                cursor.execute("UPDATE bookings SET status = 'confirmed' WHERE id = ?", (booking_id,))
                cls._record_history(cursor, booking_id, "confirmed", provider["user_id"], "Auto-accepted by provider")
            cursor.execute(
                "UPDATE providers SET total_bookings = total_bookings + 1 WHERE id = ?", (data.provider_id,)
            )
            cursor.execute("UPDATE services SET popularity = popularity + 1 WHERE id = ?", (data.service_id,))
            conn.commit()
            row = cls._fetch_row(cursor, booking_id)
            booking = cls._row_to_read(row, cls._load_history(cursor, booking_id))
            contacts = cls._contacts(cursor, row)
        finally:
            conn.close()

        logger.info("Booking %s (%s) created by user %s", booking.booking_number, booking_id, customer_id)
        await AuditService.log(customer_id, "create", "booking", booking_id, details={"number": booking.booking_number})
        email_context = cls._email_context(booking)
        for party in ("customer", "provider"):
            EmailService.send_booking_confirmation(
                contacts[party]["email"], contacts[party]["name"], email_context
            )
        context = {"service_name": booking.service_name, "booking_id": booking_id,
                   "booking_number": booking.booking_number}
        await NotificationService.notify_template(customer_id, "booking", "created", context)
        await NotificationService.notify_template(
            contacts["provider"]["id"], "provider", "new_booking", context, priority="high"
        )
        return booking

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @classmethod
    async def list_bookings(
        cls,
        user: Dict[str, Any],
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        sort_by: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Bookings visible to ``user``: customers see their own, providers those made with them."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where_clauses, params = cls._scope(cursor, user)
            if status:
                where_clauses.append("b.status = ?")
                params.append(status)
            where_sql = (" WHERE " + " AND ".join(where_clauses)) if where_clauses else ""
            sort_field = sort_by if sort_by in SORT_FIELDS else "created_at"
            sort_order = order.upper() if order and order.lower() in {"asc", "desc"} else "DESC"
            total = cursor.execute(f"SELECT COUNT(*) FROM bookings b{where_sql}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"{BOOKING_SELECT}{where_sql} ORDER BY b.{sort_field} {sort_order}, b.id DESC LIMIT ? OFFSET ?",
                tuple(params + [limit, (page - 1) * limit]),
            ).fetchall()
        finally:
            conn.close()
        return {"items": [cls._row_to_read(row) for row in rows], "pagination": Pagination.build(page, limit, total)}

    @classmethod
    async def get_upcoming(cls, user: Dict[str, Any], limit: int = 5) -> List[BookingRead]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where_clauses, params = cls._scope(cursor, user)
            where_clauses += ["b.scheduled_date > ?", "b.status IN ('pending', 'confirmed')"]
            params += [to_db_datetime(utcnow())]
            rows = cursor.execute(
                f"{BOOKING_SELECT} WHERE {' AND '.join(where_clauses)} ORDER BY b.scheduled_date ASC LIMIT ?",
                tuple(params + [limit]),
            ).fetchall()
        finally:
            conn.close()
        return [cls._row_to_read(row) for row in rows]

    @classmethod
    async def get_today(cls, user: Dict[str, Any]) -> List[BookingRead]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where_clauses, params = cls._scope(cursor, user)
            where_clauses += ["substr(b.scheduled_date, 1, 10) = ?", "b.status IN ('confirmed', 'in-progress')"]
            params += [utcnow().date().isoformat()]
            rows = cursor.execute(
                f"{BOOKING_SELECT} WHERE {' AND '.join(where_clauses)} ORDER BY b.scheduled_date ASC",
                tuple(params),
            ).fetchall()
        finally:
            conn.close()
        return [cls._row_to_read(row) for row in rows]

    @classmethod
    async def get_booking(cls, booking_id: int, user: Dict[str, Any]) -> BookingRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, booking_id)
            cls._relation(cursor, row, user)
            return cls._row_to_read(row, cls._load_history(cursor, booking_id))
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    @staticmethod
    def _cancellation_values(row: sqlite3.Row, cancelled_by: str, reason: Optional[str]) -> Dict[str, Any]:
        now = utcnow()
        return {
            "cancelled_by": cancelled_by,
            "cancellation_reason": reason,
            "cancellation_date": to_db_datetime(now),
            "cancellation_refund_amount": calculate_refund(
                row["total_amount"], from_db_datetime(row["scheduled_date"]), now
            ),
        }

    @classmethod
    def _apply_status(
        cls,
        cursor: sqlite3.Cursor,
        row: sqlite3.Row,
        new_status: str,
        user: Dict[str, Any],
        relation: str,
        reason: Optional[str],
        comments: Optional[str],
    ) -> None:
        now = utcnow()
        values: Dict[str, Any] = {"status": new_status, "updated_at": to_db_datetime(now)}
        if new_status == "cancelled":
            values.update(cls._cancellation_values(row, relation, reason))
        elif new_status == "in-progress":
            values["work_start_time"] = to_db_datetime(now)
        elif new_status == "completed":
            values["work_end_time"] = to_db_datetime(now)
            start = from_db_datetime(row["work_start_time"])
            if start is not None:
                values["actual_duration"] = int((now - start).total_seconds() // 60)
            cursor.execute(
                "UPDATE providers SET completed_bookings = completed_bookings + 1 WHERE id = ?",
                (row["provider_id"],),
            )
        assignments = ", ".join(f"{column} = ?" for column in values)
        cursor.execute(f"UPDATE bookings SET {assignments} WHERE id = ?", tuple(values.values()) + (row["id"],))
        cls._record_history(cursor, row["id"], new_status, user["user_id"], reason, comments)

    @classmethod
    async def _announce_status(cls, booking: BookingRead, contacts: Dict[str, Dict[str, Any]], relation: str) -> None:
        customer = contacts["customer"]
        EmailService.send_booking_status_update(
            customer["email"], customer["name"], cls._email_context(booking), booking.status
        )
        context = {
            "service_name": booking.service_name,
            "provider_name": contacts["provider"]["name"],
            "booking_id": booking.id,
            "booking_number": booking.booking_number,
            "status": booking.status,
        }
        if ("booking", booking.status) in TEMPLATES:
            await NotificationService.notify_template(customer["id"], "booking", booking.status, context)
        else:
            await NotificationService.notify(
                customer["id"],
                "booking",
                "Booking Update",
                f"Your booking for {booking.service_name} is now {booking.status}.",
                context,
            )
        if booking.status == "cancelled" and relation != "provider":
            await NotificationService.notify(
                contacts["provider"]["id"],
                "booking",
                "Booking Cancelled",
                f"Booking {booking.booking_number} for {booking.service_name} has been cancelled.",
                context,
                priority="high",
            )

    @classmethod
    async def update_status(
        cls,
        booking_id: int,
        new_status: str,
        user: Dict[str, Any],
        reason: Optional[str] = None,
        comments: Optional[str] = None,
    ) -> BookingRead:
        """Move a booking to ``new_status`` if the transition is allowed.

        Administrators and the booked provider may apply any allowed
        transition; the customer may only cancel.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, booking_id)
            relation = cls._relation(cursor, row, user)
            if relation == "customer" and new_status != "cancelled":
                raise PermissionDeniedError("Customers can only cancel bookings")
            current = row["status"]
            if new_status not in ALLOWED_TRANSITIONS.get(current, ()):
                raise ValueError(f"Cannot change status from {current} to {new_status}")
            cls._apply_status(cursor, row, new_status, user, relation, reason, comments)
            conn.commit()
            row = cls._fetch_row(cursor, booking_id)
            booking = cls._row_to_read(row, cls._load_history(cursor, booking_id))
            contacts = cls._contacts(cursor, row)
        finally:
            conn.close()
        logger.info("Booking %s: %s -> %s by user %s", booking_id, current, new_status, user["user_id"])
        await AuditService.log(
            user["user_id"], "update_status", "booking", booking_id, details={"from": current, "to": new_status}
        )
        await cls._announce_status(booking, contacts, relation)
        return booking

    @classmethod
    async def cancel_booking(cls, booking_id: int, user: Dict[str, Any], reason: Optional[str] = None) -> BookingRead:
        """Cancel a pending or confirmed booking and record the refund due."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, booking_id)
            relation = cls._relation(cursor, row, user)
            if row["status"] == "cancelled":
                raise ValueError("Booking is already cancelled")
            if row["status"] not in CANCELLABLE_STATUSES:
                raise ValueError(f"Cannot cancel a booking that is {row['status']}")
            cls._apply_status(cursor, row, "cancelled", user, relation, reason or "Cancelled", None)
            conn.commit()
            row = cls._fetch_row(cursor, booking_id)
            booking = cls._row_to_read(row, cls._load_history(cursor, booking_id))
            contacts = cls._contacts(cursor, row)
        finally:
            conn.close()
        logger.info(
            "Booking %s cancelled by %s, refund due %s", booking_id, relation, booking.cancellation.refund_amount
        )
        await AuditService.log(
            user["user_id"], "cancel", "booking", booking_id,
            details={"refund_amount": booking.cancellation.refund_amount},
        )
        await cls._announce_status(booking, contacts, relation)
        return booking

    @classmethod
    async def update_work_summary(cls, booking_id: int, summary: WorkSummary, user: Dict[str, Any]) -> BookingRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, booking_id)
            relation = cls._relation(cursor, row, user)
            if relation == "customer":
                raise PermissionDeniedError("Only the provider can update the work summary")
            if row["status"] not in ("in-progress", "completed"):
                raise ValueError("Work summary can only be added to bookings in progress or completed")
            cursor.execute(
                "UPDATE bookings SET work_summary = ?, updated_at = ? WHERE id = ?",
                (dump_json(summary.model_dump()), to_db_datetime(utcnow()), booking_id),
            )
            conn.commit()
            booking = cls._row_to_read(cls._fetch_row(cursor, booking_id), cls._load_history(cursor, booking_id))
        finally:
            conn.close()
        await AuditService.log(user["user_id"], "update_work_summary", "booking", booking_id)
        return booking

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @classmethod
    async def get_admin_stats(cls) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            by_status = cursor.execute("SELECT status, COUNT(*) AS count FROM bookings GROUP BY status").fetchall()
            revenue = cursor.execute(
                "SELECT COUNT(*) AS paid, COALESCE(SUM(total_amount), 0) AS revenue, "
                "COALESCE(AVG(total_amount), 0) AS average FROM bookings WHERE payment_status = 'paid'"
            ).fetchone()
            average_value = cursor.execute("SELECT COALESCE(AVG(total_amount), 0) FROM bookings").fetchone()[0]
            monthly = cursor.execute(
                """
                SELECT substr(created_at, 1, 7) AS month, COUNT(*) AS bookings,
                       COALESCE(SUM(CASE WHEN payment_status = 'paid' THEN total_amount ELSE 0 END), 0) AS revenue
                FROM bookings
                WHERE created_at >= date('now', 'start of month', '-11 months')
                GROUP BY month ORDER BY month
                """
            ).fetchall()
            by_category = cursor.execute(
                """
                SELECT s.category, COUNT(*) AS bookings,
                       COALESCE(SUM(CASE WHEN b.payment_status = 'paid' THEN b.total_amount ELSE 0 END), 0) AS revenue
                FROM bookings b JOIN services s ON s.id = b.service_id
                GROUP BY s.category ORDER BY bookings DESC
                """
            ).fetchall()
        finally:
            conn.close()
        status_counts = {row["status"]: row["count"] for row in by_status}
        return {
            "total_bookings": sum(status_counts.values()),
            "by_status": status_counts,
            "total_revenue": revenue["revenue"],
            "paid_bookings": revenue["paid"],
            "average_paid_value": round(revenue["average"], 2),
            "average_booking_value": round(average_value, 2),
            "monthly": [dict(row) for row in monthly],
            "by_category": [dict(row) for row in by_category],
        }
