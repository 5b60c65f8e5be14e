"""
In-app notifications with optional e-mail and SMS delivery.

Every notification is stored in the ``notifications`` table so that it
appears in the recipient's inbox.  When the ``channels`` list also
names ``email`` or ``sms`` and the recipient's preferences allow it,
the message is additionally handed to ``EmailService`` or
``SMSService``.  Notifications with a future ``scheduled_for`` are
stored as ``scheduled`` and dispatched later by
``process_scheduled_notifications``.

Other services call ``notify``/``notify_template``, which never raise:
a notification that cannot be stored or delivered is logged and the
calling operation carries on.
"""

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from home_services_api.app.core.db import (
    dump_json,
    get_connection,
    load_json,
    to_db_datetime,
    utcnow,
)
from home_services_api.app.core.exceptions import NotFoundError, SMSDeliveryError
from home_services_api.app.core.security import ROLE_IDS
from home_services_api.app.schemas.common import Pagination
from home_services_api.app.schemas.notification import (
    BulkNotificationResult,
    NotificationCreate,
    NotificationRead,
)
from home_services_api.app.services.email_service import EmailService
from home_services_api.app.services.sms_service import SMSService

logger = logging.getLogger(__name__)

NOTIFICATION_TTL_DAYS = 30

# (category, event) -> (type, title, message template)
TEMPLATES: Dict[tuple, tuple] = {
    ("booking", "created"): (
        "booking",
        "Booking Created",
        "Your booking for {service_name} has been created and is pending confirmation.",
    ),
    ("booking", "confirmed"): (
        "booking",
        "Booking Confirmed",
        "Your booking for {service_name} has been confirmed by {provider_name}.",
    ),
    ("booking", "completed"): (
        "booking",
        "Service Completed",
        "Your {service_name} service has been completed. Please rate your experience.",
    ),
    ("booking", "cancelled"): (
        "booking",
        "Booking Cancelled",
        "Your booking for {service_name} has been cancelled.",
    ),
    ("payment", "success"): (
        "payment",
        "Payment Successful",
        "Your payment of ₹{amount} has been processed successfully.",
    ),
    ("payment", "failed"): (
        "payment",
        "Payment Failed",
        "Your payment of ₹{amount} could not be processed. Please try again.",
    ),
    ("payment", "refunded"): (
        "payment",
        "Refund Processed",
        "Your refund of ₹{amount} has been processed and will reflect in your account soon.",
    ),
    ("provider", "new_booking"): (
        "provider",
        "New Booking Received",
        "You have received a new booking for {service_name}. Please confirm or decline.",
    ),
    ("provider", "verification"): (
        "provider",
        "Verification Update",
        "{verification_message}",
    ),
    ("provider", "review"): (
        "provider",
        "New Review",
        "You have received a new {rating}-star review for {service_name}.",
    ),
}


class NotificationService:
    """Create, deliver and query user notifications."""

    @classmethod
    async def send_notification(cls, data: NotificationCreate) -> NotificationRead:
        """Store a notification and deliver it unless it is scheduled for later.

        Raises ``NotFoundError`` when the recipient does not exist.
        """
        now = utcnow()
        scheduled = data.scheduled_for is not None and to_db_datetime(data.scheduled_for) > to_db_datetime(now)
        # The lifetime starts at delivery.
        delivery = data.scheduled_for if scheduled else now
        expires_at = data.expires_at or delivery + timedelta(days=NOTIFICATION_TTL_DAYS)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            user = cursor.execute(
                "SELECT id, name, email, phone, preferences FROM users WHERE id = ?",
                (data.recipient_id,),
            ).fetchone()
            if not user:
                raise NotFoundError(f"User {data.recipient_id} not found")
            cursor.execute(
                """
                INSERT INTO notifications (recipient_id, type, title, message, data, priority, channels,
                                           status, scheduled_for, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data.recipient_id,
                    data.type,
                    data.title,
                    data.message,
                    dump_json(data.data),
                    data.priority,
                    dump_json(list(data.channels)),
                    "scheduled" if scheduled else "pending",
                    to_db_datetime(data.scheduled_for) if data.scheduled_for else None,
                    to_db_datetime(expires_at),
                ),
            )
            notification_id = cursor.lastrowid
            conn.commit()
            if not scheduled:
                cls._dispatch(cursor, notification_id, dict(user), data.title, data.message, data.channels)
                conn.commit()
            row = cursor.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
            return cls._row_to_read(row)
        finally:
            conn.close()

    @classmethod
    def _dispatch(
        cls,
        cursor: sqlite3.Cursor,
        notification_id: int,
        user: Dict[str, Any],
        title: str,
        message: str,
        channels: Iterable[str],
    ) -> None:
        """Deliver over the external channels and record the outcome on the row."""
        channels = list(channels)
        preferences = load_json(user.get("preferences"), {}) or {}
        allowed = {"email": True, "sms": True, "push": True}
        allowed.update(preferences.get("notifications") or {})

        errors: List[Dict[str, str]] = []
        delivered = "in_app" in channels
        if "email" in channels and allowed.get("email", True):
            if EmailService.send_announcement_email(user["email"], user["name"], title, message):
                delivered = True
            else:
                errors.append({"channel": "email", "error": "E-mail was not delivered"})
        if "sms" in channels and allowed.get("sms", True):
            try:
                SMSService.send_sms(user["phone"], f"{title}\n{message}")
                delivered = True
            except SMSDeliveryError as exc:
                errors.append({"channel": "sms", "error": str(exc)})
        if "push" in channels:
            logger.debug("Push delivery is not available; notification %s kept in-app", notification_id)

        now = to_db_datetime(utcnow())
        cursor.execute(
            """
            UPDATE notifications
            SET status = ?, sent_at = ?, delivered_at = ?, delivery_errors = ?
            WHERE id = ?
            """,
            (
                "delivered" if delivered else "failed",
                now,
                now if delivered else None,
                dump_json(errors) if errors else None,
                notification_id,
            ),
        )
        if errors:
            logger.warning("Notification %s delivery problems: %s", notification_id, errors)

    @classmethod
    async def notify(
        cls,
        recipient_id: int,
        type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        priority: str = "normal",
        channels: Optional[List[str]] = None,
    ) -> Optional[NotificationRead]:
        """Best-effort notification used as a side effect of other operations."""
        try:
            return await cls.send_notification(
                NotificationCreate(
                    recipient_id=recipient_id,
                    type=type,
                    title=title,
                    message=message,
                    data=data or {},
                    priority=priority,
                    channels=channels or ["in_app"],
                )
            )
        except (ValueError, sqlite3.Error) as exc:
            logger.warning("Could not notify user %s (%s): %s", recipient_id, title, exc)
            return None

    @classmethod
    async def notify_template(
        cls,
        recipient_id: int,
        category: str,
        event: str,
        context: Dict[str, Any],
        priority: str = "normal",
        channels: Optional[List[str]] = None,
    ) -> Optional[NotificationRead]:
        """Render one of ``TEMPLATES`` with ``context`` and send it."""
        type_, title, template = TEMPLATES[(category, event)]
        safe_context = {key: ("" if value is None else value) for key, value in context.items()}
        try:
            message = template.format(**safe_context)
        except KeyError as exc:
            logger.warning("Template %s.%s is missing %s", category, event, exc)
            message = title
        return await cls.notify(recipient_id, type_, title, message, context, priority, channels)

    @classmethod
    async def send_bulk_notification(
        cls,
        title: str,
        message: str,
        type: str = "system",
        priority: str = "normal",
        channels: Optional[List[str]] = None,
        recipient_ids: Optional[List[int]] = None,
        role: Optional[str] = None,
        active_only: bool = True,
        scheduled_for: Optional[datetime] = None,
    ) -> BulkNotificationResult:
        """Send the same notification to explicit recipients or to every user matching a filter.

        ``role`` is one of ``customer``, ``provider``, ``admin`` or
        ``None``/``"all"``.  Failures are collected per recipient instead
        of aborting the whole batch.
        """
        if recipient_ids is None:
            where_clauses: List[str] = []
            params: List[Any] = []
            if role and role != "all":
                where_clauses.append("role_id = ?")
                params.append(ROLE_IDS[role])
            if active_only:
                where_clauses.append("is_active = 1")
            query = "SELECT id FROM users"
            if where_clauses:
                query += " WHERE " + " AND ".join(where_clauses)
            conn = get_connection()
            try:
                recipient_ids = [row["id"] for row in conn.execute(query, tuple(params)).fetchall()]
            finally:
                conn.close()

        result = BulkNotificationResult()
        for recipient_id in recipient_ids:
            try:
                await cls.send_notification(
                    NotificationCreate(
                        recipient_id=recipient_id,
                        type=type,
                        title=title,
                        message=message,
                        priority=priority,
                        channels=channels or ["in_app"],
                        scheduled_for=scheduled_for,
                    )
                )
                result.successful += 1
            except (ValueError, sqlite3.Error) as exc:
                result.failed += 1
                result.errors.append({"recipient_id": recipient_id, "error": str(exc)})
        logger.info("Bulk notification '%s': %s sent, %s failed", title, result.successful, result.failed)
        return result

    @classmethod
    async def list_for_user(
        cls,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
        type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Page through a user's inbox, newest first, skipping scheduled and expired entries."""
        now = to_db_datetime(utcnow())
        where_clauses = [
            "recipient_id = ?",
            "status != 'scheduled'",
            "(expires_at IS NULL OR expires_at > ?)",
        ]
        params: List[Any] = [user_id, now]
        if unread_only:
            where_clauses.append("read_at IS NULL")
        if type:
            where_clauses.append("type = ?")
            params.append(type)
        where_sql = " WHERE " + " AND ".join(where_clauses)
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute(f"SELECT COUNT(*) FROM notifications{where_sql}", tuple(params)).fetchone()[0]
            unread = cursor.execute(
                "SELECT COUNT(*) FROM notifications WHERE recipient_id = ? AND read_at IS NULL "
                "AND status != 'scheduled' AND (expires_at IS NULL OR expires_at > ?)",
                (user_id, now),
            ).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM notifications{where_sql} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                tuple(params + [limit, (page - 1) * limit]),
            ).fetchall()
        finally:
            conn.close()
        return {
            "items": [cls._row_to_read(row) for row in rows],
            "unread_count": unread,
            "pagination": Pagination.build(page, limit, total),
        }

    @classmethod
    async def mark_as_read(cls, notification_id: int, user_id: int) -> NotificationRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute(
                "SELECT id FROM notifications WHERE id = ? AND recipient_id = ?",
                (notification_id, user_id),
            ).fetchone()
            if not row:
                raise NotFoundError(f"Notification {notification_id} not found")
            cursor.execute(
                "UPDATE notifications SET status = 'read', read_at = COALESCE(read_at, ?) WHERE id = ?",
                (to_db_datetime(utcnow()), notification_id),
            )
            conn.commit()
            return cls._row_to_read(
                cursor.execute("SELECT * FROM notifications WHERE id = ?", (notification_id,)).fetchone()
            )
        finally:
            conn.close()

    @classmethod
    async def mark_all_as_read(cls, user_id: int) -> int:
        """Mark every unread notification of the user as read and return how many changed."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE notifications SET status = 'read', read_at = ? "
                "WHERE recipient_id = ? AND read_at IS NULL AND status != 'scheduled'",
                (to_db_datetime(utcnow()), user_id),
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    @classmethod
    async def delete_notification(cls, notification_id: int, user_id: int) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "DELETE FROM notifications WHERE id = ? AND recipient_id = ?",
                (notification_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Notification {notification_id} not found")
            conn.commit()
        finally:
            conn.close()

    @classmethod
    async def get_stats(cls, user_id: int) -> Dict[str, Any]:
        """Totals for the user's inbox: overall, unread, and per type."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            totals = cursor.execute(
                "SELECT COUNT(*) AS total, SUM(CASE WHEN read_at IS NULL THEN 1 ELSE 0 END) AS unread "
                "FROM notifications WHERE recipient_id = ? AND status != 'scheduled'",
                (user_id,),
            ).fetchone()
            by_type = cursor.execute(
                "SELECT type, COUNT(*) AS count, SUM(CASE WHEN read_at IS NULL THEN 1 ELSE 0 END) AS unread "
                "FROM notifications WHERE recipient_id = ? AND status != 'scheduled' GROUP BY type",
                (user_id,),
            ).fetchall()
        finally:
            conn.close()
        return {
            "total": totals["total"] or 0,
            "unread": totals["unread"] or 0,
            "by_type": {row["type"]: {"count": row["count"], "unread": row["unread"] or 0} for row in by_type},
        }

    @classmethod
    async def process_scheduled_notifications(cls) -> int:
        """Deliver every scheduled notification whose time has come; returns the number processed."""
        now = to_db_datetime(utcnow())
        conn = get_connection()
        try:
            cursor = conn.cursor()
            rows = cursor.execute(
                """
                SELECT n.id, n.title, n.message, n.channels, u.name, u.email, u.phone, u.preferences
                FROM notifications n JOIN users u ON u.id = n.recipient_id
                WHERE n.status = 'scheduled' AND n.scheduled_for <= ?
                ORDER BY n.scheduled_for
                """,
                (now,),
            ).fetchall()
            for row in rows:
                cls._dispatch(cursor, row["id"], dict(row), row["title"], row["message"], load_json(row["channels"], []))
                conn.commit()
        finally:
            conn.close()
        if rows:
            logger.info("Processed %s scheduled notifications", len(rows))
        return len(rows)

    @staticmethod
    def _row_to_read(row: sqlite3.Row) -> NotificationRead:
        return NotificationRead(
            id=row["id"],
            recipient_id=row["recipient_id"],
            type=row["type"],
            title=row["title"],
            message=row["message"],
            data=load_json(row["data"], {}) or {},
            priority=row["priority"],
            channels=load_json(row["channels"], ["in_app"]),
            status=row["status"],
            is_read=row["read_at"] is not None,
            scheduled_for=row["scheduled_for"],
            sent_at=row["sent_at"],
            delivered_at=row["delivered_at"],
            read_at=row["read_at"],
            expires_at=row["expires_at"],
            created_at=row["created_at"],
        )
