"""
Aggregations and maintenance operations for the admin panel.
"""

import csv
import io
import logging
import sqlite3
import time
from typing import Any, Dict, List, Optional, Tuple

from home_services_api.app.core.config import settings
from home_services_api.app.core.db import get_connection, utcnow
from home_services_api.app.core.security import ROLE_NAMES
from home_services_api.app.schemas.admin import AnnouncementCreate
from home_services_api.app.schemas.common import Pagination
from home_services_api.app.schemas.notification import BulkNotificationResult
from home_services_api.app.services.audit_service import AuditService
from home_services_api.app.services.notification_service import NotificationService
from home_services_api.app.services.payment_service import PaymentService
from home_services_api.app.services.provider_service import PROVIDER_SELECT, ProviderService
from home_services_api.app.services.sms_service import SMSService

logger = logging.getLogger(__name__)

STARTED_AT = time.time()

# Columns written by ``export_data`` per data type.  Secrets such as
# password hashes and tokens are never exported.
EXPORT_QUERIES: Dict[str, Tuple[str, List[str]]] = {
    "users": (
        "SELECT id, name, email, phone, role_id, is_active, is_email_verified, is_phone_verified, last_login, "
        "created_at FROM users ORDER BY id",
        ["id", "name", "email", "phone", "role", "is_active", "is_email_verified", "is_phone_verified",
         "last_login", "created_at"],
    ),
    "bookings": (
        "SELECT b.id, b.booking_number, b.customer_id, b.provider_id, s.name AS service_name, b.scheduled_date, "
        "b.status, b.base_price, b.tax, b.total_amount, b.payment_status, b.created_at "
        "FROM bookings b JOIN services s ON s.id = b.service_id ORDER BY b.id",
        ["id", "booking_number", "customer_id", "provider_id", "service_name", "scheduled_date", "status",
         "base_price", "tax", "total_amount", "payment_status", "created_at"],
    ),
    "reviews": (
        "SELECT id, booking_id, customer_id, provider_id, service_id, rating, comment, status, report_count, "
        "created_at FROM reviews ORDER BY id",
        ["id", "booking_id", "customer_id", "provider_id", "service_id", "rating", "comment", "status",
         "report_count", "created_at"],
    ),
}


class AdminService:
    """Service backing the ``/admin`` endpoints."""

    @classmethod
    async def get_dashboard_stats(cls) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            users = cursor.execute("SELECT role_id, COUNT(*) AS count FROM users GROUP BY role_id").fetchall()
            active_users = cursor.execute("SELECT COUNT(*) FROM users WHERE is_active = 1").fetchone()[0]
            providers = cursor.execute(
                "SELECT COUNT(*) AS total, COALESCE(SUM(is_verified), 0) AS verified FROM providers"
            ).fetchone()
            bookings = cursor.execute("SELECT status, COUNT(*) AS count FROM bookings GROUP BY status").fetchall()
            revenue = cursor.execute(
                """
                SELECT COALESCE(SUM(total_amount), 0) AS total,
                       COALESCE(SUM(CASE WHEN paid_at >= ? THEN total_amount ELSE 0 END), 0) AS this_month
                FROM bookings WHERE payment_status = 'paid'
                """,
                (utcnow().strftime("%Y-%m-01"),),
            ).fetchone()
            reviews = cursor.execute(
                "SELECT COUNT(*) AS total, COALESCE(AVG(rating), 0) AS average, "
                "SUM(CASE WHEN status = 'reported' THEN 1 ELSE 0 END) AS reported FROM reviews"
            ).fetchone()
            services = cursor.execute(
                "SELECT COUNT(*) AS total, COALESCE(SUM(is_active), 0) AS active FROM services"
            ).fetchone()
        finally:
            conn.close()
        by_role = {ROLE_NAMES.get(row["role_id"], str(row["role_id"])): row["count"] for row in users}
        by_status = {row["status"]: row["count"] for row in bookings}
        return {
            "users": {"total": sum(by_role.values()), "active": active_users, "by_role": by_role},
            "providers": {
                "total": providers["total"],
                "verified": providers["verified"],
                "pending_verification": providers["total"] - providers["verified"],
            },
            "services": {"total": services["total"], "active": services["active"]},
            "bookings": {"total": sum(by_status.values()), "by_status": by_status},
            "revenue": {"total": revenue["total"], "this_month": revenue["this_month"]},
            "reviews": {
                "total": reviews["total"],
                "average_rating": round(reviews["average"], 2),
                "reported": reviews["reported"] or 0,
            },
        }

    @classmethod
    async def get_pending_approvals(cls, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        """Provider profiles still waiting for verification, oldest first."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute("SELECT COUNT(*) FROM providers WHERE is_verified = 0").fetchone()[0]
            rows = cursor.execute(
                f"{PROVIDER_SELECT} WHERE p.is_verified = 0 ORDER BY p.created_at, p.id LIMIT ? OFFSET ?",
                (limit, (page - 1) * limit),
            ).fetchall()
            items = [ProviderService._row_to_read(cursor, row) for row in rows]
        finally:
            conn.close()
        return {"items": items, "pagination": Pagination.build(page, limit, total)}

    @classmethod
    async def get_system_health(cls) -> Dict[str, Any]:
        database: Dict[str, Any] = {"status": "ok"}
        conn = get_connection()
        try:
            started = time.perf_counter()
            conn.execute("SELECT 1").fetchone()
            database["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
            database["tables"] = {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in ("users", "providers", "services", "bookings", "reviews", "notifications")
            }
        except sqlite3.Error as exc:
            logger.error("Database health check failed: %s", exc)
            database = {"status": "error", "error": str(exc)}
        finally:
            conn.close()
        return {
            "status": "healthy" if database["status"] == "ok" else "degraded",
            "version": settings.api_version,
            "uptime_seconds": int(time.time() - STARTED_AT),
            "database": database,
            "integrations": {
                "payments": PaymentService.is_configured(),
                "email": bool(settings.smtp_host),
                "sms": SMSService.is_configured(),
            },
            "checked_at": utcnow(),
        }

    @classmethod
    async def get_activities(
        cls, page: int = 1, limit: int = 20, object_type: Optional[str] = None, action: Optional[str] = None
    ) -> Dict[str, Any]:
        logs = await AuditService.list_logs(
            object_type=object_type, action=action, limit=limit, offset=(page - 1) * limit
        )
        return {"items": logs["items"], "pagination": Pagination.build(page, limit, logs["total"])}

    @classmethod
    async def send_announcement(cls, data: AnnouncementCreate, admin_id: int) -> BulkNotificationResult:
        """Send a system notification to every active user of the chosen type.

        With ``send_email`` the announcement is also e-mailed; users who
        switched off e-mail notifications are skipped.
        """
        channels = ["in_app", "email"] if data.send_email else ["in_app"]
        result = await NotificationService.send_bulk_notification(
            title=data.title,
            message=data.message,
            type="system",
            priority=data.priority,
            channels=channels,
            role=data.user_type,
            scheduled_for=data.scheduled_for,
        )
        logger.info("Announcement '%s' sent to %s users", data.title, result.successful)
        await AuditService.log(
            admin_id,
            "announcement",
            "notification",
            None,
            details={"title": data.title, "user_type": data.user_type, "sent": result.successful},
        )
        return result

    @classmethod
    async def export_data(cls, data_type: str, fmt: str = "json") -> Tuple[Any, str]:
        """Export users, bookings or reviews.

        Returns ``(rows, "json")`` for JSON or ``(text, "csv")`` with a
        header line for CSV.
        """
        if data_type not in EXPORT_QUERIES:
            raise ValueError(f"Unknown export type: {data_type}")
        if fmt not in ("json", "csv"):
            raise ValueError(f"Unknown export format: {fmt}")
        query, columns = EXPORT_QUERIES[data_type]
        conn = get_connection()
        try:
            rows = [dict(row) for row in conn.execute(query).fetchall()]
        finally:
            conn.close()
        if data_type == "users":
            for row in rows:
                row["role"] = ROLE_NAMES.get(row.pop("role_id"), "customer")
        if fmt == "json":
            return rows, "json"
        output = io.StringIO()
        writer = csv.DictWriter(output, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)
        return output.getvalue(), "csv"
