"""
Service layer for reviews of completed bookings.

Each completed booking can be reviewed once by its customer.  The
provider and service are taken from the booking, never from the client.
Service and provider ratings are the average and count of their
``active`` reviews and are recomputed whenever a review is created,
changed, hidden or removed.

Reviews reported by ``REPORT_THRESHOLD`` different users become
``reported`` and wait for an administrator, who approves, hides or
deletes them.
"""

import logging
import sqlite3
from datetime import timedelta
from typing import Any, Dict, List, Optional

from home_services_api.app.core.db import dump_json, from_db_datetime, get_connection, load_json, to_db_datetime, utcnow
from home_services_api.app.core.exceptions import NotFoundError, PermissionDeniedError
from home_services_api.app.core.security import ROLE_ADMIN
from home_services_api.app.schemas.common import Pagination
from home_services_api.app.schemas.review import (
    RatingStats,
    ReviewAspects,
    ReviewCreate,
    ReviewRead,
    ReviewReport,
    ReviewUpdate,
)
from home_services_api.app.services.audit_service import AuditService
from home_services_api.app.services.notification_service import NotificationService
from home_services_api.app.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

REPORT_THRESHOLD = 3
SORT_FIELDS = {"created_at", "rating"}

REVIEW_SELECT = "SELECT r.*, u.name AS customer_name FROM reviews r JOIN users u ON u.id = r.customer_id"


class ReviewService:
    """Service for creating, listing and moderating reviews."""

    @staticmethod
    def _row_to_read(row: sqlite3.Row, public: bool = False) -> ReviewRead:
        """Convert a row; ``public`` hides the author of anonymous reviews."""
        aspects = load_json(row["aspects"], None)
        hide_author = public and bool(row["is_anonymous"])
        return ReviewRead(
            id=row["id"],
            booking_id=row["booking_id"],
            customer_id=None if hide_author else row["customer_id"],
            customer_name="Anonymous" if hide_author else row["customer_name"],
            provider_id=row["provider_id"],
            service_id=row["service_id"],
            rating=row["rating"],
            comment=row["comment"],
            aspects=ReviewAspects(**aspects) if aspects else None,
            images=load_json(row["images"], []),
            is_anonymous=bool(row["is_anonymous"]),
            status=row["status"],
            report_count=row["report_count"],
            provider_response=row["provider_response"],
            response_date=row["response_date"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _fetch_row(cursor: sqlite3.Cursor, review_id: int) -> sqlite3.Row:
        row = cursor.execute(f"{REVIEW_SELECT} WHERE r.id = ?", (review_id,)).fetchone()
        if not row:
            raise NotFoundError(f"Review {review_id} not found")
        return row

    @staticmethod
    def recalculate_ratings(cursor: sqlite3.Cursor, service_id: int, provider_id: int) -> None:
        """Refresh the cached rating and review count of a service and a provider."""
        service = cursor.execute(
            "SELECT COALESCE(AVG(rating), 0) AS average, COUNT(*) AS total FROM reviews "
            "WHERE service_id = ? AND status = 'active'",
            (service_id,),
        ).fetchone()
        cursor.execute(
            "UPDATE services SET average_rating = ?, total_reviews = ? WHERE id = ?",
            (round(service["average"], 2), service["total"], service_id),
        )
        provider = cursor.execute(
            "SELECT COALESCE(AVG(rating), 0) AS average, COUNT(*) AS total FROM reviews "
            "WHERE provider_id = ? AND status = 'active'",
            (provider_id,),
        ).fetchone()
        cursor.execute(
            "UPDATE providers SET rating = ?, total_reviews = ? WHERE id = ?",
            (round(provider["average"], 2), provider["total"], provider_id),
        )

    @staticmethod
    def _rating_stats(cursor: sqlite3.Cursor, column: str, value: int) -> RatingStats:
        rows = cursor.execute(
            f"SELECT rating, COUNT(*) AS count FROM reviews WHERE {column} = ? AND status = 'active' GROUP BY rating",
            (value,),
        ).fetchall()
        distribution = {star: 0 for star in range(5, 0, -1)}
        for row in rows:
            distribution[row["rating"]] = row["count"]
        total = sum(distribution.values())
        average = sum(star * count for star, count in distribution.items()) / total if total else 0
        return RatingStats(average_rating=round(average, 2), total_reviews=total, distribution=distribution)

    # ------------------------------------------------------------------
    # Customer operations
    # ------------------------------------------------------------------

    @classmethod
    async def create_review(cls, data: ReviewCreate, customer_id: int) -> ReviewRead:
        """Review a completed booking of the calling customer.

        Raises
        ------
        NotFoundError
            The booking does not exist.
        PermissionDeniedError
            The booking belongs to someone else.
        ValueError
            The booking is not completed or was already reviewed.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            booking = cursor.execute(
                "SELECT b.id, b.customer_id, b.provider_id, b.service_id, b.status, s.name AS service_name, "
                "p.user_id AS provider_user_id "
                "FROM bookings b JOIN services s ON s.id = b.service_id JOIN providers p ON p.id = b.provider_id "
                "WHERE b.id = ?",
                (data.booking_id,),
            ).fetchone()
            if not booking:
                raise NotFoundError(f"Booking {data.booking_id} not found")
            if booking["customer_id"] != customer_id:
                raise PermissionDeniedError("You can only review your own bookings")
            if booking["status"] != "completed":
                raise ValueError("Only completed bookings can be reviewed")
            if cursor.execute("SELECT id FROM reviews WHERE booking_id = ?", (data.booking_id,)).fetchone():
                raise ValueError("This booking has already been reviewed")
            cursor.execute(
                """
                INSERT INTO reviews (booking_id, customer_id, provider_id, service_id, rating, comment, aspects,
                                     images, is_anonymous)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data.booking_id,
                    customer_id,
                    booking["provider_id"],
                    booking["service_id"],
                    data.rating,
                    data.comment,
                    dump_json(data.aspects.model_dump()) if data.aspects else None,
                    dump_json(data.images),
                    int(data.is_anonymous),
                ),
            )
            review_id = cursor.lastrowid
            cls.recalculate_ratings(cursor, booking["service_id"], booking["provider_id"])
            conn.commit()
            review = cls._row_to_read(cls._fetch_row(cursor, review_id))
        finally:
            conn.close()
        logger.info("Review %s created for booking %s", review_id, data.booking_id)
        await AuditService.log(customer_id, "create", "review", review_id, details={"rating": data.rating})
        await NotificationService.notify_template(
            booking["provider_user_id"],
            "provider",
            "review",
            {"rating": data.rating, "service_name": booking["service_name"], "review_id": review_id},
        )
        return review

    @classmethod
    async def update_review(cls, review_id: int, data: ReviewUpdate, user_id: int) -> ReviewRead:
        """Edit one's own review within ``review_edit_window`` days of writing it."""
        changes = data.model_dump(exclude_unset=True)
        window_days = int(await SettingsService.get_value("review_edit_window", 7))
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, review_id)
            if row["customer_id"] != user_id:
                raise PermissionDeniedError("You can only edit your own reviews")
            if utcnow() - from_db_datetime(row["created_at"]) > timedelta(days=window_days):
                raise ValueError(f"Reviews can only be edited within {window_days} days")
            values: Dict[str, Any] = {}
            if changes.get("rating") is not None:
                values["rating"] = changes["rating"]
            if "comment" in changes:
                values["comment"] = changes["comment"]
            if "aspects" in changes:
                values["aspects"] = dump_json(changes["aspects"])
            if changes.get("images") is not None:
                values["images"] = dump_json(changes["images"])
            if values:
                values["updated_at"] = to_db_datetime(utcnow())
                assignments = ", ".join(f"{column} = ?" for column in values)
                cursor.execute(f"UPDATE reviews SET {assignments} WHERE id = ?", tuple(values.values()) + (review_id,))
                cls.recalculate_ratings(cursor, row["service_id"], row["provider_id"])
                conn.commit()
            review = cls._row_to_read(cls._fetch_row(cursor, review_id))
        finally:
            conn.close()
        if values:
            await AuditService.log(user_id, "update", "review", review_id, details={"fields": sorted(changes)})
        return review

    @classmethod
    async def delete_review(cls, review_id: int, user: Dict[str, Any]) -> None:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, review_id)
            if row["customer_id"] != user["user_id"] and user["role_id"] != ROLE_ADMIN:
                raise PermissionDeniedError("Not authorized to delete this review")
            cursor.execute("DELETE FROM reviews WHERE id = ?", (review_id,))
            cls.recalculate_ratings(cursor, row["service_id"], row["provider_id"])
            conn.commit()
        finally:
            conn.close()
        await AuditService.log(user["user_id"], "delete", "review", review_id)

    @classmethod
    async def report_review(cls, review_id: int, data: ReviewReport, user_id: int) -> ReviewRead:
        """Record a report; the review becomes ``reported`` once enough users have reported it."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, review_id)
            if row["customer_id"] == user_id:
                raise ValueError("You cannot report your own review")
            try:
                cursor.execute(
                    "INSERT INTO review_reports (review_id, user_id, reason, description) VALUES (?, ?, ?, ?)",
                    (review_id, user_id, data.reason, data.description),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("You have already reported this review") from exc
            cursor.execute(
                """
                UPDATE reviews
                SET report_count = report_count + 1,
                    status = CASE WHEN report_count + 1 >= ? AND status = 'active' THEN 'reported' ELSE status END
                WHERE id = ?
                """,
                (REPORT_THRESHOLD, review_id),
            )
            if row["status"] == "active":
                cls.recalculate_ratings(cursor, row["service_id"], row["provider_id"])
            conn.commit()
            review = cls._row_to_read(cls._fetch_row(cursor, review_id))
        finally:
            conn.close()
        if review.status == "reported" and row["status"] == "active":
            logger.info("Review %s flagged for moderation after %s reports", review_id, review.report_count)
        await AuditService.log(user_id, "report", "review", review_id, details={"reason": data.reason})
        return review

    @classmethod
    async def respond_to_review(cls, review_id: int, response: str, user_id: int) -> ReviewRead:
        """Let the reviewed provider answer a review once."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, review_id)
            owner = cursor.execute("SELECT user_id FROM providers WHERE id = ?", (row["provider_id"],)).fetchone()
            if not owner or owner["user_id"] != user_id:
                raise PermissionDeniedError("Only the reviewed provider can respond")
            if row["provider_response"]:
                raise ValueError("You have already responded to this review")
            now = to_db_datetime(utcnow())
            cursor.execute(
                "UPDATE reviews SET provider_response = ?, response_date = ?, updated_at = ? WHERE id = ?",
                (response.strip(), now, now, review_id),
            )
            conn.commit()
            review = cls._row_to_read(cls._fetch_row(cursor, review_id))
        finally:
            conn.close()
        await AuditService.log(user_id, "respond", "review", review_id)
        await NotificationService.notify(
            row["customer_id"],
            "review",
            "Provider Responded",
            "The provider has responded to your review.",
            {"review_id": review_id},
        )
        return review

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    @classmethod
    async def _list_public(
        cls,
        column: str,
        value: int,
        page: int,
        limit: int,
        rating: Optional[int],
        sort_by: Optional[str],
        order: Optional[str],
    ) -> Dict[str, Any]:
        where_clauses = [f"r.{column} = ?", "r.status = 'active'"]
        params: List[Any] = [value]
        if rating is not None:
            where_clauses.append("r.rating = ?")
            params.append(rating)
        where_sql = " WHERE " + " AND ".join(where_clauses)
        sort_field = sort_by if sort_by in SORT_FIELDS else "created_at"
        sort_order = order.upper() if order and order.lower() in {"asc", "desc"} else "DESC"
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute(f"SELECT COUNT(*) FROM reviews r{where_sql}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"{REVIEW_SELECT}{where_sql} ORDER BY r.{sort_field} {sort_order}, r.id DESC LIMIT ? OFFSET ?",
                tuple(params + [limit, (page - 1) * limit]),
            ).fetchall()
            stats = cls._rating_stats(cursor, column, value)
        finally:
            conn.close()
        return {
            "items": [cls._row_to_read(row, public=True) for row in rows],
            "stats": stats,
            "pagination": Pagination.build(page, limit, total),
        }

    @classmethod
    async def list_for_service(
        cls,
        service_id: int,
        page: int = 1,
        limit: int = 10,
        rating: Optional[int] = None,
        sort_by: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Dict[str, Any]:
        conn = get_connection()
        try:
            if not conn.execute("SELECT id FROM services WHERE id = ?", (service_id,)).fetchone():
                raise NotFoundError(f"Service {service_id} not found")
        finally:
            conn.close()
        return await cls._list_public("service_id", service_id, page, limit, rating, sort_by, order)

    @classmethod
    async def list_for_provider(
        cls,
        provider_id: int,
        page: int = 1,
        limit: int = 10,
        rating: Optional[int] = None,
        sort_by: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Dict[str, Any]:
        conn = get_connection()
        try:
            if not conn.execute("SELECT id FROM providers WHERE id = ?", (provider_id,)).fetchone():
                raise NotFoundError(f"Provider {provider_id} not found")
        finally:
            conn.close()
        return await cls._list_public("provider_id", provider_id, page, limit, rating, sort_by, order)

    @classmethod
    async def list_my_reviews(cls, user_id: int, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute("SELECT COUNT(*) FROM reviews WHERE customer_id = ?", (user_id,)).fetchone()[0]
            rows = cursor.execute(
                f"{REVIEW_SELECT} WHERE r.customer_id = ? ORDER BY r.created_at DESC, r.id DESC LIMIT ? OFFSET ?",
                (user_id, limit, (page - 1) * limit),
            ).fetchall()
        finally:
            conn.close()
        return {"items": [cls._row_to_read(row) for row in rows], "pagination": Pagination.build(page, limit, total)}

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    @classmethod
    async def list_reported(cls, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute("SELECT COUNT(*) FROM reviews WHERE status = 'reported'").fetchone()[0]
            rows = cursor.execute(
                f"{REVIEW_SELECT} WHERE r.status = 'reported' ORDER BY r.report_count DESC, r.id LIMIT ? OFFSET ?",
                (limit, (page - 1) * limit),
            ).fetchall()
        finally:
            conn.close()
        return {"items": [cls._row_to_read(row) for row in rows], "pagination": Pagination.build(page, limit, total)}

    @classmethod
    async def moderate_review(
        cls, review_id: int, action: str, admin_id: int, reason: Optional[str] = None
    ) -> Optional[ReviewRead]:
        """Apply a moderation decision; returns ``None`` when the review was deleted.

        ``approve`` reactivates the review and clears its reports,
        ``hide`` removes it from public listings and ``delete`` removes
        it entirely.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cls._fetch_row(cursor, review_id)
            now = to_db_datetime(utcnow())
            if action == "approve":
                cursor.execute("DELETE FROM review_reports WHERE review_id = ?", (review_id,))
                cursor.execute(
                    "UPDATE reviews SET status = 'active', report_count = 0, moderated_by = ?, updated_at = ? "
                    "WHERE id = ?",
                    (admin_id, now, review_id),
                )
            elif action == "hide":
                cursor.execute(
                    "UPDATE reviews SET status = 'hidden', moderated_by = ?, updated_at = ? WHERE id = ?",
                    (admin_id, now, review_id),
                )
            elif action == "delete":
                cursor.execute("DELETE FROM reviews WHERE id = ?", (review_id,))
            else:
                raise ValueError(f"Unknown moderation action: {action}")
            cls.recalculate_ratings(cursor, row["service_id"], row["provider_id"])
            conn.commit()
            review = None if action == "delete" else cls._row_to_read(cls._fetch_row(cursor, review_id))
        finally:
            conn.close()
        logger.info("Review %s moderated (%s) by admin %s", review_id, action, admin_id)
        await AuditService.log(admin_id, f"moderate_{action}", "review", review_id, details={"reason": reason})
        return review

    @classmethod
    async def get_stats(cls) -> Dict[str, Any]:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            by_status = cursor.execute("SELECT status, COUNT(*) AS count FROM reviews GROUP BY status").fetchall()
            overall = cursor.execute(
                "SELECT COUNT(*) AS total, COALESCE(AVG(rating), 0) AS average, "
                "SUM(CASE WHEN provider_response IS NOT NULL THEN 1 ELSE 0 END) AS responded "
                "FROM reviews"
            ).fetchone()
            distribution_rows = cursor.execute(
                "SELECT rating, COUNT(*) AS count FROM reviews WHERE status = 'active' GROUP BY rating"
            ).fetchall()
            recent = cursor.execute(
                "SELECT COUNT(*) FROM reviews WHERE created_at >= ?",
                (to_db_datetime(utcnow() - timedelta(days=30)),),
            ).fetchone()[0]
        finally:
            conn.close()
        distribution = {star: 0 for star in range(5, 0, -1)}
        for row in distribution_rows:
            distribution[row["rating"]] = row["count"]
        total = overall["total"] or 0
        return {
            "total_reviews": total,
            "by_status": {row["status"]: row["count"] for row in by_status},
            "average_rating": round(overall["average"], 2),
            "distribution": distribution,
            "response_rate": round((overall["responded"] or 0) / total * 100, 1) if total else 0,
            "last_30_days": recent,
        }
