"""
Business logic for the service catalogue.

Services are created and maintained by administrators and browsed by
everyone.  Deleting a service only deactivates it, so existing bookings
and reviews keep a valid reference.  ``popularity`` counts bookings and
``average_rating``/``total_reviews`` are maintained by
``ReviewService.recalculate_ratings``.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from home_services_api.app.core.db import dump_json, get_connection, load_json, to_db_datetime, utcnow
from home_services_api.app.core.exceptions import NotFoundError
from home_services_api.app.schemas.common import Pagination
from home_services_api.app.schemas.service import (
    SERVICE_CATEGORIES,
    CategorySummary,
    ServiceCreate,
    ServiceRead,
    ServiceUpdate,
)
from home_services_api.app.services.audit_service import AuditService

logger = logging.getLogger(__name__)

SORT_FIELDS = {"created_at", "name", "base_price", "popularity", "average_rating", "duration"}
JSON_FIELDS = ("tags", "requirements", "images")


class CatalogService:
    """Service for browsing and administering the service catalogue."""

    @staticmethod
    def _row_to_read(row: sqlite3.Row) -> ServiceRead:
        return ServiceRead(
            id=row["id"],
            name=row["name"],
            category=row["category"],
            subcategory=row["subcategory"],
            description=row["description"],
            long_description=row["long_description"],
            base_price=row["base_price"],
            price_unit=row["price_unit"],
            duration=row["duration"],
            tags=load_json(row["tags"], []),
            requirements=load_json(row["requirements"], []),
            images=load_json(row["images"], []),
            is_active=bool(row["is_active"]),
            popularity=row["popularity"],
            average_rating=row["average_rating"],
            total_reviews=row["total_reviews"],
            created_at=row["created_at"],
        )

    @classmethod
    async def list_services(
        cls,
        page: int = 1,
        limit: int = 12,
        category: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        search: Optional[str] = None,
        min_rating: Optional[float] = None,
        sort_by: Optional[str] = None,
        order: Optional[str] = None,
        include_inactive: bool = False,
    ) -> Dict[str, Any]:
        """List services with filters, sorting and pagination.

        ``sort_by`` may be one of ``created_at`` (default), ``name``,
        ``base_price``, ``popularity``, ``average_rating`` or
        ``duration``; ``order`` is ``asc`` or ``desc`` (default).
        """
        where_clauses: List[str] = []
        params: List[Any] = []
        if not include_inactive:
            where_clauses.append("is_active = 1")
        if category:
            where_clauses.append("category = ?")
            params.append(category)
        if min_price is not None:
            where_clauses.append("base_price >= ?")
            params.append(min_price)
        if max_price is not None:
            where_clauses.append("base_price <= ?")
            params.append(max_price)
        if min_rating is not None:
            where_clauses.append("average_rating >= ?")
            params.append(min_rating)
        if search:
            where_clauses.append("(name LIKE ? OR description LIKE ? OR tags LIKE ? OR subcategory LIKE ?)")
            params.extend([f"%{search}%"] * 4)
        where_sql = (" WHERE " + " AND ".join(where_clauses)) if where_clauses else ""
        sort_field = sort_by if sort_by in SORT_FIELDS else "created_at"
        sort_order = order.upper() if order and order.lower() in {"asc", "desc"} else "DESC"
        conn = get_connection()
        try:
            cursor = conn.cursor()
            total = cursor.execute(f"SELECT COUNT(*) FROM services{where_sql}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                f"SELECT * FROM services{where_sql} ORDER BY {sort_field} {sort_order}, id DESC LIMIT ? OFFSET ?",
                tuple(params + [limit, (page - 1) * limit]),
            ).fetchall()
        finally:
            conn.close()
        return {"items": [cls._row_to_read(row) for row in rows], "pagination": Pagination.build(page, limit, total)}

    @classmethod
    async def get_popular(cls, limit: int = 8) -> List[ServiceRead]:
        conn = get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM services WHERE is_active = 1 "
                "ORDER BY popularity DESC, average_rating DESC, id LIMIT ?",
                (limit,),
            ).fetchall()
        finally:
            conn.close()
        return [cls._row_to_read(row) for row in rows]

    @classmethod
    async def get_categories(cls) -> List[CategorySummary]:
        """Active categories with their number of services and average base price."""
        conn = get_connection()
        try:
            rows = conn.execute(
                "SELECT category, COUNT(*) AS count, AVG(base_price) AS average_price "
                "FROM services WHERE is_active = 1 GROUP BY category ORDER BY count DESC, category"
            ).fetchall()
        finally:
            conn.close()
        return [
            CategorySummary(category=row["category"], count=row["count"], average_price=round(row["average_price"], 2))
            for row in rows
        ]

    @classmethod
    async def search(cls, query: str, limit: int = 20) -> List[ServiceRead]:
        """Rank active services matching ``query``: name matches first, then popularity."""
        pattern = f"%{query.strip()}%"
        conn = get_connection()
        try:
            rows = conn.execute(
                """
                SELECT *, CASE WHEN name LIKE ? THEN 0 WHEN category LIKE ? THEN 1 ELSE 2 END AS relevance
                FROM services
                WHERE is_active = 1
                  AND (name LIKE ? OR category LIKE ? OR subcategory LIKE ? OR description LIKE ? OR tags LIKE ?)
                ORDER BY relevance, popularity DESC, average_rating DESC
                LIMIT ?
                """,
                (pattern, pattern, pattern, pattern, pattern, pattern, pattern, limit),
            ).fetchall()
        finally:
            conn.close()
        return [cls._row_to_read(row) for row in rows]

    @classmethod
    async def get_service(cls, service_id: int, include_inactive: bool = False) -> ServiceRead:
        conn = get_connection()
        try:
            row = conn.execute("SELECT * FROM services WHERE id = ?", (service_id,)).fetchone()
        finally:
            conn.close()
        if not row or (not row["is_active"] and not include_inactive):
            raise NotFoundError(f"Service {service_id} not found")
        return cls._row_to_read(row)

    @classmethod
    async def create_service(cls, data: ServiceCreate, admin_id: Optional[int] = None) -> ServiceRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO services (name, category, subcategory, description, long_description, base_price,
                                      price_unit, duration, tags, requirements, images)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    data.name,
                    data.category,
                    data.subcategory,
                    data.description,
                    data.long_description,
                    data.base_price,
                    data.price_unit,
                    data.duration,
                    dump_json(data.tags),
                    dump_json(data.requirements),
                    dump_json(data.images),
                ),
            )
            service_id = cursor.lastrowid
            conn.commit()
            row = cursor.execute("SELECT * FROM services WHERE id = ?", (service_id,)).fetchone()
        finally:
            conn.close()
        logger.info("Service %s created", service_id)
        await AuditService.log(admin_id, "create", "service", service_id, details={"name": data.name})
        return cls._row_to_read(row)

    @classmethod
    async def update_service(cls, service_id: int, data: ServiceUpdate, admin_id: Optional[int] = None) -> ServiceRead:
        changes = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
        conn = get_connection()
        try:
            cursor = conn.cursor()
            if not cursor.execute("SELECT id FROM services WHERE id = ?", (service_id,)).fetchone():
                raise NotFoundError(f"Service {service_id} not found")
            if changes:
                values = dict(changes)
                for field in JSON_FIELDS:
                    if field in values:
                        values[field] = dump_json(values[field])
                if "is_active" in values:
                    values["is_active"] = int(values["is_active"])
                values["updated_at"] = to_db_datetime(utcnow())
                assignments = ", ".join(f"{column} = ?" for column in values)
                cursor.execute(
                    f"UPDATE services SET {assignments} WHERE id = ?",
                    tuple(values.values()) + (service_id,),
                )
                conn.commit()
            row = cursor.execute("SELECT * FROM services WHERE id = ?", (service_id,)).fetchone()
        finally:
            conn.close()
        if changes:
            await AuditService.log(admin_id, "update", "service", service_id, details={"fields": sorted(changes)})
        return cls._row_to_read(row)

    @classmethod
    async def delete_service(cls, service_id: int, admin_id: Optional[int] = None) -> None:
        """Soft delete: the service is hidden from the catalogue but kept for history."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE services SET is_active = 0, updated_at = ? WHERE id = ?",
                (to_db_datetime(utcnow()), service_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError(f"Service {service_id} not found")
            conn.commit()
        finally:
            conn.close()
        await AuditService.log(admin_id, "delete", "service", service_id)

    @classmethod
    async def toggle_status(cls, service_id: int, admin_id: Optional[int] = None) -> ServiceRead:
        conn = get_connection()
        try:
            cursor = conn.cursor()
            row = cursor.execute("SELECT is_active FROM services WHERE id = ?", (service_id,)).fetchone()
            if not row:
                raise NotFoundError(f"Service {service_id} not found")
            new_value = 0 if row["is_active"] else 1
            cursor.execute(
                "UPDATE services SET is_active = ?, updated_at = ? WHERE id = ?",
                (new_value, to_db_datetime(utcnow()), service_id),
            )
            conn.commit()
            row = cursor.execute("SELECT * FROM services WHERE id = ?", (service_id,)).fetchone()
        finally:
            conn.close()
        await AuditService.log(admin_id, "toggle_status", "service", service_id, details={"is_active": bool(new_value)})
        return cls._row_to_read(row)

    @classmethod
    async def get_stats(cls) -> Dict[str, Any]:
        """Catalogue overview for administrators."""
        conn = get_connection()
        try:
            cursor = conn.cursor()
            overview = cursor.execute(
                "SELECT COUNT(*) AS total, SUM(is_active) AS active, AVG(base_price) AS average_price, "
                "AVG(CASE WHEN total_reviews > 0 THEN average_rating END) AS average_rating FROM services"
            ).fetchone()
            by_category = cursor.execute(
                "SELECT category, COUNT(*) AS count, SUM(is_active) AS active, AVG(base_price) AS average_price "
                "FROM services GROUP BY category ORDER BY category"
            ).fetchall()
            top = cursor.execute(
                "SELECT id, name, category, popularity, average_rating FROM services "
                "ORDER BY popularity DESC, average_rating DESC LIMIT 5"
            ).fetchall()
        finally:
            conn.close()
        total = overview["total"] or 0
        active = overview["active"] or 0
        return {
            "total_services": total,
            "active_services": active,
            "inactive_services": total - active,
            "average_price": round(overview["average_price"] or 0, 2),
            "average_rating": round(overview["average_rating"] or 0, 2),
            "by_category": [
                {
                    "category": row["category"],
                    "count": row["count"],
                    "active": row["active"] or 0,
                    "average_price": round(row["average_price"] or 0, 2),
                }
                for row in by_category
            ],
            "categories_available": list(SERVICE_CATEGORIES),
            "most_popular": [dict(row) for row in top],
        }
