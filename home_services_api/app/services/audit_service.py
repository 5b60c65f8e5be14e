"""
Audit service for recording and querying system actions.

Every create, update, delete and moderation action performed through
the API is written to the ``audit_logs`` table.  Administrators read
the trail through ``GET /admin/system/activities``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional

from home_services_api.app.core.db import get_connection, load_json

logger = logging.getLogger(__name__)


class AuditService:
    """Service class for writing and retrieving audit logs."""

    @classmethod
    async def log(
        cls,
        user_id: Optional[int],
        action: str,
        object_type: str,
        object_id: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Insert a new audit record.

        Parameters
        ----------
        user_id : Optional[int]
            ID of the user performing the action.  ``None`` for
            system-initiated actions such as gateway webhooks.
        action : str
            Short verb for the action (``create``, ``update``, ``cancel``...).
        object_type : str
            Kind of record affected (``booking``, ``review``, ``payment``...).
        object_id : Optional[int]
            Primary key of the affected record, if applicable.
        details : Optional[dict]
            Additional structured data, stored as JSON.

        A failure to write the audit row is logged and never propagated:
        the action it describes has already been committed.
        """
        conn = get_connection()
        try:
            conn.execute(
                """
                INSERT INTO audit_logs (user_id, action, object_type, object_id, details)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, action, object_type, object_id, json.dumps(details) if details else None),
            )
            conn.commit()
        except sqlite3.Error as exc:
            logger.warning("Could not write audit log %s %s#%s: %s", action, object_type, object_id, exc)
        finally:
            conn.close()

    @classmethod
    async def list_logs(
        cls,
        user_id: Optional[int] = None,
        object_type: Optional[str] = None,
        action: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """Retrieve audit records, newest first, with optional filters.

        Date filters accept ISO date strings (``YYYY-MM-DD``) and apply
        to the ``timestamp`` column.  Returns ``{"items": [...], "total": n}``.
        """
        conn = get_connection()
        try:
            cursor = conn.cursor()
            where_clauses: List[str] = []
            params: List[Any] = []
            if user_id is not None:
                where_clauses.append("a.user_id = ?")
                params.append(user_id)
            if object_type:
                where_clauses.append("a.object_type = ?")
                params.append(object_type)
            if action:
                where_clauses.append("a.action = ?")
                params.append(action)
            if start_date:
                where_clauses.append("a.timestamp >= ?")
                params.append(start_date)
            if end_date:
                where_clauses.append("a.timestamp < date(?, '+1 day')")
                params.append(end_date)
            where_sql = (" WHERE " + " AND ".join(where_clauses)) if where_clauses else ""
            total = cursor.execute(f"SELECT COUNT(*) FROM audit_logs a{where_sql}", tuple(params)).fetchone()[0]
            rows = cursor.execute(
                "SELECT a.id, a.user_id, u.name AS user_name, a.action, a.object_type, a.object_id, "
                "a.timestamp, a.details FROM audit_logs a LEFT JOIN users u ON u.id = a.user_id"
                f"{where_sql} ORDER BY a.timestamp DESC, a.id DESC LIMIT ? OFFSET ?",
                tuple(params + [limit, offset]),
            ).fetchall()
            items = []
            for row in rows:
                entry = dict(row)
                entry["details"] = load_json(row["details"], row["details"])
                items.append(entry)
            return {"items": items, "total": total}
        finally:
            conn.close()
