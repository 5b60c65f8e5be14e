"""
Service layer for platform settings.

Settings are key/value pairs stored in the ``settings`` table with a
``type`` column used to convert the stored string back to a Python
value.  Administrators change them at runtime; other services read
them (for example the booking horizon or the review edit window).
"""

import json
import logging
from typing import Any, Dict, Optional

from home_services_api.app.core.db import DEFAULT_SETTINGS, get_connection
from home_services_api.app.services.audit_service import AuditService

logger = logging.getLogger(__name__)


class SettingsService:
    """Service for managing platform settings."""

    @classmethod
    async def get_all(cls) -> Dict[str, Any]:
        """Return all settings as a ``key -> value`` mapping."""
        conn = get_connection()
        try:
            rows = conn.execute("SELECT key, value, type FROM settings").fetchall()
        finally:
            conn.close()
        values = {key: cls._deserialize(value, type_str) for key, (value, type_str) in DEFAULT_SETTINGS.items()}
        for row in rows:
            values[row["key"]] = cls._deserialize(row["value"], row["type"])
        return values

    @classmethod
    async def get_value(cls, key: str, default: Any = None) -> Any:
        conn = get_connection()
        try:
            row = conn.execute("SELECT value, type FROM settings WHERE key = ?", (key,)).fetchone()
        finally:
            conn.close()
        if row:
            return cls._deserialize(row["value"], row["type"])
        if key in DEFAULT_SETTINGS:
            return cls._deserialize(*DEFAULT_SETTINGS[key])
        return default

    @classmethod
    async def update(cls, changes: Dict[str, Any], user_id: Optional[int] = None) -> Dict[str, Any]:
        """Insert or update several settings and return the full mapping.

        The stored type of a known key is kept; unknown keys are typed
        from the Python value.
        """
        if changes:
            conn = get_connection()
            try:
                cursor = conn.cursor()
                for key, value in changes.items():
                    type_str = DEFAULT_SETTINGS[key][1] if key in DEFAULT_SETTINGS else cls._type_of(value)
                    cursor.execute(
                        "INSERT INTO settings (key, value, type) VALUES (?, ?, ?)"
                        " ON CONFLICT(key) DO UPDATE SET value = excluded.value, type = excluded.type",
                        (key, cls._serialize(value, type_str), type_str),
                    )
                conn.commit()
            finally:
                conn.close()
            logger.info("Settings updated: %s", ", ".join(sorted(changes)))
            await AuditService.log(user_id, "update", "setting", details=changes)
        return await cls.get_all()

    @staticmethod
    def _type_of(value: Any) -> str:
        if isinstance(value, bool):
            return "bool"
        if isinstance(value, int):
            return "int"
        if isinstance(value, float):
            return "float"
        if isinstance(value, (dict, list)):
            return "json"
        return "str"

    @staticmethod
    def _serialize(value: Any, type_str: str) -> str:
        """Serialize a Python value to a string based on type."""
        if type_str == "int":
            return str(int(value))
        if type_str == "float":
            return str(float(value))
        if type_str == "bool":
            return "1" if bool(value) else "0"
        if type_str == "json":
            return json.dumps(value)
        return str(value)

    @staticmethod
    def _deserialize(value: str, type_str: str) -> Any:
        """Deserialize a string back to a Python value based on type."""
        if type_str == "int":
            return int(value)
        if type_str == "float":
            return float(value)
        if type_str == "bool":
            return value not in {"0", "false", "False", ""}
        if type_str == "json":
            return json.loads(value)
        return value
