"""Liveness and readiness checks, mounted outside the versioned API."""

import logging
import sqlite3

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from home_services_api.app.core.config import settings
from home_services_api.app.core.db import get_connection, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", summary="Liveness check")
async def health() -> dict:
    return {"status": "ok", "version": settings.api_version, "timestamp": utcnow()}


@router.get("/health/ready", summary="Readiness check")
async def ready():
    """Answer 503 when the database cannot be queried."""
    try:
        conn = get_connection()
        try:
            conn.execute("SELECT 1").fetchone()
        finally:
            conn.close()
    except sqlite3.Error as exc:
        logger.error("Readiness check failed: %s", exc)
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "error"})
    return {"status": "ready", "database": "ok"}
