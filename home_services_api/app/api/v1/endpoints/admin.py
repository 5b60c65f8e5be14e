"""
Administration endpoints.

Every route requires the ``admin`` role.  Besides the dashboards these
endpoints send announcements, export data and change the platform
settings.
"""

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from home_services_api.app.core.security import ROLE_ADMIN, require_roles
from home_services_api.app.schemas.admin import AnnouncementCreate, PlatformSettings, PlatformSettingsUpdate
from home_services_api.app.schemas.common import Page
from home_services_api.app.schemas.notification import BulkNotificationResult
from home_services_api.app.services.admin_service import AdminService
from home_services_api.app.services.notification_service import NotificationService
from home_services_api.app.services.settings_service import SettingsService

router = APIRouter()

admin_only = require_roles(ROLE_ADMIN)


@router.get("/dashboard/stats", summary="Platform overview")
async def dashboard_stats(current_user: dict = Depends(admin_only)) -> dict:
    return await AdminService.get_dashboard_stats()


@router.get("/pending-approvals", response_model=Page, summary="Providers awaiting verification")
async def pending_approvals(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(admin_only),
) -> Page:
    return Page(**await AdminService.get_pending_approvals(page, limit))


@router.get("/system/health", summary="System health")
async def system_health(current_user: dict = Depends(admin_only)) -> dict:
    return await AdminService.get_system_health()


@router.get("/system/activities", response_model=Page, summary="Recent audit log entries")
async def system_activities(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    object_type: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    current_user: dict = Depends(admin_only),
) -> Page:
    return Page(**await AdminService.get_activities(page, limit, object_type, action))


@router.post("/announcement", response_model=BulkNotificationResult, summary="Send an announcement")
async def send_announcement(
    data: AnnouncementCreate, current_user: dict = Depends(admin_only)
) -> BulkNotificationResult:
    return await AdminService.send_announcement(data, current_user["user_id"])


@router.post("/notifications/process-scheduled", summary="Deliver scheduled notifications that are due")
async def process_scheduled(current_user: dict = Depends(admin_only)) -> dict:
    return {"processed": await NotificationService.process_scheduled_notifications()}


@router.get("/export", summary="Export data as JSON or CSV")
async def export_data(
    data_type: Literal["users", "bookings", "reviews"] = Query(...),
    format: Literal["json", "csv"] = Query("json"),
    current_user: dict = Depends(admin_only),
):
    content, fmt = await AdminService.export_data(data_type, format)
    if fmt == "csv":
        filename = f"{data_type}_export_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )
    return {"data_type": data_type, "count": len(content), "items": content}


@router.get("/settings", response_model=PlatformSettings, summary="Platform settings")
async def get_settings(current_user: dict = Depends(admin_only)) -> PlatformSettings:
    return PlatformSettings(**await SettingsService.get_all())


@router.put("/settings", response_model=PlatformSettings, summary="Update platform settings")
async def update_settings(
    data: PlatformSettingsUpdate, current_user: dict = Depends(admin_only)
) -> PlatformSettings:
    changes = {key: value for key, value in data.model_dump(exclude_unset=True).items() if value is not None}
    return PlatformSettings(**await SettingsService.update(changes, current_user["user_id"]))
