"""Endpoints for the authenticated user's notification inbox."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from home_services_api.app.core.security import get_current_user
from home_services_api.app.schemas.common import MessageResponse
from home_services_api.app.schemas.notification import NotificationRead, NotificationType
from home_services_api.app.services.notification_service import NotificationService

router = APIRouter()


@router.get("/", summary="List notifications")
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    type_filter: Optional[NotificationType] = Query(None, alias="type"),
    current_user: dict = Depends(get_current_user),
) -> dict:
    return await NotificationService.list_for_user(current_user["user_id"], page, limit, unread_only, type_filter)


@router.get("/stats", summary="Notification counts")
async def notification_stats(current_user: dict = Depends(get_current_user)) -> dict:
    return await NotificationService.get_stats(current_user["user_id"])


@router.put("/read-all", response_model=MessageResponse, summary="Mark every notification as read")
async def mark_all_read(current_user: dict = Depends(get_current_user)) -> MessageResponse:
    count = await NotificationService.mark_all_as_read(current_user["user_id"])
    return MessageResponse(message=f"{count} notifications marked as read")


@router.put("/{notification_id}/read", response_model=NotificationRead, summary="Mark a notification as read")
async def mark_read(notification_id: int, current_user: dict = Depends(get_current_user)) -> NotificationRead:
    return await NotificationService.mark_as_read(notification_id, current_user["user_id"])


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a notification")
async def delete_notification(notification_id: int, current_user: dict = Depends(get_current_user)) -> None:
    await NotificationService.delete_notification(notification_id, current_user["user_id"])
