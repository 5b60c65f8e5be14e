"""Pydantic models for the administration endpoints."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .notification import NotificationPriority


class AnnouncementCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=500)
    user_type: Literal["all", "customer", "provider", "admin"] = "all"
    priority: NotificationPriority = "normal"
    send_email: bool = False
    scheduled_for: Optional[datetime] = Field(None, description="Deliver later instead of immediately")


class PlatformSettings(BaseModel):
    platform_fee_percentage: float = Field(..., ge=0, le=100)
    max_booking_days: int = Field(..., ge=1, le=365)
    review_edit_window: int = Field(..., ge=1, le=30, description="Days during which a review may be edited")
    maintenance_mode: bool
    allow_new_registrations: bool


class PlatformSettingsUpdate(BaseModel):
    platform_fee_percentage: Optional[float] = Field(None, ge=0, le=100)
    max_booking_days: Optional[int] = Field(None, ge=1, le=365)
    review_edit_window: Optional[int] = Field(None, ge=1, le=30)
    maintenance_mode: Optional[bool] = None
    allow_new_registrations: Optional[bool] = None
