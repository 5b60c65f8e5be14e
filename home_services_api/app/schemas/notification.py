"""
Pydantic models for user notifications.

Every notification is stored for the in-app inbox; the ``channels``
list decides whether it is also delivered by e-mail or SMS.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

NotificationType = Literal["booking", "payment", "review", "system", "promotion", "provider"]
NotificationChannel = Literal["in_app", "email", "sms", "push"]
NotificationStatus = Literal["pending", "scheduled", "sent", "delivered", "read", "failed"]
NotificationPriority = Literal["low", "normal", "high", "urgent"]


class NotificationCreate(BaseModel):
    recipient_id: int
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=500)
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: NotificationPriority = "normal"
    channels: List[NotificationChannel] = Field(default_factory=lambda: ["in_app"])
    scheduled_for: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class NotificationRead(BaseModel):
    id: int
    recipient_id: int
    type: NotificationType
    title: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: NotificationPriority
    channels: List[NotificationChannel]
    status: NotificationStatus
    is_read: bool = False
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BulkNotificationResult(BaseModel):
    successful: int = 0
    failed: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)
