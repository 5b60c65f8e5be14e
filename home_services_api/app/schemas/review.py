"""
Pydantic schemas for reviews of completed bookings.

A customer may review each completed booking once.  Reviews carry an
overall rating, optional per-aspect ratings, and may be reported by
other users or moderated by administrators.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

ReviewStatus = Literal["active", "reported", "hidden"]
ReportReason = Literal["spam", "inappropriate", "fake", "offensive", "other"]


def _clean_comment(v: Optional[str]) -> Optional[str]:
    """Trim whitespace from the comment and enforce a maximum length."""
    if v is None:
        return None
    v = v.strip()
    if len(v) > 1000:
        raise ValueError("Comment must be 1000 characters or fewer")
    return v or None


class ReviewAspects(BaseModel):
    punctuality: Optional[int] = Field(None, ge=1, le=5)
    quality: Optional[int] = Field(None, ge=1, le=5)
    professionalism: Optional[int] = Field(None, ge=1, le=5)
    value_for_money: Optional[int] = Field(None, ge=1, le=5)


class ReviewCreate(BaseModel):
    """Schema for creating a new review."""

    booking_id: int = Field(..., description="Completed booking being reviewed")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    comment: Optional[str] = Field(None, description="Optional textual comment")
    aspects: Optional[ReviewAspects] = None
    images: List[str] = Field(default_factory=list, max_length=5)
    is_anonymous: bool = False

    @field_validator("comment")
    @classmethod
    def sanitize_comment(cls, v: Optional[str]) -> Optional[str]:
        return _clean_comment(v)


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None
    aspects: Optional[ReviewAspects] = None
    images: Optional[List[str]] = Field(None, max_length=5)

    @field_validator("comment")
    @classmethod
    def sanitize_comment(cls, v: Optional[str]) -> Optional[str]:
        return _clean_comment(v)


class ReviewReport(BaseModel):
    reason: ReportReason
    description: Optional[str] = Field(None, max_length=500)


class ReviewResponseCreate(BaseModel):
    response: str = Field(..., min_length=1, max_length=500)


class ReviewModerate(BaseModel):
    """Schema for moderating a review."""

    action: Literal["approve", "hide", "delete"]
    reason: Optional[str] = Field(None, max_length=500)


class ReviewRead(BaseModel):
    """Schema for reading a review from the API."""

    id: int
    booking_id: int
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    provider_id: int
    service_id: int
    rating: int
    comment: Optional[str] = None
    aspects: Optional[ReviewAspects] = None
    images: List[str] = Field(default_factory=list)
    is_anonymous: bool = False
    status: ReviewStatus
    report_count: int = 0
    provider_response: Optional[str] = None
    response_date: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RatingStats(BaseModel):
    average_rating: float
    total_reviews: int
    distribution: Dict[int, int]
