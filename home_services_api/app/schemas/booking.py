"""
Pydantic models for service bookings.

A booking ties a customer to a provider and a service at a scheduled
time and address.  Pricing is computed by the server from the
service's base price; clients never send amounts.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from .common import PHONE_PATTERN, PINCODE_PATTERN

BookingStatus = Literal["pending", "confirmed", "in-progress", "completed", "cancelled", "no-show"]
PaymentStatus = Literal["pending", "paid", "failed", "refunded", "partially_refunded"]
PaymentMethod = Literal["razorpay", "stripe", "cash", "upi"]


class BookingAddress(BaseModel):
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=PINCODE_PATTERN)
    country: str = "India"
    landmark: Optional[str] = Field(None, max_length=200)


class BookingCreate(BaseModel):
    """Schema for creating a booking."""

    provider_id: int
    service_id: int
    scheduled_date: datetime = Field(..., description="Start of the visit; must be in the future")
    address: BookingAddress
    contact_phone: str = Field(..., pattern=PHONE_PATTERN)
    special_instructions: Optional[str] = Field(None, max_length=1000)

    @field_validator("special_instructions")
    @classmethod
    def strip_instructions(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=500)
    comments: Optional[str] = Field(None, max_length=500)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class MaterialUsed(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    quantity: float = Field(1, ge=0)
    cost: float = Field(0, ge=0)


class WorkSummary(BaseModel):
    description: Optional[str] = Field(None, max_length=1000)
    before_images: List[str] = Field(default_factory=list, max_length=10)
    after_images: List[str] = Field(default_factory=list, max_length=10)
    materials_used: List[MaterialUsed] = Field(default_factory=list, max_length=50)
    additional_notes: Optional[str] = Field(None, max_length=500)


class Pricing(BaseModel):
    base_price: float
    tax: float
    total_amount: float


class PaymentInfo(BaseModel):
    status: PaymentStatus = "pending"
    method: Optional[PaymentMethod] = None
    transaction_id: Optional[str] = None
    paid_amount: Optional[float] = None
    paid_at: Optional[datetime] = None
    refund_transaction_id: Optional[str] = None
    refund_amount: Optional[float] = None
    refunded_at: Optional[datetime] = None


class CancellationInfo(BaseModel):
    cancelled_by: Optional[str] = None
    reason: Optional[str] = None
    cancellation_date: Optional[datetime] = None
    refund_amount: Optional[float] = None


class StatusHistoryEntry(BaseModel):
    status: BookingStatus
    changed_by: Optional[int] = None
    reason: Optional[str] = None
    comments: Optional[str] = None
    changed_at: datetime


class BookingRead(BaseModel):
    id: int
    booking_number: str
    customer_id: int
    provider_id: int
    service_id: int
    service_name: Optional[str] = None
    service_category: Optional[str] = None
    scheduled_date: datetime
    estimated_duration: int
    address: BookingAddress
    contact_phone: str
    special_instructions: Optional[str] = None
    status: BookingStatus
    pricing: Pricing
    payment: PaymentInfo
    cancellation: Optional[CancellationInfo] = None
    work_start_time: Optional[datetime] = None
    work_end_time: Optional[datetime] = None
    actual_duration: Optional[int] = None
    work_summary: Optional[WorkSummary] = None
    status_history: List[StatusHistoryEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
