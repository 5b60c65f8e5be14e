"""
Pydantic models for booking payments through the Razorpay gateway.

Order amounts sent to the gateway are integers in paise; amounts in
responses are in rupees unless the field name says otherwise.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CreateOrderRequest(BaseModel):
    booking_id: int


class OrderRead(BaseModel):
    order_id: str
    amount: int = Field(..., description="Amount in paise")
    currency: str
    key_id: str
    booking_id: int
    booking_number: str


class VerifyPaymentRequest(BaseModel):
    booking_id: int
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class PaymentLinkRequest(BaseModel):
    booking_id: int


class PaymentLinkRead(BaseModel):
    payment_link_id: str
    short_url: str
    amount: float
    booking_id: int


class RefundRequest(BaseModel):
    booking_id: int
    reason: Optional[str] = Field(None, max_length=500)


class RefundRead(BaseModel):
    booking_id: int
    refund_id: str
    refund_amount: float
    payment_status: str


class TransactionRead(BaseModel):
    booking_id: int
    booking_number: str
    service_name: Optional[str] = None
    total_amount: float
    payment_status: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    paid_amount: Optional[float] = None
    paid_at: Optional[datetime] = None
    refund_amount: Optional[float] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime
