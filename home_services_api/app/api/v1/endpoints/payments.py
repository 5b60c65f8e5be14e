"""
Payment endpoints backed by Razorpay.

All routes except the webhook require authentication.  When the gateway
credentials are not configured the gateway routes answer 503.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from home_services_api.app.core.security import ROLE_ADMIN, get_current_user, require_roles
from home_services_api.app.schemas.booking import BookingRead, PaymentStatus
from home_services_api.app.schemas.common import Page
from home_services_api.app.schemas.payment import (
    CreateOrderRequest,
    OrderRead,
    PaymentLinkRead,
    PaymentLinkRequest,
    RefundRead,
    RefundRequest,
    VerifyPaymentRequest,
)
from home_services_api.app.services.payment_service import PaymentService

router = APIRouter()


@router.post("/create-order", response_model=OrderRead, summary="Create a gateway order for a booking")
async def create_order(data: CreateOrderRequest, current_user: dict = Depends(get_current_user)) -> OrderRead:
    return await PaymentService.create_order(data.booking_id, current_user["user_id"])


@router.post("/verify", response_model=BookingRead, summary="Verify a completed checkout")
async def verify_payment(data: VerifyPaymentRequest, current_user: dict = Depends(get_current_user)) -> BookingRead:
    """Check the checkout signature and mark the booking as paid.

    A pending booking is confirmed automatically.  A signature that does
    not match answers 400.
    """
    return await PaymentService.verify_payment(data, current_user)


@router.post("/payment-link", response_model=PaymentLinkRead, summary="Create a hosted payment link")
async def create_payment_link(
    data: PaymentLinkRequest, current_user: dict = Depends(get_current_user)
) -> PaymentLinkRead:
    return await PaymentService.create_payment_link(data.booking_id, current_user["user_id"])


@router.post("/refund", response_model=RefundRead, summary="Refund a cancelled booking")
async def refund(data: RefundRequest, current_user: dict = Depends(get_current_user)) -> RefundRead:
    return await PaymentService.refund_payment(data.booking_id, current_user, data.reason)


@router.get("/transactions", response_model=Page, summary="Own payment history")
async def transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    status_filter: Optional[PaymentStatus] = Query(None, alias="status"),
    start_date: Optional[str] = Query(None, description="ISO date, inclusive"),
    end_date: Optional[str] = Query(None, description="ISO date, inclusive"),
    current_user: dict = Depends(get_current_user),
) -> Page:
    return Page(
        **await PaymentService.list_transactions(
            current_user["user_id"], page, limit, status_filter, start_date, end_date
        )
    )


@router.post("/webhook/razorpay", summary="Razorpay webhook receiver")
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
) -> dict:
    """Apply payment events pushed by Razorpay.

    The raw body is verified against ``X-Razorpay-Signature``; invalid
    signatures answer 400.
    """
    body = await request.body()
    return await PaymentService.handle_webhook(body, x_razorpay_signature)


@router.get("/admin/stats", summary="Payment statistics")
async def payment_stats(current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> dict:
    return await PaymentService.get_admin_stats()
