"""
Booking endpoints.

Customers create and cancel bookings; providers confirm, start and
complete them; administrators may do either.  Listings are scoped to
the caller: customers see their own bookings, providers the bookings
made with them.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from home_services_api.app.core.security import ROLE_ADMIN, get_current_user, require_roles
from home_services_api.app.schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingRead,
    BookingStatus,
    BookingStatusUpdate,
    WorkSummary,
)
from home_services_api.app.schemas.common import Page
from home_services_api.app.services.booking_service import BookingService

router = APIRouter()


@router.post("/", response_model=BookingRead, status_code=status.HTTP_201_CREATED, summary="Create a booking")
async def create_booking(data: BookingCreate, current_user: dict = Depends(get_current_user)) -> BookingRead:
    """Book a service with a provider.

    The price is taken from the service; tax is added at the configured
    rate.  Both parties receive a confirmation e-mail and notification.
    """
    return await BookingService.create_booking(data, current_user["user_id"])


@router.get("/", response_model=Page, summary="List own bookings")
async def list_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    sort_by: Optional[str] = Query(None, description="scheduled_date, created_at, total_amount or status"),
    order: Optional[str] = Query(None, description="asc or desc"),
    current_user: dict = Depends(get_current_user),
) -> Page:
    return Page(**await BookingService.list_bookings(current_user, page, limit, status_filter, sort_by, order))


@router.get("/upcoming", response_model=List[BookingRead], summary="Upcoming bookings")
async def upcoming_bookings(
    limit: int = Query(5, ge=1, le=50),
    current_user: dict = Depends(get_current_user),
) -> List[BookingRead]:
    return await BookingService.get_upcoming(current_user, limit)


@router.get("/today", response_model=List[BookingRead], summary="Today's bookings")
async def todays_bookings(current_user: dict = Depends(get_current_user)) -> List[BookingRead]:
    return await BookingService.get_today(current_user)


@router.get("/admin/stats", summary="Booking statistics")
async def booking_stats(current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> dict:
    return await BookingService.get_admin_stats()


@router.get("/{booking_id}", response_model=BookingRead, summary="Get a booking")
async def get_booking(booking_id: int, current_user: dict = Depends(get_current_user)) -> BookingRead:
    return await BookingService.get_booking(booking_id, current_user)


@router.put("/{booking_id}/status", response_model=BookingRead, summary="Change booking status")
async def update_booking_status(
    booking_id: int, data: BookingStatusUpdate, current_user: dict = Depends(get_current_user)
) -> BookingRead:
    """Apply a status transition.

    ``pending`` may become ``confirmed`` or ``cancelled``, ``confirmed``
    may become ``in-progress`` or ``cancelled`` and ``in-progress`` may
    become ``completed`` or ``cancelled``.  Customers can only cancel.
    """
    return await BookingService.update_status(booking_id, data.status, current_user, data.reason, data.comments)


@router.delete("/{booking_id}", response_model=BookingRead, summary="Cancel a booking")
async def cancel_booking(
    booking_id: int,
    data: Optional[BookingCancel] = Body(None),
    current_user: dict = Depends(get_current_user),
) -> BookingRead:
    """Cancel a pending or confirmed booking.

    The refund due depends on how far ahead the visit was: 100% more
    than 24 hours before, 75% more than 12 hours, 50% more than 2 hours
    and 25% otherwise.
    """
    return await BookingService.cancel_booking(booking_id, current_user, data.reason if data else None)


@router.put("/{booking_id}/work-summary", response_model=BookingRead, summary="Record the work done")
async def update_work_summary(
    booking_id: int, data: WorkSummary, current_user: dict = Depends(get_current_user)
) -> BookingRead:
    return await BookingService.update_work_summary(booking_id, data, current_user)
