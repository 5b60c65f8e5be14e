"""
Service provider endpoints.

Anyone can browse verified and unverified providers that are currently
available.  A logged-in user becomes a provider through ``/register``;
the ``/me``, ``/profile``, ``/availability``, ``/settings`` and
``/dashboard/*`` routes are then limited to that provider.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from home_services_api.app.core.security import ROLE_ADMIN, ROLE_PROVIDER, get_current_user, require_roles
from home_services_api.app.schemas.booking import BookingStatus
from home_services_api.app.schemas.common import Page
from home_services_api.app.schemas.provider import (
    AvailabilityUpdate,
    ProviderProfileUpdate,
    ProviderRead,
    ProviderRegister,
    ProviderSettingsUpdate,
    ProviderVerify,
)
from home_services_api.app.schemas.service import ServiceCategory
from home_services_api.app.services.booking_service import BookingService
from home_services_api.app.services.provider_service import ProviderService
from home_services_api.app.services.review_service import ReviewService

router = APIRouter()

provider_only = require_roles(ROLE_PROVIDER)


@router.get("/", response_model=Page, summary="List providers")
async def list_providers(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[ServiceCategory] = Query(None),
    service_id: Optional[int] = Query(None),
    city: Optional[str] = Query(None, max_length=100),
    verified: Optional[bool] = Query(None),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    max_rate: Optional[float] = Query(None, ge=0),
    sort_by: Optional[str] = Query(None, description="rating, experience, hourly_rate, completed_bookings"),
    order: Optional[str] = Query(None, description="asc or desc"),
) -> Page:
    return Page(
        **await ProviderService.list_providers(
            page=page,
            limit=limit,
            category=category,
            service_id=service_id,
            city=city,
            is_verified=verified,
            min_rating=min_rating,
            max_rate=max_rate,
            sort_by=sort_by,
            order=order,
        )
    )


@router.post("/register", response_model=ProviderRead, status_code=status.HTTP_201_CREATED, summary="Become a provider")
async def register_provider(data: ProviderRegister, current_user: dict = Depends(get_current_user)) -> ProviderRead:
    """Create a provider profile for the current user.

    Answers 409 when the user already has a profile and 400 when any of
    the listed services is unknown or inactive.
    """
    return await ProviderService.register(current_user["user_id"], data)


@router.get("/me", response_model=ProviderRead, summary="Own provider profile")
async def my_profile(current_user: dict = Depends(provider_only)) -> ProviderRead:
    return await ProviderService.get_my_profile(current_user["user_id"])


@router.put("/profile", response_model=ProviderRead, summary="Update provider profile")
async def update_profile(data: ProviderProfileUpdate, current_user: dict = Depends(provider_only)) -> ProviderRead:
    return await ProviderService.update_profile(current_user["user_id"], data)


@router.put("/availability", response_model=ProviderRead, summary="Update weekly availability")
async def update_availability(data: AvailabilityUpdate, current_user: dict = Depends(provider_only)) -> ProviderRead:
    return await ProviderService.update_availability(current_user["user_id"], data)


@router.put("/settings", response_model=ProviderRead, summary="Update provider settings")
async def update_settings(data: ProviderSettingsUpdate, current_user: dict = Depends(provider_only)) -> ProviderRead:
    return await ProviderService.update_settings(current_user["user_id"], data)


@router.get("/dashboard/stats", summary="Provider dashboard statistics")
async def dashboard_stats(current_user: dict = Depends(provider_only)) -> dict:
    return await ProviderService.get_dashboard_stats(current_user["user_id"])


@router.get("/dashboard/bookings", response_model=Page, summary="Bookings received")
async def dashboard_bookings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    current_user: dict = Depends(provider_only),
) -> Page:
    return Page(
        **await BookingService.list_bookings(
            current_user, page=page, limit=limit, status=status_filter, sort_by="scheduled_date", order="asc"
        )
    )


@router.get("/dashboard/earnings", summary="Earnings from completed and paid bookings")
async def dashboard_earnings(
    months: int = Query(12, ge=1, le=36),
    current_user: dict = Depends(provider_only),
) -> dict:
    return await ProviderService.get_earnings(current_user["user_id"], months)


@router.put("/verify/{provider_id}", response_model=ProviderRead, summary="Verify a provider")
async def verify_provider(
    provider_id: int, data: ProviderVerify, current_user: dict = Depends(require_roles(ROLE_ADMIN))
) -> ProviderRead:
    return await ProviderService.verify_provider(provider_id, data.is_verified, current_user["user_id"], data.notes)


@router.get("/{provider_id}", response_model=ProviderRead, summary="Get a provider")
async def get_provider(provider_id: int) -> ProviderRead:
    return await ProviderService.get_provider(provider_id)


@router.get("/{provider_id}/reviews", summary="Reviews of a provider")
async def provider_reviews(
    provider_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    rating: Optional[int] = Query(None, ge=1, le=5),
) -> dict:
    return await ReviewService.list_for_provider(provider_id, page=page, limit=limit, rating=rating)
