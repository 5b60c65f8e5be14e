"""
API endpoints for reviews.

Customers review their completed bookings; anyone can read the active
reviews of a service or provider.  Users may report reviews, providers
may answer the reviews they received, and administrators moderate
reported reviews.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from home_services_api.app.core.security import ROLE_ADMIN, get_current_user, require_roles
from home_services_api.app.schemas.common import MessageResponse, Page
from home_services_api.app.schemas.review import (
    ReviewCreate,
    ReviewModerate,
    ReviewRead,
    ReviewReport,
    ReviewResponseCreate,
    ReviewUpdate,
)
from home_services_api.app.services.review_service import ReviewService

router = APIRouter()


@router.post("/", response_model=ReviewRead, status_code=status.HTTP_201_CREATED, summary="Review a booking")
async def create_review(data: ReviewCreate, current_user: dict = Depends(get_current_user)) -> ReviewRead:
    """Submit a review for one of the caller's completed bookings.

    Answers 404 for an unknown booking, 403 for someone else's booking
    and 400 when the booking is not completed or already reviewed.
    """
    return await ReviewService.create_review(data, current_user["user_id"])


@router.get("/service/{service_id}", summary="Reviews of a service")
async def service_reviews(
    service_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    rating: Optional[int] = Query(None, ge=1, le=5),
    sort_by: Optional[str] = Query(None, description="created_at or rating"),
    order: Optional[str] = Query(None, description="asc or desc"),
) -> dict:
    return await ReviewService.list_for_service(service_id, page, limit, rating, sort_by, order)


@router.get("/provider/{provider_id}", summary="Reviews of a provider")
async def provider_reviews(
    provider_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    rating: Optional[int] = Query(None, ge=1, le=5),
    sort_by: Optional[str] = Query(None, description="created_at or rating"),
    order: Optional[str] = Query(None, description="asc or desc"),
) -> dict:
    return await ReviewService.list_for_provider(provider_id, page, limit, rating, sort_by, order)


@router.get("/my-reviews", response_model=Page, summary="Reviews written by the caller")
async def my_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    current_user: dict = Depends(get_current_user),
) -> Page:
    return Page(**await ReviewService.list_my_reviews(current_user["user_id"], page, limit))


@router.get("/admin/reported", response_model=Page, summary="Reported reviews")
async def reported_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_roles(ROLE_ADMIN)),
) -> Page:
    return Page(**await ReviewService.list_reported(page, limit))


@router.put("/admin/{review_id}/moderate", summary="Moderate a review")
async def moderate_review(
    review_id: int, data: ReviewModerate, current_user: dict = Depends(require_roles(ROLE_ADMIN))
) -> dict:
    review = await ReviewService.moderate_review(review_id, data.action, current_user["user_id"], data.reason)
    return {"message": f"Review {data.action} completed", "review": review}


@router.get("/admin/stats", summary="Review statistics")
async def review_stats(current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> dict:
    return await ReviewService.get_stats()


@router.put("/{review_id}", response_model=ReviewRead, summary="Edit own review")
async def update_review(
    review_id: int, data: ReviewUpdate, current_user: dict = Depends(get_current_user)
) -> ReviewRead:
    return await ReviewService.update_review(review_id, data, current_user["user_id"])


@router.delete("/{review_id}", response_model=MessageResponse, summary="Delete a review")
async def delete_review(review_id: int, current_user: dict = Depends(get_current_user)) -> MessageResponse:
    await ReviewService.delete_review(review_id, current_user)
    return MessageResponse(message="Review deleted successfully")


@router.post("/{review_id}/report", response_model=ReviewRead, summary="Report a review")
async def report_review(
    review_id: int, data: ReviewReport, current_user: dict = Depends(get_current_user)
) -> ReviewRead:
    return await ReviewService.report_review(review_id, data, current_user["user_id"])


@router.post("/{review_id}/respond", response_model=ReviewRead, summary="Respond to a review")
async def respond_to_review(
    review_id: int, data: ReviewResponseCreate, current_user: dict = Depends(get_current_user)
) -> ReviewRead:
    return await ReviewService.respond_to_review(review_id, data.response, current_user["user_id"])
