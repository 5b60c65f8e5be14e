"""
Service catalogue endpoints.

Browsing is public.  Creating, editing, deactivating and the catalogue
statistics are reserved for administrators.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from home_services_api.app.core.security import ROLE_ADMIN, require_roles
from home_services_api.app.schemas.common import Page
from home_services_api.app.schemas.service import (
    CategorySummary,
    ServiceCategory,
    ServiceCreate,
    ServiceRead,
    ServiceUpdate,
)
from home_services_api.app.services.catalog_service import CatalogService

router = APIRouter()


@router.get("/", response_model=Page, summary="List services")
async def list_services(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[ServiceCategory] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    search: Optional[str] = Query(None, max_length=100),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    sort_by: Optional[str] = Query(None, description="created_at, name, base_price, popularity, average_rating"),
    order: Optional[str] = Query(None, description="asc or desc"),
) -> Page:
    return Page(
        **await CatalogService.list_services(
            page=page,
            limit=limit,
            category=category,
            min_price=min_price,
            max_price=max_price,
            search=search,
            min_rating=min_rating,
            sort_by=sort_by,
            order=order,
        )
    )


@router.get("/popular", response_model=List[ServiceRead], summary="Most booked services")
async def popular_services(limit: int = Query(8, ge=1, le=50)) -> List[ServiceRead]:
    return await CatalogService.get_popular(limit)


@router.get("/categories", response_model=List[CategorySummary], summary="Categories with counts")
async def list_categories() -> List[CategorySummary]:
    return await CatalogService.get_categories()


@router.get("/search", response_model=List[ServiceRead], summary="Search services")
async def search_services(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=50),
) -> List[ServiceRead]:
    return await CatalogService.search(q, limit)


@router.get("/category/{category}", response_model=Page, summary="Services in a category")
async def services_by_category(
    category: ServiceCategory,
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
) -> Page:
    return Page(**await CatalogService.list_services(page=page, limit=limit, category=category))


@router.get("/admin/stats", summary="Catalogue statistics")
async def service_stats(current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> dict:
    return await CatalogService.get_stats()


@router.get("/{service_id}", response_model=ServiceRead, summary="Get a service")
async def get_service(service_id: int) -> ServiceRead:
    return await CatalogService.get_service(service_id)


@router.post("/", response_model=ServiceRead, status_code=status.HTTP_201_CREATED, summary="Create a service")
async def create_service(data: ServiceCreate, current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> ServiceRead:
    return await CatalogService.create_service(data, current_user["user_id"])


@router.put("/{service_id}", response_model=ServiceRead, summary="Update a service")
async def update_service(
    service_id: int, data: ServiceUpdate, current_user: dict = Depends(require_roles(ROLE_ADMIN))
) -> ServiceRead:
    return await CatalogService.update_service(service_id, data, current_user["user_id"])


@router.delete("/{service_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Deactivate a service")
async def delete_service(service_id: int, current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> None:
    """Soft delete: the service disappears from the catalogue but keeps its history."""
    await CatalogService.delete_service(service_id, current_user["user_id"])


@router.patch("/{service_id}/toggle-status", response_model=ServiceRead, summary="Toggle a service on or off")
async def toggle_service(service_id: int, current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> ServiceRead:
    return await CatalogService.toggle_status(service_id, current_user["user_id"])
