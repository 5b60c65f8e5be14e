"""
Top-level router for version 1 of the API.

This router aggregates the domain routers under a unified prefix.  When
a new domain is added, include its router here.
"""

from fastapi import APIRouter

from .endpoints import (
    admin,
    auth,
    bookings,
    notifications,
    payments,
    providers,
    reviews,
    services,
    users,
)

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(services.router, prefix="/services", tags=["services"])
router.include_router(providers.router, prefix="/providers", tags=["providers"])
router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
router.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
router.include_router(payments.router, prefix="/payments", tags=["payments"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(admin.router, prefix="/admin", tags=["admin"])
