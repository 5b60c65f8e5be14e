"""
User profile endpoints for API v1.

Authenticated users manage their own profile, preferences and saved
addresses here.  Administrators additionally list, inspect, update,
(de)activate and delete accounts.  Routes with fixed paths are declared
before ``/{user_id}`` so they are matched first.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from home_services_api.app.core.security import ROLE_ADMIN, get_current_user, require_roles
from home_services_api.app.schemas.common import MessageResponse, Page
from home_services_api.app.schemas.user import (
    AddressCreate,
    AddressRead,
    AdminUserUpdate,
    AuthResponse,
    PreferencesUpdate,
    Role,
    UserLogin,
    UserPreferences,
    UserProfileUpdate,
    UserRead,
    UserStatusUpdate,
)
from home_services_api.app.services.user_service import UserService

router = APIRouter()


@router.get("/me", response_model=UserRead, summary="Own profile")
async def get_profile(current_user: dict = Depends(get_current_user)) -> UserRead:
    return await UserService.get_user(current_user["user_id"])


@router.put("/me", response_model=UserRead, summary="Update own profile")
async def update_profile(data: UserProfileUpdate, current_user: dict = Depends(get_current_user)) -> UserRead:
    """Update name, phone, date of birth, gender or avatar.

    A phone number already used by another account is rejected with 409.
    """
    return await UserService.update_profile(current_user["user_id"], data)


@router.put("/preferences", response_model=UserPreferences, summary="Update preferences")
async def update_preferences(
    data: PreferencesUpdate, current_user: dict = Depends(get_current_user)
) -> UserPreferences:
    return await UserService.update_preferences(current_user["user_id"], data)


@router.post(
    "/addresses",
    response_model=List[AddressRead],
    status_code=status.HTTP_201_CREATED,
    summary="Add an address",
)
async def add_address(data: AddressCreate, current_user: dict = Depends(get_current_user)) -> List[AddressRead]:
    return await UserService.add_address(current_user["user_id"], data)


@router.put("/addresses/{address_id}", response_model=List[AddressRead], summary="Update an address")
async def update_address(
    address_id: int, data: AddressCreate, current_user: dict = Depends(get_current_user)
) -> List[AddressRead]:
    return await UserService.update_address(current_user["user_id"], address_id, data)


@router.delete("/addresses/{address_id}", response_model=List[AddressRead], summary="Delete an address")
async def delete_address(address_id: int, current_user: dict = Depends(get_current_user)) -> List[AddressRead]:
    return await UserService.delete_address(current_user["user_id"], address_id)


@router.put("/deactivate", response_model=MessageResponse, summary="Deactivate own account")
async def deactivate_account(current_user: dict = Depends(get_current_user)) -> MessageResponse:
    await UserService.deactivate(current_user["user_id"])
    return MessageResponse(message="Account deactivated successfully")


@router.put("/reactivate", response_model=AuthResponse, summary="Reactivate own account")
async def reactivate_account(data: UserLogin) -> AuthResponse:
    """Reactivate a self-deactivated account with its e-mail and password.

    Deactivated users cannot obtain tokens, so this endpoint takes
    credentials instead of a bearer token.
    """
    return AuthResponse(**await UserService.reactivate(data.email, data.password))


@router.get("/stats", summary="Own activity summary")
async def get_own_stats(current_user: dict = Depends(get_current_user)) -> dict:
    return await UserService.get_user_stats(current_user["user_id"])


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


@router.get("/", response_model=Page, summary="List users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    role: Optional[Role] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    sort_by: Optional[str] = Query(None, description="created_at, name, email or last_login"),
    order: Optional[str] = Query(None, description="asc or desc"),
    current_user: dict = Depends(require_roles(ROLE_ADMIN)),
) -> Page:
    return Page(**await UserService.list_users(page, limit, role, is_active, search, sort_by, order))


@router.get("/statistics", summary="User statistics")
async def user_statistics(current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> dict:
    return await UserService.get_statistics()


@router.get("/{user_id}", response_model=UserRead, summary="Get a user")
async def get_user(user_id: int, current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> UserRead:
    return await UserService.get_user(user_id)


@router.put("/{user_id}", response_model=UserRead, summary="Update a user")
async def update_user(
    user_id: int, data: AdminUserUpdate, current_user: dict = Depends(require_roles(ROLE_ADMIN))
) -> UserRead:
    return await UserService.admin_update_user(user_id, data, current_user["user_id"])


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a user")
async def delete_user(user_id: int, current_user: dict = Depends(require_roles(ROLE_ADMIN))) -> None:
    """Delete an account without bookings or reviews; others answer 409."""
    await UserService.delete_user(user_id, current_user["user_id"])


@router.put("/{user_id}/status", response_model=UserRead, summary="Activate or deactivate a user")
async def set_user_status(
    user_id: int, data: UserStatusUpdate, current_user: dict = Depends(require_roles(ROLE_ADMIN))
) -> UserRead:
    return await UserService.set_user_status(user_id, data.is_active, current_user["user_id"], data.reason)
