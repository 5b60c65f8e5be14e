"""
Authentication endpoints.

Registration and login return the user together with an access and a
refresh token.  Access tokens are sent as ``Authorization: Bearer``;
refresh tokens are exchanged at ``/refresh-token`` for a new pair.
Password reset and e-mail verification links carry a one-time token in
the path.
"""

from fastapi import APIRouter, Depends, status

from home_services_api.app.core.security import get_current_user
from home_services_api.app.schemas.common import MessageResponse
from home_services_api.app.schemas.user import (
    AuthResponse,
    ForgotPasswordRequest,
    PasswordChange,
    PhoneOTPVerify,
    RefreshTokenRequest,
    ResetPasswordRequest,
    TokenPair,
    UserCreate,
    UserLogin,
    UserRead,
)
from home_services_api.app.services.user_service import UserService

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED, summary="Create an account")
async def register(data: UserCreate) -> AuthResponse:
    """Register a customer account.

    Answers 409 when the e-mail or phone number is already in use and
    403 when registrations are switched off in the platform settings.
    """
    return AuthResponse(**await UserService.register(data))


@router.post("/login", response_model=AuthResponse, summary="Log in")
async def login(data: UserLogin) -> AuthResponse:
    return AuthResponse(**await UserService.login(data.email, data.password))


@router.post("/refresh-token", response_model=TokenPair, summary="Exchange a refresh token")
async def refresh_token(data: RefreshTokenRequest) -> TokenPair:
    return TokenPair(**await UserService.refresh_tokens(data.refresh_token))


@router.get("/me", response_model=UserRead, summary="Current user")
async def me(current_user: dict = Depends(get_current_user)) -> UserRead:
    return await UserService.get_user(current_user["user_id"])


@router.post("/logout", response_model=MessageResponse, summary="Log out")
async def logout(current_user: dict = Depends(get_current_user)) -> MessageResponse:
    """Tokens are stateless; clients discard them on logout."""
    return MessageResponse(message="Logged out successfully")


@router.put("/change-password", response_model=MessageResponse, summary="Change password")
async def change_password(data: PasswordChange, current_user: dict = Depends(get_current_user)) -> MessageResponse:
    await UserService.change_password(current_user["user_id"], data.current_password, data.new_password)
    return MessageResponse(message="Password updated successfully")


@router.post("/forgot-password", response_model=MessageResponse, summary="Request a password reset e-mail")
async def forgot_password(data: ForgotPasswordRequest) -> MessageResponse:
    await UserService.forgot_password(data.email)
    return MessageResponse(message="Password reset email sent")


@router.post("/reset-password/{token}", response_model=AuthResponse, summary="Reset password with a token")
async def reset_password(token: str, data: ResetPasswordRequest) -> AuthResponse:
    return AuthResponse(**await UserService.reset_password(token, data.password))


@router.get("/verify-email/{token}", response_model=MessageResponse, summary="Verify e-mail address")
async def verify_email(token: str) -> MessageResponse:
    await UserService.verify_email(token)
    return MessageResponse(message="Email verified successfully")


@router.post("/send-phone-otp", response_model=MessageResponse, summary="Send a phone verification code")
async def send_phone_otp(current_user: dict = Depends(get_current_user)) -> MessageResponse:
    await UserService.send_phone_otp(current_user["user_id"])
    return MessageResponse(message="OTP sent successfully")


@router.post("/verify-phone", response_model=MessageResponse, summary="Verify phone number")
async def verify_phone(data: PhoneOTPVerify, current_user: dict = Depends(get_current_user)) -> MessageResponse:
    await UserService.verify_phone(current_user["user_id"], data.otp)
    return MessageResponse(message="Phone verified successfully")
