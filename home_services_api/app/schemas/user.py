"""
Pydantic models for users, authentication and user preferences.

Phone numbers are Indian mobile numbers (ten digits starting with 6-9)
and postal codes are six-digit PIN codes.  Passwords are accepted on
input only and never returned.
"""

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import PHONE_PATTERN, PINCODE_PATTERN

Role = Literal["customer", "provider", "admin"]


class AddressBase(BaseModel):
    type: Literal["home", "work", "other"] = "home"
    street: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=PINCODE_PATTERN, examples=["560001"])
    country: str = "India"
    landmark: Optional[str] = Field(None, max_length=200)
    is_default: bool = False


class AddressCreate(AddressBase):
    pass


class AddressRead(AddressBase):
    id: int

    model_config = {"from_attributes": True}


class NotificationPreferences(BaseModel):
    email: bool = True
    sms: bool = True
    push: bool = True


class UserPreferences(BaseModel):
    language: str = "en"
    currency: str = "INR"
    theme: Literal["light", "dark", "auto"] = "light"
    notifications: NotificationPreferences = Field(default_factory=NotificationPreferences)


class PreferencesUpdate(BaseModel):
    """Partial update of user preferences; omitted fields keep their value."""

    language: Optional[str] = Field(None, min_length=2, max_length=10)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    theme: Optional[Literal["light", "dark", "auto"]] = None
    notifications: Optional[NotificationPreferences] = None


class UserCreate(BaseModel):
    """Schema for registering a customer account."""

    name: str = Field(..., min_length=2, max_length=50, examples=["Asha Rao"])
    email: EmailStr = Field(..., examples=["asha@example.com"])
    phone: str = Field(..., pattern=PHONE_PATTERN, examples=["9876543210"])
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class UserRead(BaseModel):
    """Schema for reading a user from the API."""

    id: int
    name: str
    email: EmailStr
    phone: str
    role: Role
    avatar: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    is_active: bool = True
    is_email_verified: bool = False
    is_phone_verified: bool = False
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    addresses: List[AddressRead] = Field(default_factory=list)
    last_login: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    date_of_birth: Optional[date] = None
    gender: Optional[Literal["male", "female", "other"]] = None
    avatar: Optional[str] = Field(None, max_length=500)


class AdminUserUpdate(UserProfileUpdate):
    """Fields an administrator may change on any account."""

    role: Optional[Role] = None
    is_active: Optional[bool] = None
    is_email_verified: Optional[bool] = None
    is_phone_verified: Optional[bool] = None


class UserStatusUpdate(BaseModel):
    is_active: bool
    reason: Optional[str] = Field(None, max_length=500)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8, max_length=128)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=8, max_length=128)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class PhoneOTPVerify(BaseModel):
    otp: str = Field(..., pattern=r"^\d{6}$")


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(TokenPair):
    user: UserRead
