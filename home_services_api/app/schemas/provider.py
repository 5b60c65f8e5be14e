"""
Pydantic models for service provider profiles.

A provider profile extends a user account with the services offered,
pricing, coverage area and a weekly availability schedule.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .service import ServiceSummary

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class DaySchedule(BaseModel):
    available: bool = True
    start: str = Field("09:00", pattern=TIME_PATTERN)
    end: str = Field("18:00", pattern=TIME_PATTERN)


class WeeklyAvailability(BaseModel):
    monday: DaySchedule = Field(default_factory=DaySchedule)
    tuesday: DaySchedule = Field(default_factory=DaySchedule)
    wednesday: DaySchedule = Field(default_factory=DaySchedule)
    thursday: DaySchedule = Field(default_factory=DaySchedule)
    friday: DaySchedule = Field(default_factory=DaySchedule)
    saturday: DaySchedule = Field(default_factory=DaySchedule)
    sunday: DaySchedule = Field(default_factory=lambda: DaySchedule(available=False))


class ProviderRegister(BaseModel):
    """Payload a user submits to become a provider."""

    service_ids: List[int] = Field(..., min_length=1)
    experience: int = Field(0, ge=0, le=50, description="Years of experience")
    hourly_rate: float = Field(..., ge=50, le=10000)
    description: Optional[str] = Field(None, max_length=1000)
    skills: List[str] = Field(default_factory=list)
    service_cities: List[str] = Field(..., min_length=1)
    max_distance: int = Field(25, ge=1, le=200, description="Kilometres travelled for a job")
    availability: Optional[WeeklyAvailability] = None


class ProviderProfileUpdate(BaseModel):
    service_ids: Optional[List[int]] = Field(None, min_length=1)
    experience: Optional[int] = Field(None, ge=0, le=50)
    hourly_rate: Optional[float] = Field(None, ge=50, le=10000)
    description: Optional[str] = Field(None, max_length=1000)
    skills: Optional[List[str]] = None
    service_cities: Optional[List[str]] = Field(None, min_length=1)
    max_distance: Optional[int] = Field(None, ge=1, le=200)


class AvailabilityUpdate(BaseModel):
    availability: WeeklyAvailability
    is_available: Optional[bool] = None


class ProviderSettingsUpdate(BaseModel):
    auto_accept_bookings: Optional[bool] = None
    is_available: Optional[bool] = None
    max_distance: Optional[int] = Field(None, ge=1, le=200)


class ProviderVerify(BaseModel):
    is_verified: bool
    notes: Optional[str] = Field(None, max_length=500)


class ProviderRead(BaseModel):
    id: int
    user_id: int
    name: str
    avatar: Optional[str] = None
    services: List[ServiceSummary] = Field(default_factory=list)
    experience: int
    hourly_rate: float
    description: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    service_cities: List[str] = Field(default_factory=list)
    max_distance: int
    availability: WeeklyAvailability
    is_verified: bool
    is_available: bool
    auto_accept_bookings: bool
    rating: float
    total_reviews: int
    total_bookings: int
    completed_bookings: int
    created_at: datetime

    model_config = {"from_attributes": True}
