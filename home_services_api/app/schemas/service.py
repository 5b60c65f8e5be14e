"""
Pydantic models for the service catalogue.

A service is a bookable offering (e.g. "Deep Home Cleaning") with a
base price in rupees and an estimated duration in minutes.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

SERVICE_CATEGORIES = (
    "cleaning",
    "plumbing",
    "electrical",
    "carpentry",
    "painting",
    "appliance-repair",
    "gardening",
    "vehicle-repair",
    "beauty",
    "tutoring",
    "fitness",
    "other",
)

ServiceCategory = Literal[
    "cleaning",
    "plumbing",
    "electrical",
    "carpentry",
    "painting",
    "appliance-repair",
    "gardening",
    "vehicle-repair",
    "beauty",
    "tutoring",
    "fitness",
    "other",
]
PriceUnit = Literal["fixed", "hourly", "square_foot", "per_item"]


class ServiceBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Deep Home Cleaning"])
    category: ServiceCategory
    subcategory: Optional[str] = Field(None, max_length=50)
    description: str = Field(..., min_length=1, max_length=500)
    long_description: Optional[str] = Field(None, max_length=2000)
    base_price: float = Field(..., ge=1, le=100000, description="Price in rupees")
    price_unit: PriceUnit = "fixed"
    duration: int = Field(..., ge=15, le=1440, description="Estimated duration in minutes")
    tags: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)


class ServiceCreate(ServiceBase):
    pass


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    category: Optional[ServiceCategory] = None
    subcategory: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, min_length=1, max_length=500)
    long_description: Optional[str] = Field(None, max_length=2000)
    base_price: Optional[float] = Field(None, ge=1, le=100000)
    price_unit: Optional[PriceUnit] = None
    duration: Optional[int] = Field(None, ge=15, le=1440)
    tags: Optional[List[str]] = None
    requirements: Optional[List[str]] = None
    images: Optional[List[str]] = None
    is_active: Optional[bool] = None


class ServiceRead(ServiceBase):
    id: int
    is_active: bool
    popularity: int = 0
    average_rating: float = 0
    total_reviews: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}


class ServiceSummary(BaseModel):
    id: int
    name: str
    category: str
    base_price: float


class CategorySummary(BaseModel):
    category: str
    count: int
    average_price: float
