"""Shared response shapes used by several domains."""

from typing import Any, List

from pydantic import BaseModel, Field


# Indian mobile numbers: ten digits starting with 6-9.
PHONE_PATTERN = r"^[6-9]\d{9}$"
PINCODE_PATTERN = r"^\d{6}$"


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=(total + limit - 1) // limit if limit else 0)


class Page(BaseModel):
    """A page of results together with its pagination metadata."""

    items: List[Any] = Field(default_factory=list)
    pagination: Pagination


class MessageResponse(BaseModel):
    message: str
