"""Shared schema building blocks."""
from __future__ import annotations

import math
from decimal import Decimal
from typing import Annotated, Generic, List, TypeVar

from pydantic import BaseModel, Field, PlainSerializer


Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]

T = TypeVar("T")


class Pagination(BaseModel):
    """Page metadata returned alongside list results."""

    page: int = Field(..., ge=1, description="Current page (1-based)")
    limit: int = Field(..., ge=1, description="Page size")
    total: int = Field(..., ge=0, description="Total matching rows")
    total_pages: int = Field(..., ge=0, description="Number of pages")

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


class Page(BaseModel, Generic[T]):
    """A page of results."""

    data: List[T]
    pagination: Pagination
