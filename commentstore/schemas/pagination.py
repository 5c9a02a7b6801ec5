"""
Generic paginated response schema.
Used by the content and site listing endpoints.
"""
from __future__ import annotations

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, computed_field

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Items for one page plus the total across all pages."""

    items: list[T]
    total: int
    page: int
    size: int

    @computed_field  # type: ignore[misc]
    @property
    def pages(self) -> int:
        if self.size == 0:
            return 0
        return math.ceil(self.total / self.size)

    model_config = {"from_attributes": True}


def page_to_offset(page: int, size: int) -> int:
    """Translate a 1-based page number into a row offset."""
    return (page - 1) * size
