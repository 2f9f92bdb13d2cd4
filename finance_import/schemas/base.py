"""Base schema classes and generic types."""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseResponse(BaseModel):
    """Base for all response schemas with from_attributes config."""

    model_config = ConfigDict(from_attributes=True)


class PaginationMetadata(BaseModel):
    """Position of one page within a listing.

    first_item/last_item are 1-based and 0 when the listing is empty.
    """

    page_number: int
    page_size: int
    total_count: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool
    first_item: int
    last_item: int


class PaginatedResponse(BaseModel, Generic[T]):  # noqa: UP046
    """One page of items plus its pagination metadata."""

    items: list[T]
    metadata: PaginationMetadata
