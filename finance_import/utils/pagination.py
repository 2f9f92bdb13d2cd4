"""Page number/size normalization and pagination metadata."""

import math

from finance_import.config import settings
from finance_import.schemas.base import PaginationMetadata


def normalize_page(
    page_number: int | None,
    page_size: int | None,
    *,
    default_size: int | None = None,
    max_size: int | None = None,
) -> tuple[int, int]:
    """Clamp a requested page into range.

    Missing or < 1 page numbers become 1; missing or < 1 page sizes become the
    default; sizes above the maximum are capped.
    """
    default_size = default_size or settings.review_default_page_size
    max_size = max_size or settings.review_max_page_size

    number = page_number if page_number is not None and page_number >= 1 else 1
    size = page_size if page_size is not None and page_size >= 1 else default_size
    return number, min(size, max_size)


def calculate_pagination(page_number: int, page_size: int, total_count: int) -> PaginationMetadata:
    total_pages = math.ceil(total_count / page_size) if total_count > 0 else 0
    first_item = (page_number - 1) * page_size + 1 if total_count > 0 else 0
    last_item = min(page_number * page_size, total_count) if total_count > 0 else 0

    return PaginationMetadata(
        page_number=page_number,
        page_size=page_size,
        total_count=total_count,
        total_pages=total_pages,
        has_previous_page=page_number > 1,
        has_next_page=page_number < total_pages,
        first_item=first_item,
        last_item=last_item,
    )
