"""Utility functions and helpers."""

from .categories import sanitize_category
from .exceptions import ConcurrencyError, FieldError, ImportReviewError, ResourceNotFoundError
from .pagination import calculate_pagination, normalize_page

__all__ = [
    "ConcurrencyError",
    "FieldError",
    "ImportReviewError",
    "ResourceNotFoundError",
    "calculate_pagination",
    "normalize_page",
    "sanitize_category",
]
