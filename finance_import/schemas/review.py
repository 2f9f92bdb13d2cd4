"""Pydantic schemas for the review queue."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, computed_field

from finance_import.models.review import DuplicateStatus
from finance_import.schemas.base import BaseResponse, PaginationMetadata


class StagedItemResponse(BaseResponse):
    key: UUID
    txn_date: date
    amount: Decimal
    payee: str
    memo: str | None
    source: str | None
    external_id: str | None
    duplicate_status: DuplicateStatus
    duplicate_of_key: UUID | None
    is_selected: bool
    category: str
    created_at: datetime

    @computed_field
    @property
    def needs_attention(self) -> bool:
        """Potential duplicates are highlighted for a human decision."""
        return self.duplicate_status == DuplicateStatus.POTENTIAL_DUPLICATE


class ReviewSummary(BaseModel):
    total: int = 0
    selected: int = 0
    new: int = 0
    exact_duplicate: int = 0
    potential_duplicate: int = 0


class ReviewPage(BaseModel):
    items: list[StagedItemResponse]
    metadata: PaginationMetadata
    summary: ReviewSummary


class SelectionResult(BaseModel):
    updated_count: int
    not_found_keys: list[UUID]


class AcceptResult(BaseModel):
    """Outcome of committing the selected items.

    remaining_count is what stayed in the queue (the unselected items).
    """

    accepted_count: int
    remaining_count: int

    @computed_field
    @property
    def rejected_count(self) -> int:
        return self.remaining_count


class CompleteReviewResult(BaseModel):
    accepted_count: int
    rejected_count: int
