"""Schemas for the import side of the pipeline: decoded records in, candidates out."""

from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, computed_field

from finance_import.utils.exceptions import FieldError


class AccountDescriptor(BaseModel):
    """Account a decoded statement belongs to."""

    institution: str | None = None
    account_type: str | None = None  # e.g. "CHECKING"
    account_id: str | None = None


class RawBankRecord(BaseModel):
    """One transaction as produced by a bank file decoder, fields uninterpreted."""

    txn_date: datetime | date
    amount: Decimal
    name: str | None = None
    memo: str | None = None
    transaction_id: str | None = None
    account: AccountDescriptor | None = None


class BankFileDecoder(Protocol):
    """Turns raw file bytes into decoded records. Wire formats are not handled here."""

    def decode(self, content: bytes) -> list[RawBankRecord]: ...


class TransactionCandidate(BaseModel):
    """A normalized transaction that has not been staged yet."""

    model_config = ConfigDict(frozen=True)

    txn_date: date
    amount: Decimal
    payee: str = Field(min_length=1)
    memo: str | None = None
    source: str = ""
    external_id: str | None = None


class RecordError(BaseModel):
    """A raw record that could not be turned into a candidate."""

    row_index: int
    txn_date: date | None = None
    message: str
    field_errors: list[FieldError] = Field(default_factory=list)


class ImportBatchResult(BaseModel):
    """Outcome of importing one decoded batch into the review queue."""

    staged_count: int = 0
    skipped_count: int = 0  # identical items already waiting in the queue
    new_count: int = 0
    exact_duplicate_count: int = 0
    potential_duplicate_count: int = 0
    errors: list[RecordError] = Field(default_factory=list)

    @computed_field
    @property
    def error_count(self) -> int:
        return len(self.errors)
