"""Duplicate classification of import candidates.

A candidate is compared against what is already persisted for the tenant,
never against other candidates of the same batch:

1. external id matches a ledger transaction -> ExactDuplicate when date,
   amount and payee are identical, PotentialDuplicate otherwise
2. external id matches an item already waiting in the review queue -> same
   rule, against that staged item
3. (date, amount, payee) matches a ledger transaction, payee compared
   case-insensitively -> ExactDuplicate
4. otherwise New
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_import.logger import get_logger
from finance_import.models import DuplicateStatus, LedgerTransaction, StagedImportItem
from finance_import.schemas.imports import TransactionCandidate

logger = get_logger(__name__)

# Keeps IN (...) lists under the bound-parameter limits of every backend
_QUERY_CHUNK_SIZE = 500


class MatchSource(str, Enum):
    LEDGER = "ledger"
    REVIEW_QUEUE = "review_queue"


@dataclass(frozen=True)
class ExistingTransaction:
    """Read-only view of a ledger transaction or staged item used for comparison."""

    key: UUID
    txn_date: date
    amount: Decimal
    payee: str
    external_id: str | None

    @classmethod
    def from_row(cls, row: LedgerTransaction | StagedImportItem) -> "ExistingTransaction":
        return cls(
            key=row.key,
            txn_date=row.txn_date,
            amount=row.amount,
            payee=row.payee,
            external_id=row.external_id,
        )


@dataclass(frozen=True)
class Classification:
    status: DuplicateStatus
    duplicate_of_key: UUID | None = None
    matched_in: MatchSource | None = None


def content_key(txn_date: date, amount: Decimal, payee: str) -> tuple[str, str, str]:
    """Match key for content-based comparison; payee is case-insensitive."""
    return (
        txn_date.isoformat(),
        str(Decimal(amount).quantize(Decimal("0.01"))),
        payee.strip().casefold(),
    )


def is_identical(candidate: TransactionCandidate, existing: ExistingTransaction) -> bool:
    """Same date, amount and payee (payee compared exactly)."""
    return (
        candidate.txn_date == existing.txn_date
        and candidate.amount == existing.amount
        and candidate.payee == existing.payee
    )


class DuplicateClassifier:
    """Classifies candidates against a snapshot of the ledger and review queue.

    `ledger` and `staged` are expected most recent first so that, when several
    rows share an external id and none is identical, the newest one is reported.
    """

    def __init__(
        self,
        ledger: Iterable[ExistingTransaction] = (),
        staged: Iterable[ExistingTransaction] = (),
    ) -> None:
        self._ledger_by_external_id: dict[str, list[ExistingTransaction]] = {}
        self._ledger_by_content: dict[tuple[str, str, str], ExistingTransaction] = {}
        self._staged_by_external_id: dict[str, list[ExistingTransaction]] = {}

        for txn in ledger:
            if txn.external_id:
                self._ledger_by_external_id.setdefault(txn.external_id, []).append(txn)
            self._ledger_by_content.setdefault(content_key(txn.txn_date, txn.amount, txn.payee), txn)
        for item in staged:
            if item.external_id:
                self._staged_by_external_id.setdefault(item.external_id, []).append(item)

    @staticmethod
    def _classify_by_external_id(
        candidate: TransactionCandidate,
        matches: Sequence[ExistingTransaction],
        source: MatchSource,
    ) -> Classification:
        for existing in matches:
            if is_identical(candidate, existing):
                return Classification(DuplicateStatus.EXACT_DUPLICATE, existing.key, source)
        return Classification(DuplicateStatus.POTENTIAL_DUPLICATE, matches[0].key, source)

    def find_identical_staged(self, candidate: TransactionCandidate) -> ExistingTransaction | None:
        """Staged item this candidate would merely repeat, if any."""
        if not candidate.external_id:
            return None
        for item in self._staged_by_external_id.get(candidate.external_id, ()):
            if is_identical(candidate, item):
                return item
        return None

    def classify(self, candidate: TransactionCandidate) -> Classification:
        if candidate.external_id:
            ledger_matches = self._ledger_by_external_id.get(candidate.external_id)
            if ledger_matches:
                return self._classify_by_external_id(candidate, ledger_matches, MatchSource.LEDGER)

            staged_matches = self._staged_by_external_id.get(candidate.external_id)
            if staged_matches:
                return self._classify_by_external_id(candidate, staged_matches, MatchSource.REVIEW_QUEUE)

        existing = self._ledger_by_content.get(content_key(candidate.txn_date, candidate.amount, candidate.payee))
        if existing is not None:
            return Classification(DuplicateStatus.EXACT_DUPLICATE, existing.key, MatchSource.LEDGER)

        return Classification(DuplicateStatus.NEW)


def _chunks(values: list, size: int = _QUERY_CHUNK_SIZE) -> Iterable[list]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


async def load_ledger_snapshot(
    db: AsyncSession,
    *,
    tenant_id: UUID,
    candidates: Sequence[TransactionCandidate],
) -> list[ExistingTransaction]:
    """Load the ledger rows a batch could collide with.

    Rows sharing an external id with a candidate, plus rows on a candidate's
    date (for content matching). Ordered most recent first.
    """
    external_ids = sorted({c.external_id for c in candidates if c.external_id})
    txn_dates = sorted({c.txn_date for c in candidates})

    rows: dict[int, LedgerTransaction] = {}
    for chunk in _chunks(external_ids):
        result = await db.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.tenant_id == tenant_id)
            .where(LedgerTransaction.external_id.in_(chunk))
        )
        rows.update((row.id, row) for row in result.scalars())
    for chunk in _chunks(txn_dates):
        result = await db.execute(
            select(LedgerTransaction)
            .where(LedgerTransaction.tenant_id == tenant_id)
            .where(LedgerTransaction.txn_date.in_(chunk))
        )
        rows.update((row.id, row) for row in result.scalars())

    ordered = sorted(rows.values(), key=lambda row: (row.txn_date, row.id), reverse=True)
    return [ExistingTransaction.from_row(row) for row in ordered]


async def load_staged_snapshot(
    db: AsyncSession,
    *,
    tenant_id: UUID,
    candidates: Sequence[TransactionCandidate],
) -> list[ExistingTransaction]:
    """Load pending review items sharing an external id with a candidate, most recent first."""
    external_ids = sorted({c.external_id for c in candidates if c.external_id})

    rows: list[StagedImportItem] = []
    for chunk in _chunks(external_ids):
        result = await db.execute(
            select(StagedImportItem)
            .where(StagedImportItem.tenant_id == tenant_id)
            .where(StagedImportItem.external_id.in_(chunk))
        )
        rows.extend(result.scalars())

    rows.sort(key=lambda row: (row.txn_date, row.id), reverse=True)
    return [ExistingTransaction.from_row(row) for row in rows]


async def build_classifier(
    db: AsyncSession,
    *,
    tenant_id: UUID,
    candidates: Sequence[TransactionCandidate],
) -> DuplicateClassifier:
    ledger = await load_ledger_snapshot(db, tenant_id=tenant_id, candidates=candidates)
    staged = await load_staged_snapshot(db, tenant_id=tenant_id, candidates=candidates)
    logger.debug(
        "Duplicate snapshot loaded",
        tenant_id=str(tenant_id),
        ledger_rows=len(ledger),
        staged_rows=len(staged),
    )
    return DuplicateClassifier(ledger=ledger, staged=staged)
