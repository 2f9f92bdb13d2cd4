"""Commit selected review items into the ledger."""

from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from finance_import.logger import get_logger
from finance_import.models import LedgerTransaction, StagedImportItem
from finance_import.schemas.review import AcceptResult, CompleteReviewResult
from finance_import.services.review_queue import count_pending, delete_all_pending

logger = get_logger(__name__)


def to_ledger_transaction(item: StagedImportItem) -> LedgerTransaction:
    """Copy a staged item verbatim; the ledger row keeps the staged key."""
    return LedgerTransaction(
        key=item.key,
        tenant_id=item.tenant_id,
        txn_date=item.txn_date,
        amount=item.amount,
        payee=item.payee,
        memo=item.memo,
        source=item.source,
        external_id=item.external_id,
        category=item.category,
    )


async def accept_selected(db: AsyncSession, *, tenant_id: UUID) -> AcceptResult:
    """Move every selected item into the ledger and out of the queue.

    Runs inside the caller's transaction: if anything fails, no ledger row is
    written and no item leaves the queue. Unselected items stay pending.
    """
    result = await db.execute(
        select(StagedImportItem)
        .where(StagedImportItem.tenant_id == tenant_id)
        .where(StagedImportItem.is_selected == True)  # noqa: E712
        .order_by(StagedImportItem.id)
        .with_for_update()
    )
    selected = list(result.scalars())

    if selected:
        db.add_all([to_ledger_transaction(item) for item in selected])
        await db.flush()
        await db.execute(
            delete(StagedImportItem)
            .where(StagedImportItem.tenant_id == tenant_id)
            .where(StagedImportItem.id.in_([item.id for item in selected]))
            .execution_options(synchronize_session="fetch")
        )

    remaining = await count_pending(db, tenant_id=tenant_id)
    logger.info(
        "Review items accepted",
        tenant_id=str(tenant_id),
        accepted=len(selected),
        remaining=remaining,
    )
    return AcceptResult(accepted_count=len(selected), remaining_count=remaining)


async def complete_review(db: AsyncSession, *, tenant_id: UUID) -> CompleteReviewResult:
    """Accept the selected items and discard everything else in the queue."""
    accepted = await accept_selected(db, tenant_id=tenant_id)
    rejected = await delete_all_pending(db, tenant_id=tenant_id)
    return CompleteReviewResult(accepted_count=accepted.accepted_count, rejected_count=rejected)
