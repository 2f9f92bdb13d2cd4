"""Review queue management for bank imports.

Every tenant has one queue of StagedImportItem rows. Uploads accumulate in it,
the user toggles selection, and items leave the queue only when accepted into
the ledger or discarded. Listing is ordered by insertion (the integer id) so
pages stay stable while selection changes.

Callers serialize mutations per tenant (see TenantLockRegistry) and run each
operation inside one transaction.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finance_import.logger import get_logger
from finance_import.models import DuplicateStatus, StagedImportItem
from finance_import.schemas.imports import ImportBatchResult, TransactionCandidate
from finance_import.schemas.review import ReviewPage, ReviewSummary, SelectionResult, StagedItemResponse
from finance_import.services.deduplication import build_classifier
from finance_import.services.payee_matching import PayeeRuleMatcher, RuleUsageTracker
from finance_import.utils.pagination import calculate_pagination, normalize_page

logger = get_logger(__name__)


def default_selection(status: DuplicateStatus) -> bool:
    """New items start selected; anything that looks like a duplicate does not."""
    return status == DuplicateStatus.NEW


async def merge_batch(
    db: AsyncSession,
    candidates: Sequence[TransactionCandidate],
    *,
    tenant_id: UUID,
    matcher: PayeeRuleMatcher | None = None,
    usage: RuleUsageTracker | None = None,
) -> ImportBatchResult:
    """Classify, categorize and append candidates to the tenant's queue.

    Items already in the queue are not touched. A candidate identical to a
    staged item (same external id, date, amount and payee) is skipped, so
    merging the same batch twice stages it once.
    """
    result = ImportBatchResult()
    if not candidates:
        return result

    classifier = await build_classifier(db, tenant_id=tenant_id, candidates=candidates)
    if matcher is None:
        matcher = await PayeeRuleMatcher.load(db, tenant_id=tenant_id)
    usage = usage or RuleUsageTracker()

    staged: list[StagedImportItem] = []
    for candidate in candidates:
        if classifier.find_identical_staged(candidate) is not None:
            result.skipped_count += 1
            continue

        classification = classifier.classify(candidate)
        rule = matcher.find_category(candidate.payee)
        if rule is not None:
            usage.record(rule.key)

        staged.append(
            StagedImportItem(
                tenant_id=tenant_id,
                txn_date=candidate.txn_date,
                amount=candidate.amount,
                payee=candidate.payee,
                memo=candidate.memo,
                source=candidate.source or None,
                external_id=candidate.external_id,
                duplicate_status=classification.status,
                duplicate_of_key=classification.duplicate_of_key,
                is_selected=default_selection(classification.status),
                category=rule.category if rule is not None else "",
            )
        )
        if classification.status == DuplicateStatus.NEW:
            result.new_count += 1
        elif classification.status == DuplicateStatus.EXACT_DUPLICATE:
            result.exact_duplicate_count += 1
        else:
            result.potential_duplicate_count += 1

    db.add_all(staged)
    await db.flush()
    await usage.flush(db, tenant_id=tenant_id)

    result.staged_count = len(staged)
    logger.info(
        "Batch merged into review queue",
        tenant_id=str(tenant_id),
        staged=result.staged_count,
        skipped=result.skipped_count,
        new=result.new_count,
        exact_duplicates=result.exact_duplicate_count,
        potential_duplicates=result.potential_duplicate_count,
    )
    return result


async def get_summary(db: AsyncSession, *, tenant_id: UUID) -> ReviewSummary:
    """Counts over the whole queue, independent of paging."""
    rows = await db.execute(
        select(StagedImportItem.duplicate_status, StagedImportItem.is_selected, func.count())
        .where(StagedImportItem.tenant_id == tenant_id)
        .group_by(StagedImportItem.duplicate_status, StagedImportItem.is_selected)
    )

    summary = ReviewSummary()
    for status, is_selected, count in rows:
        summary.total += count
        if is_selected:
            summary.selected += count
        if status == DuplicateStatus.NEW:
            summary.new += count
        elif status == DuplicateStatus.EXACT_DUPLICATE:
            summary.exact_duplicate += count
        elif status == DuplicateStatus.POTENTIAL_DUPLICATE:
            summary.potential_duplicate += count
    return summary


async def count_pending(db: AsyncSession, *, tenant_id: UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(StagedImportItem).where(StagedImportItem.tenant_id == tenant_id)
    )
    return result.scalar_one()


async def list_pending(
    db: AsyncSession,
    *,
    tenant_id: UUID,
    page_number: int | None = None,
    page_size: int | None = None,
) -> ReviewPage:
    """Return one page of the queue in insertion order, with summary counts."""
    page_number, page_size = normalize_page(page_number, page_size)
    summary = await get_summary(db, tenant_id=tenant_id)

    result = await db.execute(
        select(StagedImportItem)
        .where(StagedImportItem.tenant_id == tenant_id)
        .order_by(StagedImportItem.id)
        .limit(page_size)
        .offset((page_number - 1) * page_size)
    )
    items = [StagedItemResponse.model_validate(item) for item in result.scalars()]

    return ReviewPage(
        items=items,
        metadata=calculate_pagination(page_number, page_size, summary.total),
        summary=summary,
    )


async def set_selection(
    db: AsyncSession,
    keys: Sequence[UUID],
    *,
    tenant_id: UUID,
    is_selected: bool,
) -> SelectionResult:
    """Select or deselect specific items. Unknown keys are reported, not raised."""
    requested = list(dict.fromkeys(keys))
    if not requested:
        return SelectionResult(updated_count=0, not_found_keys=[])

    result = await db.execute(
        select(StagedImportItem.key)
        .where(StagedImportItem.tenant_id == tenant_id)
        .where(StagedImportItem.key.in_(requested))
    )
    found = set(result.scalars())
    not_found = [key for key in requested if key not in found]

    if found:
        await db.execute(
            update(StagedImportItem)
            .where(StagedImportItem.tenant_id == tenant_id)
            .where(StagedImportItem.key.in_(found))
            .values(is_selected=is_selected)
            .execution_options(synchronize_session="fetch")
        )

    if not_found:
        logger.info(
            "Selection requested for unknown review items",
            tenant_id=str(tenant_id),
            not_found=len(not_found),
        )
    logger.info(
        "Review selection updated",
        tenant_id=str(tenant_id),
        is_selected=is_selected,
        updated=len(found),
    )
    return SelectionResult(updated_count=len(found), not_found_keys=not_found)


async def set_all_selection(db: AsyncSession, *, tenant_id: UUID, is_selected: bool) -> int:
    result = await db.execute(
        update(StagedImportItem)
        .where(StagedImportItem.tenant_id == tenant_id)
        .where(StagedImportItem.is_selected != is_selected)
        .values(is_selected=is_selected)
        .execution_options(synchronize_session="fetch")
    )
    logger.info("Review selection updated", tenant_id=str(tenant_id), is_selected=is_selected, updated=result.rowcount)
    return result.rowcount


async def select_all(db: AsyncSession, *, tenant_id: UUID) -> int:
    return await set_all_selection(db, tenant_id=tenant_id, is_selected=True)


async def deselect_all(db: AsyncSession, *, tenant_id: UUID) -> int:
    return await set_all_selection(db, tenant_id=tenant_id, is_selected=False)


async def delete_all_pending(db: AsyncSession, *, tenant_id: UUID) -> int:
    """Discard every item in the tenant's queue. Returns the number removed."""
    result = await db.execute(
        delete(StagedImportItem)
        .where(StagedImportItem.tenant_id == tenant_id)
        .execution_options(synchronize_session="fetch")
    )
    logger.info("Review queue cleared", tenant_id=str(tenant_id), deleted=result.rowcount)
    return result.rowcount
