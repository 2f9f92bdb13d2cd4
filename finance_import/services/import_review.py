"""Import review pipeline entry points.

    decoder -> normalize -> classify -> match rules -> merge into queue
                                    ... user review ...
    accept -> ledger

Every queue mutation holds the tenant's lock and runs in one transaction, so a
failure (or a cancelled import) leaves the queue exactly as it was.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finance_import.config import settings
from finance_import.database import unit_of_work
from finance_import.logger import async_log_timing, get_logger, log_timing
from finance_import.schemas.imports import BankFileDecoder, ImportBatchResult, RawBankRecord, TransactionCandidate
from finance_import.schemas.review import AcceptResult, CompleteReviewResult, ReviewPage, SelectionResult
from finance_import.services import acceptance, review_queue
from finance_import.services.normalizer import normalize_batch
from finance_import.services.tenant_locks import TenantLockRegistry
from finance_import.utils.exceptions import ImportReviewError

logger = get_logger(__name__)


class ImportCancelledError(ImportReviewError):
    """A batch import was abandoned; nothing from it was staged."""

    def __init__(self, tenant_id: UUID, timeout: float) -> None:
        super().__init__(f"Import for tenant {tenant_id} did not finish within {timeout}s")
        self.tenant_id = tenant_id
        self.timeout = timeout


class ImportReviewService:
    """Tenant-scoped operations over the review queue."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        locks: TenantLockRegistry | None = None,
        *,
        import_timeout: float | None = None,
    ) -> None:
        self.session_maker = session_maker
        self.locks = locks or TenantLockRegistry()
        self.import_timeout = settings.import_timeout_seconds if import_timeout is None else import_timeout

    @asynccontextmanager
    async def _mutation(self, tenant_id: UUID) -> AsyncIterator[AsyncSession]:
        async with self.locks.hold(tenant_id):
            async with unit_of_work(self.session_maker) as db:
                yield db

    async def _merge(self, tenant_id: UUID, candidates: Sequence[TransactionCandidate]) -> ImportBatchResult:
        async with self._mutation(tenant_id) as db:
            return await review_queue.merge_batch(db, candidates, tenant_id=tenant_id)

    async def import_batch(self, tenant_id: UUID, records: Iterable[RawBankRecord]) -> ImportBatchResult:
        """Normalize and stage a decoded batch.

        Bad records are reported in the result and do not stop the batch. The
        merge itself is all-or-nothing.

        Raises:
            ImportCancelledError: the merge did not finish within the import timeout
            ConcurrencyError: the tenant's queue stayed busy past the lock timeout
        """
        async with async_log_timing("import_batch", logger=logger, tenant_id=str(tenant_id)) as timing:
            with log_timing("normalize_batch", logger=logger, level="debug") as normalize_timing:
                candidates, errors = normalize_batch(records)
                normalize_timing["candidates"] = len(candidates)

            try:
                result = await asyncio.wait_for(self._merge(tenant_id, candidates), timeout=self.import_timeout)
            except TimeoutError as exc:
                logger.warning(
                    "Import cancelled, batch rolled back",
                    tenant_id=str(tenant_id),
                    candidates=len(candidates),
                    timeout=self.import_timeout,
                )
                raise ImportCancelledError(tenant_id, self.import_timeout) from exc

            result.errors = errors
            timing["staged"] = result.staged_count
            timing["errors"] = result.error_count
        return result

    async def import_file(self, tenant_id: UUID, content: bytes, decoder: BankFileDecoder) -> ImportBatchResult:
        return await self.import_batch(tenant_id, decoder.decode(content))

    async def list_review(
        self,
        tenant_id: UUID,
        page_number: int | None = None,
        page_size: int | None = None,
    ) -> ReviewPage:
        async with unit_of_work(self.session_maker) as db:
            return await review_queue.list_pending(
                db, tenant_id=tenant_id, page_number=page_number, page_size=page_size
            )

    async def set_selection(self, tenant_id: UUID, keys: Sequence[UUID], is_selected: bool) -> SelectionResult:
        async with self._mutation(tenant_id) as db:
            return await review_queue.set_selection(db, keys, tenant_id=tenant_id, is_selected=is_selected)

    async def select_all(self, tenant_id: UUID) -> int:
        async with self._mutation(tenant_id) as db:
            return await review_queue.select_all(db, tenant_id=tenant_id)

    async def deselect_all(self, tenant_id: UUID) -> int:
        async with self._mutation(tenant_id) as db:
            return await review_queue.deselect_all(db, tenant_id=tenant_id)

    async def accept(self, tenant_id: UUID) -> AcceptResult:
        async with async_log_timing("accept_selected", logger=logger, tenant_id=str(tenant_id)):
            async with self._mutation(tenant_id) as db:
                return await acceptance.accept_selected(db, tenant_id=tenant_id)

    async def complete_review(self, tenant_id: UUID) -> CompleteReviewResult:
        async with self._mutation(tenant_id) as db:
            return await acceptance.complete_review(db, tenant_id=tenant_id)

    async def delete_all_pending(self, tenant_id: UUID) -> int:
        async with self._mutation(tenant_id) as db:
            return await review_queue.delete_all_pending(db, tenant_id=tenant_id)
