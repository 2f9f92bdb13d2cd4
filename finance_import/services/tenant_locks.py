"""Single-writer-per-tenant discipline for review queue mutations."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from finance_import.config import settings
from finance_import.logger import get_logger
from finance_import.utils.exceptions import ConcurrencyError

logger = get_logger(__name__)


class TenantLockRegistry:
    """One asyncio.Lock per tenant; tenants never wait on each other."""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = settings.tenant_lock_timeout_seconds if timeout is None else timeout
        self._locks: dict[UUID, asyncio.Lock] = {}

    def _lock_for(self, tenant_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = self._locks[tenant_id] = asyncio.Lock()
        return lock

    def is_locked(self, tenant_id: UUID) -> bool:
        lock = self._locks.get(tenant_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, tenant_id: UUID) -> AsyncIterator[None]:
        """Hold the tenant's lock for the duration of the block.

        Raises:
            ConcurrencyError: the lock was not acquired within the timeout
        """
        lock = self._lock_for(tenant_id)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
        except TimeoutError as exc:
            logger.warning("Tenant review queue busy", tenant_id=str(tenant_id), timeout=self.timeout)
            raise ConcurrencyError(tenant_id, self.timeout) from exc
        try:
            yield
        finally:
            lock.release()
