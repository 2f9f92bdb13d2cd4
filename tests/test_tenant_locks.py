"""Tests for per-tenant locking."""

import asyncio
from uuid import uuid4

import pytest

from finance_import.services.tenant_locks import TenantLockRegistry
from finance_import.utils.exceptions import ConcurrencyError


@pytest.mark.asyncio
async def test_hold_serializes_same_tenant():
    locks = TenantLockRegistry(timeout=1.0)
    tenant_id = uuid4()
    events: list[str] = []

    async def worker(name: str) -> None:
        async with locks.hold(tenant_id):
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (["a:start", "a:end", "b:start", "b:end"], ["b:start", "b:end", "a:start", "a:end"])


@pytest.mark.asyncio
async def test_timeout_raises_concurrency_error():
    locks = TenantLockRegistry(timeout=0.01)
    tenant_id = uuid4()

    async with locks.hold(tenant_id):
        assert locks.is_locked(tenant_id)
        with pytest.raises(ConcurrencyError) as exc_info:
            async with locks.hold(tenant_id):
                pass

    assert exc_info.value.tenant_id == tenant_id
    assert not locks.is_locked(tenant_id)


@pytest.mark.asyncio
async def test_lock_released_on_error():
    locks = TenantLockRegistry(timeout=0.01)
    tenant_id = uuid4()

    with pytest.raises(ValueError):
        async with locks.hold(tenant_id):
            raise ValueError("boom")

    async with locks.hold(tenant_id):
        assert locks.is_locked(tenant_id)


@pytest.mark.asyncio
async def test_different_tenants_are_independent():
    locks = TenantLockRegistry(timeout=0.01)

    async with locks.hold(uuid4()):
        async with locks.hold(uuid4()):
            pass


def test_unknown_tenant_is_not_locked():
    assert TenantLockRegistry().is_locked(uuid4()) is False
