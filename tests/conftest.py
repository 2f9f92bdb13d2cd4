"""Test fixtures and configuration."""

import logging
import os
import sys
from uuid import uuid4

import pytest
import pytest_asyncio
import structlog
from sqlalchemy.pool import NullPool

# Set ENVIRONMENT for pydantic settings
os.environ["ENVIRONMENT"] = "testing"

from finance_import.database import create_engine, create_session_maker, init_db  # noqa: E402
from finance_import.services.import_review import ImportReviewService  # noqa: E402
from finance_import.services.tenant_locks import TenantLockRegistry  # noqa: E402


# --- Structlog Configuration for Tests ---
@pytest.fixture(autouse=True, scope="session")
def configure_structlog_for_tests():
    """Configure structlog for proper capsys capture in tests."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.dev.ConsoleRenderer(),
        foreign_pre_chain=processors[:-1],
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.DEBUG)

    yield

    structlog.reset_defaults()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database per test.

    A file database (not :memory:) so that separate sessions opened by the
    service layer see each other's commits.
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'import_review.db'}", poolclass=NullPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine):
    return create_session_maker(db_engine)


@pytest_asyncio.fixture
async def db(session_maker):
    """Session for direct service calls; changes are flushed, never committed."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def other_tenant_id():
    return uuid4()


@pytest.fixture
def review_service(session_maker):
    return ImportReviewService(session_maker, TenantLockRegistry(timeout=5.0), import_timeout=30.0)
