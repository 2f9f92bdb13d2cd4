"""Database configuration and session management."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from finance_import.config import settings
from finance_import.logger import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def create_engine(database_url: str | None = None, **engine_kwargs) -> AsyncEngine:
    """Create an async engine for the ledger and review stores."""
    url = database_url or settings.database_url
    kwargs = {"echo": settings.debug, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        kwargs.update(
            pool_size=10,  # Max persistent connections
            max_overflow=20,  # Additional transient connections under load
            pool_recycle=3600,  # Recycle connections after 1 hour
        )
    kwargs.update(engine_kwargs)
    return create_async_engine(url, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@asynccontextmanager
async def unit_of_work(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Open a session whose transaction commits on success and rolls back on any error.

    Cancellation (CancelledError) counts as an error, so an abandoned operation
    leaves no partial writes behind.
    """
    async with session_maker() as session:
        async with session.begin():
            yield session


async def init_db(engine: AsyncEngine) -> None:
    """Create the ledger, review and rule tables if they do not exist."""
    # Register every mapped table on Base.metadata
    from finance_import import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized", tables=sorted(Base.metadata.tables))
