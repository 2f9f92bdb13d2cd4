"""Base model mixins for common patterns."""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column


class KeyedMixin:
    """Mixin for an insertion-ordered surrogate id plus a public UUID key."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True, default=uuid4)


class TenantOwnedMixin:
    """Mixin for tenant ownership tracking."""

    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)


class TimestampMixin:
    """Mixin for created_at/updated_at timestamps with UTC timezone."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
