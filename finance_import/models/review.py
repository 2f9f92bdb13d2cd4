"""Review queue: transactions staged from a bank import awaiting accept/reject."""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, Enum as SQLEnum, Index, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from finance_import.database import Base
from finance_import.models.base import KeyedMixin, TenantOwnedMixin, TimestampMixin


class DuplicateStatus(str, Enum):
    """Outcome of comparing an imported transaction against existing records."""

    NEW = "new"
    EXACT_DUPLICATE = "exact_duplicate"
    POTENTIAL_DUPLICATE = "potential_duplicate"


class StagedImportItem(Base, KeyedMixin, TenantOwnedMixin, TimestampMixin):
    """
    A normalized bank transaction waiting in the tenant's review queue.

    Staging rows live in their own table so pending imports never leak into
    ledger queries. A row is removed when it is accepted (copied into the ledger)
    or discarded; only `is_selected` changes while it is pending.

    The integer `id` records insertion order, which is the stable listing order
    for paged review.
    """

    __tablename__ = "staged_import_items"
    __table_args__ = (Index("ix_staged_import_items_tenant_external_id", "tenant_id", "external_id"),)

    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, comment="Signed amount")
    payee: Mapped[str] = mapped_column(String(200), nullable=False)
    memo: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    source: Mapped[str | None] = mapped_column(String(200), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    duplicate_status: Mapped[DuplicateStatus] = mapped_column(
        SQLEnum(
            DuplicateStatus,
            name="duplicate_status_enum",
            values_callable=lambda obj: [e.value for e in obj],
        ),
        nullable=False,
        default=DuplicateStatus.NEW,
    )
    duplicate_of_key: Mapped[UUID | None] = mapped_column(
        Uuid,
        nullable=True,
        comment="Key of the ledger transaction or staged item this one duplicates",
    )
    is_selected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    category: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<StagedImportItem {self.txn_date} {self.amount} {self.payee!r} {self.duplicate_status.value}>"
