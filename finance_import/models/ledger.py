"""Committed ledger transactions."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from finance_import.database import Base
from finance_import.models.base import KeyedMixin, TenantOwnedMixin, TimestampMixin


class LedgerTransaction(Base, KeyedMixin, TenantOwnedMixin, TimestampMixin):
    """
    A transaction committed to the tenant's permanent ledger.

    Rows are only ever inserted by the import pipeline when a staged item is
    accepted; the duplicate classifier reads them but never modifies them.
    Accepted rows reuse the staged item's key.
    """

    __tablename__ = "ledger_transactions"
    __table_args__ = (
        Index("ix_ledger_transactions_tenant_external_id", "tenant_id", "external_id"),
        Index("ix_ledger_transactions_tenant_date_amount", "tenant_id", "txn_date", "amount"),
    )

    txn_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, comment="Signed amount")
    payee: Mapped[str] = mapped_column(String(200), nullable=False)
    memo: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    source: Mapped[str | None] = mapped_column(String(200), nullable=True)
    external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<LedgerTransaction {self.txn_date} {self.amount} {self.payee!r}>"
