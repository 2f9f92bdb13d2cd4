"""Tenant-owned payee matching rules used to auto-categorize imports."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from finance_import.database import Base
from finance_import.models.base import KeyedMixin, TenantOwnedMixin


class PayeeMatchingRule(Base, KeyedMixin, TenantOwnedMixin):
    """
    Maps payee text to a category.

    Substring rules match case-insensitively anywhere in the payee; regex rules
    are RE2 patterns (linear-time, no backreferences or lookaround) matched
    case-insensitively. `category` is always stored sanitized.

    `modified_at` drives conflict resolution between equally good matches (most
    recent wins). `match_count` and `last_used_at` are usage statistics updated
    by the import pipeline, never by rule edits.
    """

    __tablename__ = "payee_matching_rules"

    pattern: Mapped[str] = mapped_column(String(200), nullable=False)
    is_regex: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    category: Mapped[str] = mapped_column(String(200), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    modified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    match_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        kind = "regex" if self.is_regex else "substring"
        return f"<PayeeMatchingRule {kind} {self.pattern!r} -> {self.category!r}>"
