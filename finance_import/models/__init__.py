"""SQLAlchemy models package."""

from finance_import.models.ledger import LedgerTransaction
from finance_import.models.payee_rule import PayeeMatchingRule
from finance_import.models.review import DuplicateStatus, StagedImportItem

__all__ = [
    "DuplicateStatus",
    "LedgerTransaction",
    "PayeeMatchingRule",
    "StagedImportItem",
]
