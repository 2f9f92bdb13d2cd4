"""Import review pipeline services."""

from finance_import.services.deduplication import Classification, DuplicateClassifier, MatchSource
from finance_import.services.import_review import ImportCancelledError, ImportReviewService
from finance_import.services.normalizer import NormalizationError, normalize_batch, normalize_record
from finance_import.services.payee_matching import (
    MatchEngineError,
    PayeeRuleMatcher,
    RuleUsageTracker,
    RuleValidationError,
    find_best_match,
    validate_rule_edit,
)
from finance_import.services.payee_rules import PayeeRuleNotFoundError
from finance_import.services.tenant_locks import TenantLockRegistry

__all__ = [
    "Classification",
    "DuplicateClassifier",
    "MatchSource",
    "ImportCancelledError",
    "ImportReviewService",
    "NormalizationError",
    "normalize_batch",
    "normalize_record",
    "MatchEngineError",
    "PayeeRuleMatcher",
    "RuleUsageTracker",
    "RuleValidationError",
    "find_best_match",
    "validate_rule_edit",
    "PayeeRuleNotFoundError",
    "TenantLockRegistry",
]
