"""Payee rule matching.

Rules are evaluated in modified_at-descending order (most recent first) and the
best regex match and best substring match are tracked separately:

1. A regex match always beats a substring match.
2. Among regex rules the first match wins (the most recently modified).
3. Among substring rules the longest pattern wins; on equal length the first
   one seen wins (the most recently modified).

Regex rules run on RE2, which guarantees linear-time matching and refuses
backreferences and lookaround, so a stored pattern can never backtrack
catastrophically. Patterns are compiled once when the rule set is loaded.
"""

import threading
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import re2
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finance_import.config import settings
from finance_import.logger import get_logger, log_exception
from finance_import.models.payee_rule import PayeeMatchingRule
from finance_import.schemas.payee_rule import PayeeRuleEdit
from finance_import.utils.categories import sanitize_category
from finance_import.utils.exceptions import FieldError, ImportReviewError

logger = get_logger(__name__)

UNSUPPORTED_FEATURES_MESSAGE = (
    "Pattern uses features not supported by the linear-time regex engine "
    "(backreferences, lookahead, or lookbehind are not allowed)."
)
# RE2 reports these constructs with "invalid perl operator" / "invalid escape sequence"
_UNSUPPORTED_MARKERS = ("invalid perl operator", "invalid escape sequence: \\1", "backreference")


class RuleValidationError(ImportReviewError):
    """A rule edit was rejected; nothing was saved."""

    def __init__(self, errors: list[FieldError]) -> None:
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))
        self.errors = errors


class MatchEngineError(ImportReviewError):
    """A regex rule could not be evaluated against a payee."""

    def __init__(self, rule_key: UUID, message: str) -> None:
        super().__init__(f"Rule {rule_key} failed to match: {message}")
        self.rule_key = rule_key


def _regex_options() -> Any:
    options = re2.Options()
    options.case_sensitive = False
    options.log_errors = False
    return options


def compile_pattern(pattern: str) -> Any:
    """Compile a case-insensitive RE2 pattern.

    Raises:
        re2.error: the pattern is invalid or uses unsupported constructs
    """
    return re2.compile(pattern, _regex_options())


def validate_regex(pattern: str) -> str | None:
    """Return an error message for an unusable regex, or None when it is fine."""
    if not pattern or not pattern.strip():
        return "Pattern cannot be empty or whitespace."

    try:
        compiled = compile_pattern(pattern)
    except re2.error as exc:
        detail = str(exc)
        if any(marker in detail.lower() for marker in _UNSUPPORTED_MARKERS):
            return f"{UNSUPPORTED_FEATURES_MESSAGE} {detail}"
        return f"Invalid regex pattern: {detail}"

    if compiled.search("") is not None:
        return "Regex pattern must not match empty text"
    return None


def validate_rule_edit(edit: PayeeRuleEdit) -> list[FieldError]:
    """Collect every problem with a rule edit."""
    errors: list[FieldError] = []
    pattern_max = settings.rule_pattern_max_length
    category_max = settings.category_max_length

    if not edit.pattern:
        errors.append(FieldError("pattern", "Payee pattern is required"))
    elif len(edit.pattern) > pattern_max:
        errors.append(FieldError("pattern", f"Payee pattern cannot exceed {pattern_max} characters"))
    elif edit.is_regex:
        message = validate_regex(edit.pattern)
        if message:
            errors.append(FieldError("pattern", message))
    elif not edit.pattern.strip():
        errors.append(FieldError("pattern", "Payee pattern cannot be whitespace only"))

    if edit.category is None or edit.category == "":
        errors.append(FieldError("category", "Category is required"))
    elif not edit.category.strip():
        errors.append(FieldError("category", "Category cannot be whitespace only"))
    elif len(edit.category) > category_max:
        errors.append(FieldError("category", f"Category cannot exceed {category_max} characters"))
    elif not sanitize_category(edit.category):
        errors.append(FieldError("category", "Category is required"))

    return errors


def _as_utc(value: datetime) -> datetime:
    # Some drivers hand timezone-aware columns back naive
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


@dataclass(frozen=True)
class CompiledRule:
    """A rule snapshot ready for matching. Broken regexes keep their compile error."""

    key: UUID
    rule_id: int
    pattern: str
    is_regex: bool
    category: str
    modified_at: datetime
    regex: Any = None
    compile_error: str | None = None

    @classmethod
    def from_rule(cls, rule: PayeeMatchingRule) -> "CompiledRule":
        regex = None
        compile_error = None
        if rule.is_regex:
            try:
                regex = compile_pattern(rule.pattern)
            except re2.error as exc:
                compile_error = str(exc)
        return cls(
            key=rule.key,
            rule_id=rule.id,
            pattern=rule.pattern,
            is_regex=rule.is_regex,
            category=rule.category,
            modified_at=_as_utc(rule.modified_at),
            regex=regex,
            compile_error=compile_error,
        )

    def matches(self, payee: str) -> bool:
        """Test the payee against this rule.

        Raises:
            MatchEngineError: the regex could not be evaluated
        """
        if not self.is_regex:
            return self.pattern.casefold() in payee.casefold()
        if self.regex is None:
            raise MatchEngineError(self.key, self.compile_error or "pattern is not compiled")
        try:
            return self.regex.search(payee) is not None
        except re2.error as exc:
            raise MatchEngineError(self.key, str(exc)) from exc


def sort_rules(rules: Iterable[CompiledRule]) -> list[CompiledRule]:
    """Most recently modified first; id breaks ties so the order is total."""
    return sorted(rules, key=lambda rule: (rule.modified_at, rule.rule_id), reverse=True)


def find_best_match(payee: str | None, rules: Sequence[CompiledRule]) -> CompiledRule | None:
    """Return the winning rule for a payee, or None.

    `rules` must already be in sort_rules order. Once a regex has matched no
    further regex rules are evaluated.

    Raises:
        MatchEngineError: a regex rule that had to be evaluated is broken
    """
    if payee is None or not payee.strip():
        return None

    best_regex: CompiledRule | None = None
    best_substring: CompiledRule | None = None

    for rule in rules:
        if rule.is_regex:
            if best_regex is None and rule.matches(payee):
                best_regex = rule
        elif rule.matches(payee) and (best_substring is None or len(rule.pattern) > len(best_substring.pattern)):
            best_substring = rule

    return best_regex or best_substring


class PayeeRuleMatcher:
    """A tenant's rule set, compiled once and reused for every candidate of a batch."""

    def __init__(self, rules: Iterable[PayeeMatchingRule]) -> None:
        self.rules = sort_rules(CompiledRule.from_rule(rule) for rule in rules)

    @classmethod
    async def load(cls, db: AsyncSession, *, tenant_id: UUID) -> "PayeeRuleMatcher":
        result = await db.execute(select(PayeeMatchingRule).where(PayeeMatchingRule.tenant_id == tenant_id))
        return cls(result.scalars().all())

    def find_category(self, payee: str | None) -> CompiledRule | None:
        """Find the winning rule, skipping rules the engine cannot evaluate.

        A broken rule is logged and left out for the rest of this payee only.
        """
        rules = self.rules
        while True:
            try:
                return find_best_match(payee, rules)
            except MatchEngineError as exc:
                log_exception(
                    logger,
                    exc,
                    "Skipping payee rule that failed to match",
                    level="warning",
                    include_traceback=False,
                    rule_key=str(exc.rule_key),
                )
                rules = [rule for rule in rules if rule.key != exc.rule_key]


class RuleUsageTracker:
    """Collects rule hits during a matching pass and writes them in one go.

    Counts are applied as `match_count = match_count + n` in SQL so that
    concurrent batches never lose an increment.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits: Counter[UUID] = Counter()

    def record(self, rule_key: UUID) -> None:
        with self._lock:
            self._hits[rule_key] += 1

    def pending(self) -> dict[UUID, int]:
        with self._lock:
            return dict(self._hits)

    async def flush(self, db: AsyncSession, *, tenant_id: UUID, now: datetime | None = None) -> int:
        """Apply and clear the pending counts. Returns the number of rules touched."""
        with self._lock:
            hits = dict(self._hits)
            self._hits.clear()
        if not hits:
            return 0

        used_at = now or datetime.now(UTC)
        for rule_key, count in hits.items():
            await db.execute(
                update(PayeeMatchingRule)
                .where(PayeeMatchingRule.tenant_id == tenant_id)
                .where(PayeeMatchingRule.key == rule_key)
                .values(
                    match_count=PayeeMatchingRule.match_count + count,
                    last_used_at=used_at,
                )
                .execution_options(synchronize_session=False)
            )
        logger.debug("Rule usage flushed", tenant_id=str(tenant_id), rules=len(hits))
        return len(hits)
