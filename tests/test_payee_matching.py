"""Tests for payee rule matching and rule validation.

GIVEN: A tenant's payee rules (regex and substring)
WHEN: Matching a payee against them
THEN: The winner follows regex > longer substring > most recently modified
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from finance_import.models import PayeeMatchingRule
from finance_import.schemas.payee_rule import PayeeRuleEdit
from finance_import.services.payee_matching import (
    CompiledRule,
    MatchEngineError,
    PayeeRuleMatcher,
    RuleUsageTracker,
    find_best_match,
    sort_rules,
    validate_regex,
    validate_rule_edit,
)
from tests.factories import PayeeMatchingRuleFactory

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


def make_rule(pattern: str, category: str, *, is_regex: bool = False, age_minutes: int = 0, rule_id: int = 1):
    rule = PayeeMatchingRuleFactory.build(
        tenant_id=uuid4(),
        pattern=pattern,
        is_regex=is_regex,
        category=category,
        modified_at=NOW - timedelta(minutes=age_minutes),
    )
    rule.id = rule_id
    return rule


def matcher_for(*rules) -> PayeeRuleMatcher:
    return PayeeRuleMatcher(rules)


class TestMatchPrecedence:
    def test_regex_beats_substring(self):
        """GIVEN: Regex rule "^AMZN.*MKTP" and substring rule "Amazon"
        WHEN: Matching payee "AMZN MKTP US*123"
        THEN: The regex rule's category wins"""
        matcher = matcher_for(
            make_rule("^AMZN.*MKTP", "Shopping:Online", is_regex=True, age_minutes=60, rule_id=1),
            make_rule("Amazon", "Shopping", age_minutes=0, rule_id=2),
        )

        assert matcher.find_category("AMZN MKTP US*123").category == "Shopping:Online"

    def test_regex_beats_longer_and_newer_substring(self):
        matcher = matcher_for(
            make_rule("^AMZN", "Regex", is_regex=True, age_minutes=120, rule_id=1),
            make_rule("AMZN MKTP US", "Substring", age_minutes=0, rule_id=2),
        )

        assert matcher.find_category("AMZN MKTP US*123").category == "Regex"

    def test_longer_substring_wins(self):
        matcher = matcher_for(
            make_rule("Coffee", "Food", age_minutes=0, rule_id=1),
            make_rule("Coffee Shop", "Food:Coffee", age_minutes=30, rule_id=2),
        )

        assert matcher.find_category("Downtown Coffee Shop").category == "Food:Coffee"

    def test_equal_length_substring_prefers_most_recent(self):
        matcher = matcher_for(
            make_rule("Market", "Older", age_minutes=30, rule_id=1),
            make_rule("MARKET", "Newer", age_minutes=5, rule_id=2),
        )

        assert matcher.find_category("Farmers market").category == "Newer"

    def test_first_matching_regex_in_recency_order_wins(self):
        matcher = matcher_for(
            make_rule("^UBER", "Older", is_regex=True, age_minutes=30, rule_id=1),
            make_rule("UBER.*EATS", "Newer", is_regex=True, age_minutes=5, rule_id=2),
        )

        assert matcher.find_category("Uber Eats Order").category == "Newer"

    def test_matching_is_case_insensitive(self):
        matcher = matcher_for(
            make_rule("netflix", "Streaming", rule_id=1),
            make_rule("^spotify", "Music", is_regex=True, rule_id=2),
        )

        assert matcher.find_category("NETFLIX.COM").category == "Streaming"
        assert matcher.find_category("SPOTIFY P1234").category == "Music"

    def test_no_match_and_blank_payee(self):
        matcher = matcher_for(make_rule("Rent", "Housing"))

        assert matcher.find_category("Grocery") is None
        assert matcher.find_category("   ") is None
        assert matcher.find_category(None) is None

    def test_equal_timestamps_fall_back_to_newest_id(self):
        first = CompiledRule.from_rule(make_rule("Cafe", "First", rule_id=1))
        second = CompiledRule.from_rule(make_rule("CAFE", "Second", rule_id=2))

        assert [rule.category for rule in sort_rules([first, second])] == ["Second", "First"]

    def test_naive_timestamps_sort_with_aware_ones(self):
        naive = make_rule("Cafe", "Naive", rule_id=1)
        naive.modified_at = (NOW + timedelta(minutes=1)).replace(tzinfo=None)
        aware = make_rule("CAFE", "Aware", rule_id=2)

        assert matcher_for(naive, aware).find_category("Cafe").category == "Naive"


class TestMatchEngineErrors:
    def test_broken_regex_raises_from_find_best_match(self):
        """GIVEN: A stored regex that no longer compiles
        WHEN: It has to be evaluated
        THEN: MatchEngineError carrying the rule key propagates"""
        broken = make_rule("(unclosed", "Broken", is_regex=True, rule_id=1)
        rules = sort_rules([CompiledRule.from_rule(broken)])

        with pytest.raises(MatchEngineError) as exc_info:
            find_best_match("anything", rules)

        assert exc_info.value.rule_key == broken.key

    def test_matcher_skips_broken_rule_and_keeps_matching(self):
        matcher = matcher_for(
            make_rule("(?P<x", "Broken", is_regex=True, age_minutes=0, rule_id=1),
            make_rule("^GYM", "Fitness", is_regex=True, age_minutes=10, rule_id=2),
            make_rule("Gym", "Substring", age_minutes=20, rule_id=3),
        )

        assert matcher.find_category("GYM MEMBERSHIP").category == "Fitness"

    def test_broken_rule_after_regex_winner_is_not_evaluated(self):
        rules = sort_rules(
            [
                CompiledRule.from_rule(make_rule("^GYM", "Fitness", is_regex=True, age_minutes=0, rule_id=1)),
                CompiledRule.from_rule(make_rule("(unclosed", "Broken", is_regex=True, age_minutes=5, rule_id=2)),
            ]
        )

        assert find_best_match("GYM", rules).category == "Fitness"


class TestValidateRegex:
    @pytest.mark.parametrize("pattern", ["^AMZN.*MKTP", r"\d{4}$", "coffee|tea"])
    def test_valid_patterns(self, pattern):
        assert validate_regex(pattern) is None

    @pytest.mark.parametrize("pattern", [r"(a)\1", "foo(?=bar)", "(?<!x)y"])
    def test_rejects_backtracking_only_constructs(self, pattern):
        assert validate_regex(pattern) is not None

    def test_rejects_invalid_syntax(self):
        assert validate_regex("[unclosed").startswith("Invalid regex pattern")

    @pytest.mark.parametrize("pattern", [".*", "^", "a*"])
    def test_rejects_empty_matching_patterns(self, pattern):
        assert validate_regex(pattern) == "Regex pattern must not match empty text"

    def test_rejects_blank(self):
        assert validate_regex("  ") == "Pattern cannot be empty or whitespace."


class TestValidateRuleEdit:
    def test_valid_edit(self):
        assert validate_rule_edit(PayeeRuleEdit(pattern="Amazon", category="Shopping")) == []

    def test_missing_fields(self):
        errors = validate_rule_edit(PayeeRuleEdit(pattern="", category=None))
        assert {(e.field, e.message) for e in errors} == {
            ("pattern", "Payee pattern is required"),
            ("category", "Category is required"),
        }

    def test_whitespace_category(self):
        errors = validate_rule_edit(PayeeRuleEdit(pattern="Amazon", category="   "))
        assert errors[0].message == "Category cannot be whitespace only"

    @pytest.mark.parametrize("category", [":", " : ", ":: :"])
    def test_category_of_only_separators(self, category):
        errors = validate_rule_edit(PayeeRuleEdit(pattern="Amazon", category=category))
        assert [(e.field, e.message) for e in errors] == [("category", "Category is required")]

    def test_length_limits(self):
        errors = validate_rule_edit(PayeeRuleEdit(pattern="p" * 201, category="c" * 201))
        assert [e.message for e in errors] == [
            "Payee pattern cannot exceed 200 characters",
            "Category cannot exceed 200 characters",
        ]

    def test_regex_is_compiled(self):
        errors = validate_rule_edit(PayeeRuleEdit(pattern="(", is_regex=True, category="X"))
        assert errors[0].field == "pattern"
        assert errors[0].message.startswith("Invalid regex pattern")

    def test_substring_pattern_is_not_compiled(self):
        assert validate_rule_edit(PayeeRuleEdit(pattern="(", is_regex=False, category="X")) == []


class TestRuleUsageTracker:
    def test_record_accumulates(self):
        tracker = RuleUsageTracker()
        key = uuid4()

        tracker.record(key)
        tracker.record(key)

        assert tracker.pending() == {key: 2}

    @pytest.mark.asyncio
    async def test_flush_increments_atomically(self, db, tenant_id):
        """GIVEN: A rule already used 3 times
        WHEN: Flushing 2 more hits
        THEN: match_count is 5, last_used_at is set and the tracker is empty"""
        rule = await PayeeMatchingRuleFactory.create_async(db, tenant_id, match_count=3)
        untouched = await PayeeMatchingRuleFactory.create_async(db, tenant_id)
        tracker = RuleUsageTracker()
        tracker.record(rule.key)
        tracker.record(rule.key)

        touched = await tracker.flush(db, tenant_id=tenant_id, now=NOW)

        assert touched == 1
        assert tracker.pending() == {}
        result = await db.execute(select(PayeeMatchingRule).execution_options(populate_existing=True))
        rules = {r.key: r for r in result.scalars()}
        assert rules[rule.key].match_count == 5
        assert rules[rule.key].last_used_at.replace(tzinfo=UTC) == NOW
        assert rules[untouched.key].match_count == 0
        assert rules[untouched.key].last_used_at is None

    @pytest.mark.asyncio
    async def test_flush_without_hits_is_noop(self, db, tenant_id):
        assert await RuleUsageTracker().flush(db, tenant_id=tenant_id) == 0

    @pytest.mark.asyncio
    async def test_load_compiles_tenant_rules_only(self, db, tenant_id, other_tenant_id):
        await PayeeMatchingRuleFactory.create_async(db, tenant_id, pattern="Rent", category="Housing")
        await PayeeMatchingRuleFactory.create_async(db, other_tenant_id, pattern="Rent", category="Other")

        matcher = await PayeeRuleMatcher.load(db, tenant_id=tenant_id)

        assert len(matcher.rules) == 1
        assert matcher.find_category("Monthly rent").category == "Housing"
