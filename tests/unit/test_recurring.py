"""
test_recurring.py - Unit tests for recurring rule expansion

Tests:
- expand(): inactive rules, start date, clamping, transaction shape
- Lifetimes: FixedCount / FixedDuration decrement and auto-deactivation
- candidate_for() / consume_occurrence() split
- upcoming_dates(): projection without mutation
- RuleRegistry
"""

import pytest
from decimal import Decimal

from daybook import (
    LedgerDate, EntryKind, EntryOrigin,
    Indefinite, FixedCount, FixedDuration,
    RuleRegistry, RuleNotFound, RuleStateError, InvalidMonth,
    new_rule, expand, candidate_for, consume_occurrence, upcoming_dates,
    recurring_transaction_id,
)


def _rule(day=5, start=LedgerDate(2025, 0, 1), lifetime=None, rule_id="rent", amount="450"):
    return new_rule(day, EntryKind.DEBIT, amount, start, "rent", lifetime=lifetime, rule_id=rule_id)


class TestExpand:
    """Single-month materialization."""

    def test_builds_recurring_transaction(self):
        tx = expand(_rule(), 2025, 2)
        assert tx.date == LedgerDate(2025, 2, 5)
        assert tx.kind is EntryKind.DEBIT
        assert tx.amount == Decimal("450")
        assert tx.description == "rent"
        assert tx.origin is EntryOrigin.RECURRING
        assert tx.recurring_rule_id == "rent"
        assert tx.id == recurring_transaction_id("rent", 2025, 2)

    def test_inactive_rule_produces_nothing(self):
        rule = _rule()
        rule.is_active = False
        assert expand(rule, 2025, 2) is None

    def test_before_start_date(self):
        rule = _rule(day=5, start=LedgerDate(2025, 3, 10))
        assert expand(rule, 2025, 2) is None
        assert expand(rule, 2025, 3) is None  # 2025-04-05 is before 2025-04-10
        assert expand(rule, 2025, 4).date == LedgerDate(2025, 4, 5)

    def test_on_start_date(self):
        rule = _rule(day=10, start=LedgerDate(2025, 3, 10))
        assert expand(rule, 2025, 3).date == LedgerDate(2025, 3, 10)

    def test_day_31_clamped_in_30_day_month(self):
        tx = expand(_rule(day=31), 2025, 3)
        assert tx.date == LedgerDate(2025, 3, 30)

    def test_day_29_non_leap_february(self):
        assert expand(_rule(day=29), 2025, 1).date == LedgerDate(2025, 1, 28)

    def test_day_29_leap_february(self):
        rule = _rule(day=29, start=LedgerDate(2024, 0, 1))
        assert expand(rule, 2024, 1).date == LedgerDate(2024, 1, 29)

    def test_invalid_month_is_fatal(self):
        with pytest.raises(InvalidMonth):
            expand(_rule(), 2025, 12)

    def test_same_content_rules_are_independent(self):
        a = _rule(rule_id="a")
        b = _rule(rule_id="b")
        ta = expand(a, 2025, 1)
        tb = expand(b, 2025, 1)
        assert ta.id != tb.id
        assert (ta.recurring_rule_id, tb.recurring_rule_id) == ("a", "b")

    def test_indefinite_keeps_firing(self):
        rule = _rule()
        for month in range(12):
            assert expand(rule, 2025, month) is not None
        assert rule.is_active
        assert rule.lifetime == Indefinite()


class TestLifetimeExhaustion:
    """Counters decrement once per materialization and deactivate at zero."""

    def test_fixed_count_one_fires_once(self):
        rule = _rule(lifetime=FixedCount(1))
        assert expand(rule, 2025, 0) is not None
        assert rule.lifetime == FixedCount(0)
        assert not rule.is_active
        assert expand(rule, 2025, 1) is None

    def test_fixed_count_three(self):
        rule = _rule(lifetime=FixedCount(3))
        fired = [expand(rule, 2025, m) for m in range(6)]
        assert [tx is not None for tx in fired] == [True, True, True, False, False, False]

    def test_fixed_duration(self):
        rule = _rule(lifetime=FixedDuration(2))
        assert expand(rule, 2025, 0) is not None
        assert rule.lifetime == FixedDuration(1)
        assert rule.is_active
        assert expand(rule, 2025, 1) is not None
        assert not rule.is_active

    def test_not_started_does_not_consume(self):
        rule = _rule(start=LedgerDate(2025, 5, 1), lifetime=FixedCount(1))
        assert expand(rule, 2025, 0) is None
        assert rule.lifetime == FixedCount(1)
        assert rule.is_active

    def test_exhausted_but_active_is_deactivated(self):
        """A rule found with a zero counter is switched off on the spot."""
        rule = _rule(lifetime=FixedCount(1))
        rule.lifetime = FixedCount(0)
        assert rule.is_active
        assert expand(rule, 2025, 0) is None
        assert not rule.is_active


class TestCandidateAndConsume:
    """The two halves of expand()."""

    def test_candidate_does_not_consume(self):
        rule = _rule(lifetime=FixedCount(1))
        assert candidate_for(rule, 2025, 0) is not None
        assert candidate_for(rule, 2025, 0) is not None
        assert rule.lifetime == FixedCount(1)

    def test_consume_deactivates_at_zero(self):
        rule = _rule(lifetime=FixedDuration(1))
        consume_occurrence(rule)
        assert not rule.is_active

    def test_consume_exhausted_is_malformed(self):
        rule = _rule(lifetime=FixedCount(1))
        rule.lifetime = FixedCount(0)
        with pytest.raises(RuleStateError):
            consume_occurrence(rule)


class TestUpcomingDates:
    """Projection of future materializations."""

    def test_projects_clamped_dates(self):
        dates = upcoming_dates(_rule(day=31), 2025, 0, months_ahead=4)
        assert dates == [
            LedgerDate(2025, 0, 31),
            LedgerDate(2025, 1, 28),
            LedgerDate(2025, 2, 31),
            LedgerDate(2025, 3, 30),
        ]

    def test_respects_start_date(self):
        rule = _rule(day=5, start=LedgerDate(2025, 2, 1))
        assert upcoming_dates(rule, 2025, 0, months_ahead=4) == [
            LedgerDate(2025, 2, 5), LedgerDate(2025, 3, 5),
        ]

    def test_respects_remaining_lifetime(self):
        rule = _rule(lifetime=FixedCount(2))
        dates = upcoming_dates(rule, 2025, 10, months_ahead=12)
        assert dates == [LedgerDate(2025, 10, 5), LedgerDate(2025, 11, 5)]

    def test_does_not_mutate(self):
        rule = _rule(lifetime=FixedCount(1))
        upcoming_dates(rule, 2025, 0)
        assert rule.lifetime == FixedCount(1)
        assert rule.is_active

    def test_inactive_rule_has_no_dates(self):
        rule = _rule()
        rule.is_active = False
        assert upcoming_dates(rule, 2025, 0) == []


class TestRuleRegistry:
    """Ownership of rules by id."""

    def test_add_and_get(self, rules):
        rule = rules.add(_rule(rule_id="a"))
        assert rules.get("a") is rule
        assert "a" in rules
        assert len(rules) == 1

    def test_duplicate_id_rejected(self, rules):
        rules.add(_rule(rule_id="a"))
        with pytest.raises(ValueError, match="already registered"):
            rules.add(_rule(rule_id="a"))

    def test_get_unknown(self, rules):
        with pytest.raises(RuleNotFound):
            rules.get("missing")
        assert rules.find("missing") is None

    def test_remove(self, rules):
        rules.add(_rule(rule_id="a"))
        rules.remove("a")
        assert "a" not in rules
        with pytest.raises(RuleNotFound):
            rules.remove("a")

    def test_active_filter(self, rules):
        rules.add(_rule(rule_id="a"))
        off = rules.add(_rule(rule_id="b"))
        off.is_active = False
        assert [r.id for r in rules.active()] == ["a"]
        assert {r.id for r in rules.all()} == {"a", "b"}

    def test_empty_registry_iterates(self):
        registry = RuleRegistry()
        assert len(registry) == 0
        assert list(registry) == []
