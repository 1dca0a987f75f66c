"""
recurring.py - Recurring rule expansion

Turns a RecurringRule into at most one concrete Transaction per month:

    1. inactive rule                      -> nothing
    2. target = (year, month, clamp_day(rule.day_of_month, year, month))
    3. target before rule.start_date      -> nothing
    4. lifetime already exhausted         -> nothing, rule is deactivated
    5. otherwise build the Transaction (origin RECURRING, back-reference set)
    6. after the entry is committed, consume one unit of lifetime; reaching
       zero deactivates the rule (the month that brings it to zero still fires)

Steps 1-5 live in candidate_for() and step 6 in consume_occurrence(), so a
caller can commit the entry between the two and only consume on success.
expand() runs both for callers that do not need that split.

Rules are deduplicated by id, never by content: two rules with the same day,
amount and description are independent bills.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Optional

from .core import (
    EntryOrigin, FixedCount, FixedDuration, RecurringRule, RuleNotFound, Transaction,
)
from .dates import LedgerDate, clamp_day, iter_months, month_label


def recurring_transaction_id(rule_id: str, year: int, month: int) -> str:
    """Deterministic id of the entry a rule materializes in (year, month)."""
    return f"rec:{rule_id}:{month_label(year, month)}"


def target_date(rule: RecurringRule, year: int, month: int) -> LedgerDate:
    """Date a rule lands on in (year, month), after clamping to the month length."""
    return LedgerDate(year, month, clamp_day(rule.day_of_month, year, month))


def candidate_for(rule: RecurringRule, year: int, month: int) -> Optional[Transaction]:
    """
    Build the Transaction rule should produce in (year, month), or None.

    The lifetime is not consumed here. The only side effect is
    auto-deactivation of a rule whose lifetime is already exhausted.

    Raises:
        InvalidMonth: If month is outside [0, 11]
    """
    if not rule.is_active:
        return None
    when = target_date(rule, year, month)
    if when < rule.start_date:
        return None
    if rule.lifetime.is_exhausted():
        rule.is_active = False
        return None
    return Transaction(
        id=recurring_transaction_id(rule.id, year, month),
        date=when,
        kind=rule.kind,
        amount=rule.amount,
        description=rule.description,
        origin=EntryOrigin.RECURRING,
        recurring_rule_id=rule.id,
    )


def consume_occurrence(rule: RecurringRule) -> None:
    """
    Record that rule fired once: decrement its counter, deactivate at zero.

    Raises:
        RuleStateError: If the lifetime was already exhausted
    """
    rule.lifetime = rule.lifetime.consume()
    if rule.lifetime.is_exhausted():
        rule.is_active = False


def expand(rule: RecurringRule, year: int, month: int) -> Optional[Transaction]:
    """
    Materialize rule for (year, month) and consume one occurrence.

    Returns:
        The new Transaction, or None if the rule does not fire this month

    Example:
        rule = new_rule(31, EntryKind.DEBIT, "1200", LedgerDate(2025, 0, 1),
                        lifetime=FixedCount(1))
        expand(rule, 2025, 3)   # dated 2025-04-30, rule is now inactive
        expand(rule, 2025, 4)   # None
    """
    tx = candidate_for(rule, year, month)
    if tx is not None:
        consume_occurrence(rule)
    return tx


def upcoming_dates(
    rule: RecurringRule,
    from_year: int,
    from_month: int,
    months_ahead: int = 12,
) -> List[LedgerDate]:
    """
    Project the dates rule would materialize on, without changing the rule.

    Starts at (from_year, from_month) and looks months_ahead months forward,
    honouring the start date, clamping and the remaining lifetime.
    """
    if not rule.is_active or rule.lifetime.is_exhausted():
        return []
    if isinstance(rule.lifetime, FixedCount):
        remaining: Optional[int] = rule.lifetime.remaining
    elif isinstance(rule.lifetime, FixedDuration):
        remaining = rule.lifetime.months_remaining
    else:
        remaining = None

    dates = []
    for year, month in iter_months(from_year, from_month, months_ahead):
        if remaining == 0:
            break
        when = target_date(rule, year, month)
        if when < rule.start_date:
            continue
        dates.append(when)
        if remaining is not None:
            remaining -= 1
    return dates


class RuleRegistry:
    """
    Owns recurring rules by id.

    Transactions reference rules through recurring_rule_id; the registry is
    the only owner of the rule objects themselves.
    """

    def __init__(self, rules: Optional[Dict[str, RecurringRule]] = None):
        self._rules: Dict[str, RecurringRule] = dict(rules or {})

    def add(self, rule: RecurringRule) -> RecurringRule:
        if rule.id in self._rules:
            raise ValueError(f"Rule {rule.id} already registered")
        self._rules[rule.id] = rule
        return rule

    def get(self, rule_id: str) -> RecurringRule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFound(f"Rule {rule_id} not found")
        return rule

    def find(self, rule_id: str) -> Optional[RecurringRule]:
        return self._rules.get(rule_id)

    def remove(self, rule_id: str) -> RecurringRule:
        """Unregister a rule. Entries it already produced stay in the ledger."""
        if rule_id not in self._rules:
            raise RuleNotFound(f"Rule {rule_id} not found")
        return self._rules.pop(rule_id)

    def all(self) -> List[RecurringRule]:
        return list(self._rules.values())

    def active(self) -> List[RecurringRule]:
        return [r for r in self._rules.values() if r.is_active]

    def as_dict(self) -> Dict[str, RecurringRule]:
        return dict(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules

    def __iter__(self) -> Iterator[RecurringRule]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleRegistry({len(self._rules)} rules, {len(self.active())} active)"
