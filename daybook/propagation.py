"""
propagation.py - Balance propagation engine

Keeps the day -> month -> year balances of a Ledger consistent:

    opening(Y, M)  = closing of the latest existing month before M in year Y,
                     or inherited_balance(Y) when there is none
    closing(Y, M)  = opening(Y, M) + credits - debits - daily adjustments
    inherited(Y)   = year_end_balance(Y - 1)
    year_end(Y)    = balance of the most recent day in Y that carries one

The year-end balance is a backward scan for the last known state, not a
running sum over the year. A year that is only partly filled in still hands
a meaningful balance to the next one.

Recalculation walks months in strict chronological order and runs to
completion once started. Each month is computed into locals first and
written back in one step, so a month is never left half-updated. Bad records
(non-positive or NaN amounts, months missing their days) are reported as
Diagnostics and left out of the sums; they never abort the pass.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Union

from .core import EntryKind, ZERO, is_valid_amount, round_cash
from .dates import LedgerDate, check_month, month_label
from .ledger import Ledger, MonthLedger


# Diagnostic kinds
INVALID_AMOUNT = "invalid_amount"
MISSING_DAYS = "missing_days"
STALE_CLOSING = "stale_closing"
STALE_DAY_BALANCE = "stale_day_balance"
DISCONTINUITY = "discontinuity"

MonthKey = Tuple[int, int]


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """
    A data-integrity finding for one month.

    Attributes:
        kind: One of INVALID_AMOUNT, MISSING_DAYS, STALE_CLOSING,
              STALE_DAY_BALANCE, DISCONTINUITY
        year: Year of the month concerned
        month: 0-indexed month concerned
        message: Human-readable description
        transaction_id: Offending transaction, for INVALID_AMOUNT
    """
    kind: str
    year: int
    month: int
    message: str
    transaction_id: Optional[str] = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class RecalculationResult:
    """
    Outcome of a recalculation pass.

    Balances of every affected month are updated even when success is False;
    success only says whether the pass met any bad records on the way.

    Attributes:
        success: True if no diagnostics were raised
        affected_months: (year, month) keys recalculated, in order
        errors: Diagnostics collected during the pass
    """
    success: bool
    affected_months: Tuple[MonthKey, ...]
    errors: Tuple[Diagnostic, ...] = ()

    @property
    def messages(self) -> List[str]:
        return [d.message for d in self.errors]


@dataclass(frozen=True, slots=True)
class IntegrityReport:
    """
    Read-only integrity check of a whole ledger.

    Attributes:
        valid: True if no issues were found
        issues: Diagnostics, in chronological order
        months_checked: Number of months inspected
    """
    valid: bool
    issues: Tuple[Diagnostic, ...]
    months_checked: int


@dataclass(frozen=True, slots=True)
class MonthlyTotals:
    """Per-period sums of valid entries plus the period's closing balance."""
    credits: Decimal
    debits: Decimal
    daily_adjustments: Decimal
    closing_balance: Decimal

    @property
    def net(self) -> Decimal:
        return self.credits - self.debits - self.daily_adjustments


class BalancePropagationEngine:
    """
    Recomputes and queries cached balances of a Ledger.

    The engine holds a reference to the ledger it maintains and mutates only
    the cached balance fields (MonthLedger.opening_balance/closing_balance and
    DayLedger.balance). Transactions are never modified.

    Example:
        engine = BalancePropagationEngine(ledger)
        result = engine.recalculate_from(LedgerDate(2025, 0, 1))
        engine.get_balance(2025, 0)
    """

    def __init__(self, ledger: Ledger, verbose: bool = False):
        self.ledger = ledger
        self.verbose = verbose

    # ========================================================================
    # BALANCE LOOKUPS
    # ========================================================================

    def get_year_end_balance(self, year: int) -> Decimal:
        """
        Last known balance of a year.

        Scans December -> January and, inside each month, the last day ->
        the first, returning the first recorded day balance found. Returns 0
        when the year holds no recorded balance at all.
        """
        year_ledger = self.ledger.get_year(year)
        if year_ledger is None:
            return ZERO
        for month in range(11, -1, -1):
            month_ledger = year_ledger.months.get(month)
            if month_ledger is None or not month_ledger.days:
                continue
            for day in sorted(month_ledger.days, reverse=True):
                balance = month_ledger.days[day].balance
                if balance is not None:
                    return balance
        return ZERO

    def get_inherited_balance(self, year: int) -> Decimal:
        """Opening balance a year receives from the end of the previous year."""
        return self.get_year_end_balance(year - 1)

    def opening_balance_for(self, year: int, month: int) -> Decimal:
        """
        Opening balance month (year, month) should have, from cached values.

        The closing balance of the latest existing month before it in the
        same year, or the inherited balance when there is none.
        """
        check_month(month)
        year_ledger = self.ledger.get_year(year)
        if year_ledger is not None:
            for prior in range(month - 1, -1, -1):
                month_ledger = year_ledger.months.get(prior)
                if month_ledger is not None:
                    return month_ledger.closing_balance
        return self.get_inherited_balance(year)

    def get_balance(self, year: int, month: int) -> Decimal:
        """
        Balance at the end of (year, month).

        A month with nothing recorded carries the balance it would open with.
        """
        month_ledger = self.ledger.get_month(year, month)
        if month_ledger is not None:
            return month_ledger.closing_balance
        return self.opening_balance_for(year, month)

    # ========================================================================
    # RECALCULATION
    # ========================================================================

    def recalculate_from(self, start: Union[LedgerDate, MonthKey]) -> RecalculationResult:
        """
        Recompute balances from start's month through the last month of the ledger.

        Months before start are trusted as-is and supply the first opening
        balance.

        Args:
            start: A LedgerDate or a (year, month) key

        Returns:
            RecalculationResult with the affected month keys and diagnostics
        """
        if isinstance(start, LedgerDate):
            start_key = start.month_key
        else:
            start_key = (start[0], check_month(start[1]))

        affected: List[MonthKey] = []
        diagnostics: List[Diagnostic] = []

        for month_ledger in list(self.ledger.iter_months(start_key)):
            opening = self.opening_balance_for(month_ledger.year, month_ledger.month)
            self._recalculate_month(month_ledger, opening, diagnostics)
            affected.append(month_ledger.key)

        if self.verbose:
            label = month_label(*start_key)
            if diagnostics:
                print(f"⚠️  RECALCULATED from {label}: {len(affected)} months, {len(diagnostics)} issues")
                for d in diagnostics:
                    print(f"    - {d.message}")
            else:
                print(f"✓ RECALCULATED from {label}: {len(affected)} months")

        return RecalculationResult(
            success=not diagnostics,
            affected_months=tuple(affected),
            errors=tuple(diagnostics),
        )

    def recalculate_all(self) -> RecalculationResult:
        """Recompute every month of the ledger."""
        first = self.ledger.first_month()
        if first is None:
            return RecalculationResult(success=True, affected_months=())
        return self.recalculate_from(first.key)

    def _recalculate_month(
        self,
        month_ledger: MonthLedger,
        opening: Decimal,
        diagnostics: List[Diagnostic],
    ) -> None:
        label = month_label(month_ledger.year, month_ledger.month)
        if month_ledger.days is None:
            diagnostics.append(Diagnostic(
                MISSING_DAYS, month_ledger.year, month_ledger.month,
                f"{label}: month has no days map, treated as empty",
            ))

        running = opening
        day_balances: Dict[int, Decimal] = {}
        for day in month_ledger.iter_days():
            for tx in day.transactions:
                if not is_valid_amount(tx.amount):
                    diagnostics.append(Diagnostic(
                        INVALID_AMOUNT, month_ledger.year, month_ledger.month,
                        f"{label}: transaction {tx.id} has invalid amount {tx.amount!r}, excluded",
                        transaction_id=tx.id,
                    ))
                    continue
                running += tx.signed_amount
            day_balances[day.day] = round_cash(running)

        # Commit the whole month at once.
        if month_ledger.days is None:
            month_ledger.days = {}
        for day_number, balance in day_balances.items():
            month_ledger.days[day_number].balance = balance
        month_ledger.opening_balance = round_cash(opening)
        month_ledger.closing_balance = round_cash(running)

    # ========================================================================
    # INTEGRITY
    # ========================================================================

    def validate_integrity(self) -> IntegrityReport:
        """
        Check every cached balance against its transactions without changing anything.

        Reports stale closing and day balances, broken continuity between a
        month's opening and the balance it should inherit, invalid amounts,
        and months missing their days map.
        """
        issues: List[Diagnostic] = []
        checked = 0
        for month_ledger in self.ledger.iter_months():
            checked += 1
            year, month = month_ledger.key
            label = month_label(year, month)

            if month_ledger.days is None:
                issues.append(Diagnostic(MISSING_DAYS, year, month, f"{label}: month has no days map"))

            expected_opening = self.opening_balance_for(year, month)
            if month_ledger.opening_balance != expected_opening:
                issues.append(Diagnostic(
                    DISCONTINUITY, year, month,
                    f"{label}: opening {month_ledger.opening_balance} does not match "
                    f"previous balance {expected_opening}",
                ))

            running = month_ledger.opening_balance
            for day in month_ledger.iter_days():
                for tx in day.transactions:
                    if not is_valid_amount(tx.amount):
                        issues.append(Diagnostic(
                            INVALID_AMOUNT, year, month,
                            f"{label}: transaction {tx.id} has invalid amount {tx.amount!r}",
                            transaction_id=tx.id,
                        ))
                        continue
                    running += tx.signed_amount
                if day.balance != round_cash(running):
                    issues.append(Diagnostic(
                        STALE_DAY_BALANCE, year, month,
                        f"{label}-{day.day:02d}: day balance {day.balance} should be {round_cash(running)}",
                    ))

            if month_ledger.closing_balance != round_cash(running):
                issues.append(Diagnostic(
                    STALE_CLOSING, year, month,
                    f"{label}: closing {month_ledger.closing_balance} should be {round_cash(running)}",
                ))

        return IntegrityReport(valid=not issues, issues=tuple(issues), months_checked=checked)

    def fix_inconsistencies(self) -> RecalculationResult:
        """Recalculate the whole ledger if the integrity check finds anything."""
        report = self.validate_integrity()
        if report.valid:
            return RecalculationResult(success=True, affected_months=())
        if self.verbose:
            print(f"⚠️  INTEGRITY: {len(report.issues)} issues found, recalculating")
        return self.recalculate_all()

    # ========================================================================
    # TOTALS
    # ========================================================================

    def monthly_totals(self, year: int, month: int) -> MonthlyTotals:
        """Sums of valid credits, debits and daily adjustments for a month."""
        credits, debits, daily = self._sum_kinds(self.ledger.transactions_for_month(year, month))
        return MonthlyTotals(credits, debits, daily, self.get_balance(year, month))

    def yearly_totals(self, year: int) -> MonthlyTotals:
        """Sums over every month of a year; closing is the year-end balance."""
        transactions = []
        year_ledger = self.ledger.get_year(year)
        if year_ledger is not None:
            for month_ledger in year_ledger.iter_months():
                transactions.extend(month_ledger.transactions())
        credits, debits, daily = self._sum_kinds(transactions)
        return MonthlyTotals(credits, debits, daily, self.get_year_end_balance(year))

    @staticmethod
    def _sum_kinds(transactions) -> Tuple[Decimal, Decimal, Decimal]:
        sums = {kind: ZERO for kind in EntryKind}
        for tx in transactions:
            if is_valid_amount(tx.amount):
                sums[tx.kind] += tx.amount
        return sums[EntryKind.CREDIT], sums[EntryKind.DEBIT], sums[EntryKind.DAILY_ADJUSTMENT]
