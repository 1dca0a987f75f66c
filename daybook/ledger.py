"""
ledger.py - Year -> Month -> Day ledger store

The Ledger holds every recorded Transaction in a sparse calendar tree:

    Ledger.years[year] -> YearLedger
    YearLedger.months[month] -> MonthLedger   (month is 0-indexed)
    MonthLedger.days[day] -> DayLedger        (list of transactions)

MonthLedger.opening_balance / closing_balance and DayLedger.balance are
cached values owned by the balance propagation engine; the store never
computes them. Missing years and months are legal and mean "nothing recorded",
which is different from a zero balance.

The store owns no I/O. Persistence is handled by daybook.persistence.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple

from .core import Transaction, TransactionNotFound, ZERO
from .dates import LedgerDate, check_month, month_label


@dataclass(slots=True)
class DayLedger:
    """
    Entries recorded on one calendar day, in insertion order.

    balance is the running balance at the end of the day as last written by
    the propagation engine, or None if the day was never recalculated.
    """
    day: int
    transactions: List[Transaction] = field(default_factory=list)
    balance: Optional[Decimal] = None


@dataclass(slots=True)
class MonthLedger:
    """
    One calendar month.

    days may be None when it was missing from persisted data; the propagation
    engine treats that as an empty month and reports it.
    """
    year: int
    month: int
    opening_balance: Decimal = ZERO
    closing_balance: Decimal = ZERO
    days: Optional[Dict[int, DayLedger]] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[int, int]:
        return self.year, self.month

    def iter_days(self) -> Iterator[DayLedger]:
        """Day ledgers in ascending day order (nothing if days is missing)."""
        if not self.days:
            return
        for day in sorted(self.days):
            yield self.days[day]

    def transactions(self) -> List[Transaction]:
        """All transactions of the month, ordered by day then insertion."""
        return [tx for day in self.iter_days() for tx in day.transactions]

    def has_entries(self) -> bool:
        return any(day.transactions for day in self.iter_days())

    def __repr__(self) -> str:
        count = sum(len(d.transactions) for d in self.iter_days())
        return (
            f"MonthLedger({month_label(self.year, self.month)} "
            f"open={self.opening_balance} close={self.closing_balance} entries={count})"
        )


@dataclass(slots=True)
class YearLedger:
    """Mapping month (0-11) -> MonthLedger; months need not all be present."""
    year: int
    months: Dict[int, MonthLedger] = field(default_factory=dict)

    def iter_months(self) -> Iterator[MonthLedger]:
        for month in sorted(self.months):
            yield self.months[month]


class Ledger:
    """
    In-memory store of a user's ledger.

    Maintains an index from transaction id to date so lookups and removals do
    not have to walk the whole tree.

    Thread Safety:
        Not thread-safe. The ledger is designed for a single writer.

    Example:
        ledger = Ledger("household")
        ledger.add_transaction(new_transaction(2025, 0, 1, EntryKind.CREDIT, "1000"))
        ledger.transactions_for_month(2025, 0)
    """

    def __init__(self, name: str = "main"):
        self.name = name
        self.years: Dict[int, YearLedger] = {}
        self._index: Dict[str, LedgerDate] = {}

    # ========================================================================
    # READ ACCESS
    # ========================================================================

    def get_year(self, year: int) -> Optional[YearLedger]:
        return self.years.get(year)

    def get_month(self, year: int, month: int) -> Optional[MonthLedger]:
        check_month(month)
        year_ledger = self.years.get(year)
        if year_ledger is None:
            return None
        return year_ledger.months.get(month)

    def has_month(self, year: int, month: int) -> bool:
        return self.get_month(year, month) is not None

    def find_transaction(self, tx_id: str) -> Optional[Transaction]:
        """Return the transaction with this id, or None."""
        when = self._index.get(tx_id)
        if when is None:
            return None
        day = self._day_ledger(when)
        if day is None:
            return None
        for tx in day.transactions:
            if tx.id == tx_id:
                return tx
        return None

    def transactions_for_month(self, year: int, month: int) -> List[Transaction]:
        month_ledger = self.get_month(year, month)
        if month_ledger is None:
            return []
        return month_ledger.transactions()

    def transactions_for_day(self, when: LedgerDate) -> List[Transaction]:
        day = self._day_ledger(when)
        return list(day.transactions) if day else []

    def find_recurring(self, rule_id: str, year: int, month: int) -> Optional[Transaction]:
        """Return the entry materialized by rule_id in (year, month), if any."""
        for tx in self.transactions_for_month(year, month):
            if tx.recurring_rule_id == rule_id:
                return tx
        return None

    def iter_months(self, start: Optional[Tuple[int, int]] = None) -> Iterator[MonthLedger]:
        """
        Existing months in strict chronological order.

        Args:
            start: Optional (year, month); months before it are skipped
        """
        for year in sorted(self.years):
            if start is not None and year < start[0]:
                continue
            for month_ledger in self.years[year].iter_months():
                if start is not None and (year, month_ledger.month) < start:
                    continue
                yield month_ledger

    def first_month(self) -> Optional[MonthLedger]:
        return next(self.iter_months(), None)

    def transaction_count(self) -> int:
        return len(self._index)

    def __contains__(self, tx_id: str) -> bool:
        return tx_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    # ========================================================================
    # MUTATION
    # ========================================================================

    def ensure_month(self, year: int, month: int) -> MonthLedger:
        """Return the MonthLedger for (year, month), creating it if needed."""
        check_month(month)
        year_ledger = self.years.get(year)
        if year_ledger is None:
            year_ledger = YearLedger(year)
            self.years[year] = year_ledger
        month_ledger = year_ledger.months.get(month)
        if month_ledger is None:
            month_ledger = MonthLedger(year, month)
            year_ledger.months[month] = month_ledger
        return month_ledger

    def add_transaction(self, tx: Transaction) -> None:
        """
        Insert a transaction on its day.

        Balances are not touched; run the propagation engine afterwards.

        Raises:
            ValueError: If a transaction with the same id is already stored
        """
        if tx.id in self._index:
            raise ValueError(f"Transaction {tx.id} already recorded")
        month_ledger = self.ensure_month(tx.date.year, tx.date.month)
        if month_ledger.days is None:
            month_ledger.days = {}
        day = month_ledger.days.get(tx.date.day)
        if day is None:
            day = DayLedger(tx.date.day)
            month_ledger.days[tx.date.day] = day
        day.transactions.append(tx)
        self._index[tx.id] = tx.date

    def remove_transaction(self, tx_id: str) -> Transaction:
        """
        Remove a transaction by id and return it.

        A day left without entries is dropped; its month is kept so the month
        keeps carrying its balance.

        Raises:
            TransactionNotFound: If the id is not in the ledger
        """
        when = self._index.get(tx_id)
        day = self._day_ledger(when) if when is not None else None
        if day is None:
            raise TransactionNotFound(f"Transaction {tx_id} not found")
        for position, tx in enumerate(day.transactions):
            if tx.id == tx_id:
                del day.transactions[position]
                break
        else:
            raise TransactionNotFound(f"Transaction {tx_id} not found")
        if not day.transactions:
            del self.get_month(when.year, when.month).days[when.day]
        del self._index[tx_id]
        return tx

    def clone(self) -> Ledger:
        """
        Create a fully independent copy of this ledger.

        Transactions are immutable and shared; every container and cached
        balance is copied. Use a clone as a snapshot to fall back to if a
        batch of changes has to be abandoned.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned.years = {}
        for year, year_ledger in self.years.items():
            months = {}
            for month, src in year_ledger.months.items():
                days = None
                if src.days is not None:
                    days = {
                        n: DayLedger(n, list(d.transactions), d.balance)
                        for n, d in src.days.items()
                    }
                months[month] = replace(src, days=days)
            cloned.years[year] = YearLedger(year, months)
        cloned._index = dict(self._index)
        return cloned

    def rebuild_index(self) -> None:
        """Recompute the id index from the tree (after bulk loading)."""
        self._index = {}
        for month_ledger in self.iter_months():
            for day in month_ledger.iter_days():
                for tx in day.transactions:
                    self._index[tx.id] = tx.date

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _day_ledger(self, when: LedgerDate) -> Optional[DayLedger]:
        month_ledger = self.get_month(when.year, when.month)
        if month_ledger is None or not month_ledger.days:
            return None
        return month_ledger.days.get(when.day)

    def __repr__(self) -> str:
        return f"Ledger({self.name!r}, years={sorted(self.years)}, transactions={len(self._index)})"
