"""
dates.py - Calendar utility for the ledger

Pure functions over (year, month, day) triples. Months are 0-indexed
(0 = January, 11 = December) throughout the package; days are 1-indexed.

Contents:
1. Month validation and Gregorian month lengths (leap-year aware)
2. Day clamping for rules whose day does not exist in a given month
3. LedgerDate: the immutable, orderable date used by every ledger entry
4. Month arithmetic (next/previous month, month ranges)

A month index outside [0, 11] is a programmer error and raises InvalidMonth
immediately. InvalidMonth deliberately does not derive from LedgerError so
that handlers catching domain errors never swallow it.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Tuple
import calendar


MONTHS_PER_YEAR = 12


class InvalidMonth(ValueError):
    """Raised when a month index falls outside [0, 11]."""
    pass


def check_month(month: int) -> int:
    """
    Validate a 0-indexed month and return it unchanged.

    Raises:
        InvalidMonth: If month is not an int in [0, 11]
    """
    if isinstance(month, bool) or not isinstance(month, int):
        raise InvalidMonth(f"Month must be an int in [0, 11], got {month!r}")
    if not 0 <= month < MONTHS_PER_YEAR:
        raise InvalidMonth(f"Month must be in [0, 11], got {month}")
    return month


def is_leap_year(year: int) -> bool:
    """Gregorian rule: divisible by 4, except centuries not divisible by 400."""
    return calendar.isleap(year)


def days_in_month(year: int, month: int) -> int:
    """Number of days in a 0-indexed month of the given year."""
    check_month(month)
    return calendar.monthrange(year, month + 1)[1]


def clamp_day(day: int, year: int, month: int) -> int:
    """
    Clamp a day-of-month to the last day available in (year, month).

    A day-31 rule lands on day 30 in a 30-day month; a day-29 rule lands on
    day 28 in February of a non-leap year.

    Raises:
        InvalidMonth: If month is outside [0, 11]
        ValueError: If day is below 1
    """
    if day < 1:
        raise ValueError(f"Day must be >= 1, got {day}")
    return min(day, days_in_month(year, month))


def compare_dates(a: LedgerDate, b: LedgerDate) -> int:
    """Three-way comparison: -1 if a < b, 0 if equal, 1 if a > b."""
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def next_month(year: int, month: int) -> Tuple[int, int]:
    """Return (year, month) of the month after the given one."""
    check_month(month)
    if month == MONTHS_PER_YEAR - 1:
        return year + 1, 0
    return year, month + 1


def previous_month(year: int, month: int) -> Tuple[int, int]:
    """Return (year, month) of the month before the given one."""
    check_month(month)
    if month == 0:
        return year - 1, MONTHS_PER_YEAR - 1
    return year, month - 1


def months_between(start_year: int, start_month: int, end_year: int, end_month: int) -> int:
    """Signed number of months from (start_year, start_month) to (end_year, end_month)."""
    check_month(start_month)
    check_month(end_month)
    return (end_year - start_year) * MONTHS_PER_YEAR + (end_month - start_month)


def iter_months(year: int, month: int, count: int) -> Iterator[Tuple[int, int]]:
    """Yield `count` consecutive (year, month) pairs starting at (year, month)."""
    check_month(month)
    for _ in range(count):
        yield year, month
        year, month = next_month(year, month)


def month_label(year: int, month: int) -> str:
    """Human-readable YYYY-MM key (1-indexed month) for messages."""
    check_month(month)
    return f"{year:04d}-{month + 1:02d}"


@dataclass(frozen=True, slots=True, order=True)
class LedgerDate:
    """
    Calendar date of a ledger entry.

    Ordering is chronological (year, then month, then day), so LedgerDate
    values compare directly with < and >.

    Attributes:
        year: Calendar year
        month: 0-indexed month (0 = January)
        day: 1-indexed day of month
    """
    year: int
    month: int
    day: int

    def __post_init__(self):
        check_month(self.month)
        if isinstance(self.day, bool) or not isinstance(self.day, int):
            raise ValueError(f"Day must be an int, got {self.day!r}")
        limit = days_in_month(self.year, self.month)
        if not 1 <= self.day <= limit:
            raise ValueError(
                f"Day {self.day} out of range for {month_label(self.year, self.month)} (1..{limit})"
            )

    @classmethod
    def clamped(cls, year: int, month: int, day: int) -> LedgerDate:
        """Build a date, clamping day to the last day of the month."""
        return cls(year, month, clamp_day(day, year, month))

    @classmethod
    def from_date(cls, value: date) -> LedgerDate:
        """Convert a datetime.date (1-indexed month) to a LedgerDate."""
        return cls(value.year, value.month - 1, value.day)

    @classmethod
    def parse(cls, text: str) -> LedgerDate:
        """Parse an ISO YYYY-MM-DD string."""
        return cls.from_date(date.fromisoformat(text))

    def to_date(self) -> date:
        """Convert to a datetime.date (1-indexed month)."""
        return date(self.year, self.month + 1, self.day)

    @property
    def month_key(self) -> Tuple[int, int]:
        return self.year, self.month

    def isoformat(self) -> str:
        return f"{self.year:04d}-{self.month + 1:02d}-{self.day:02d}"

    def __str__(self) -> str:
        return self.isoformat()
