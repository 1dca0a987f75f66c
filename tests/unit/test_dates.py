"""
test_dates.py - Unit tests for the calendar utility

Tests:
- days_in_month: month lengths, leap years, century rule
- clamp_day: month-end clamping, February
- check_month: invalid month indices fail fast
- LedgerDate: validation, ordering, conversions
- Month arithmetic: next/previous month, ranges
"""

import pytest
from datetime import date

from daybook import (
    LedgerDate, InvalidMonth, LedgerError,
    days_in_month, clamp_day, is_leap_year, compare_dates,
    next_month, previous_month, month_label,
)
from daybook.dates import check_month, iter_months, months_between


class TestDaysInMonth:
    """Gregorian month lengths with 0-indexed months."""

    @pytest.mark.parametrize("month,expected", [
        (0, 31), (1, 28), (2, 31), (3, 30), (4, 31), (5, 30),
        (6, 31), (7, 31), (8, 30), (9, 31), (10, 30), (11, 31),
    ])
    def test_common_year(self, month, expected):
        assert days_in_month(2025, month) == expected

    def test_leap_february(self):
        assert days_in_month(2024, 1) == 29

    def test_century_not_leap(self):
        """1900 is divisible by 100 but not by 400."""
        assert not is_leap_year(1900)
        assert days_in_month(1900, 1) == 28

    def test_400_year_leap(self):
        assert is_leap_year(2000)
        assert days_in_month(2000, 1) == 29

    def test_invalid_month_raises(self):
        with pytest.raises(InvalidMonth):
            days_in_month(2025, 12)
        with pytest.raises(InvalidMonth):
            days_in_month(2025, -1)


class TestClampDay:
    """Clamping a rule's day to the month length."""

    def test_day_31_in_30_day_month(self):
        """April (month 3) has 30 days."""
        assert clamp_day(31, 2025, 3) == 30

    def test_day_29_in_non_leap_february(self):
        assert clamp_day(29, 2025, 1) == 28

    def test_day_29_in_leap_february(self):
        assert clamp_day(29, 2024, 1) == 29

    def test_day_31_in_february(self):
        assert clamp_day(31, 2023, 1) == 28

    def test_day_within_month_unchanged(self):
        assert clamp_day(15, 2025, 5) == 15

    def test_day_below_one_rejected(self):
        with pytest.raises(ValueError, match="Day must be >= 1"):
            clamp_day(0, 2025, 0)


class TestCheckMonth:
    """Month index validation is a programmer error."""

    def test_valid_months_returned(self):
        for m in range(12):
            assert check_month(m) == m

    @pytest.mark.parametrize("bad", [12, -1, 100])
    def test_out_of_range(self, bad):
        with pytest.raises(InvalidMonth, match=r"\[0, 11\]"):
            check_month(bad)

    @pytest.mark.parametrize("bad", [1.0, "1", True, None])
    def test_non_int(self, bad):
        with pytest.raises(InvalidMonth):
            check_month(bad)

    def test_invalid_month_is_not_a_domain_error(self):
        """Handlers catching LedgerError must not swallow programmer errors."""
        assert issubclass(InvalidMonth, ValueError)
        assert not issubclass(InvalidMonth, LedgerError)


class TestLedgerDate:
    """LedgerDate construction, ordering and conversion."""

    def test_fields(self):
        d = LedgerDate(2025, 0, 15)
        assert (d.year, d.month, d.day) == (2025, 0, 15)
        assert d.month_key == (2025, 0)

    def test_invalid_day_rejected(self):
        with pytest.raises(ValueError, match="out of range"):
            LedgerDate(2025, 1, 29)

    def test_invalid_month_rejected(self):
        with pytest.raises(InvalidMonth):
            LedgerDate(2025, 12, 1)

    def test_clamped_builder(self):
        assert LedgerDate.clamped(2025, 3, 31) == LedgerDate(2025, 3, 30)

    def test_chronological_ordering(self):
        a = LedgerDate(2024, 11, 31)
        b = LedgerDate(2025, 0, 1)
        c = LedgerDate(2025, 0, 2)
        assert a < b < c
        assert sorted([c, a, b]) == [a, b, c]

    def test_compare_dates(self):
        a = LedgerDate(2025, 0, 1)
        b = LedgerDate(2025, 1, 1)
        assert compare_dates(a, b) == -1
        assert compare_dates(b, a) == 1
        assert compare_dates(a, LedgerDate(2025, 0, 1)) == 0

    def test_isoformat_uses_one_indexed_month(self):
        assert LedgerDate(2025, 0, 5).isoformat() == "2025-01-05"
        assert str(LedgerDate(2025, 11, 31)) == "2025-12-31"

    def test_parse_round_trip(self):
        assert LedgerDate.parse("2024-02-29") == LedgerDate(2024, 1, 29)

    def test_date_conversion(self):
        d = LedgerDate.from_date(date(2025, 3, 10))
        assert d == LedgerDate(2025, 2, 10)
        assert d.to_date() == date(2025, 3, 10)

    def test_immutable(self):
        d = LedgerDate(2025, 0, 1)
        with pytest.raises(AttributeError):
            d.day = 2


class TestMonthArithmetic:
    """Walking months across year boundaries."""

    def test_next_month_wraps_year(self):
        assert next_month(2025, 11) == (2026, 0)
        assert next_month(2025, 4) == (2025, 5)

    def test_previous_month_wraps_year(self):
        assert previous_month(2025, 0) == (2024, 11)
        assert previous_month(2025, 4) == (2025, 3)

    def test_months_between(self):
        assert months_between(2025, 10, 2026, 1) == 3
        assert months_between(2026, 1, 2025, 10) == -3

    def test_iter_months(self):
        assert list(iter_months(2025, 10, 4)) == [(2025, 10), (2025, 11), (2026, 0), (2026, 1)]

    def test_month_label(self):
        assert month_label(2025, 0) == "2025-01"
        assert month_label(2025, 11) == "2025-12"
