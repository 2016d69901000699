from __future__ import annotations

from datetime import date, datetime, time

import pytest

from finapp.utils.dates import (
    add_months,
    at_noon,
    clamp_day,
    is_before_period,
    month_bounds,
    period_key,
    shift_period,
)


@pytest.mark.parametrize(
    "day, year, month, expected",
    [
        (31, 2025, 2, 28),
        (31, 2024, 2, 29),
        (31, 2025, 4, 30),
        (15, 2025, 2, 15),
        (30, 2025, 1, 30),
    ],
)
def test_clamp_day(day, year, month, expected):
    assert clamp_day(day, year, month) == expected


def test_add_months_clamps_instead_of_rolling_over():
    base = date(2025, 1, 31)
    assert [add_months(base, i).date() for i in range(4)] == [
        date(2025, 1, 31),
        date(2025, 2, 28),
        date(2025, 3, 31),
        date(2025, 4, 30),
    ]


def test_add_months_crosses_year_and_keeps_noon():
    result = add_months(datetime(2024, 11, 30, 8, 15), 3)
    assert result == datetime(2025, 2, 28, 12, 0, 0)


def test_month_bounds_cover_whole_month():
    start, end = month_bounds(2024, 2)
    assert start == datetime(2024, 2, 1, 0, 0, 0)
    assert end.date() == date(2024, 2, 29)
    assert end.time() == time.max


def test_at_noon_drops_time_of_day():
    assert at_noon(datetime(2025, 3, 9, 23, 59)) == datetime(2025, 3, 9, 12, 0)
    assert at_noon(date(2025, 3, 9)) == datetime(2025, 3, 9, 12, 0)


def test_shift_period_wraps_years():
    assert shift_period(2025, 1, -1) == (2024, 12)
    assert shift_period(2024, 12, 1) == (2025, 1)
    assert shift_period(2025, 6, 18) == (2026, 12)


def test_period_key_is_unambiguous():
    assert period_key(2125, 1) != period_key(2025, 2)
    assert period_key(2025, 2) == 202502


def test_is_before_period():
    today = date(2025, 1, 20)
    assert is_before_period(2024, 12, today)
    assert not is_before_period(2025, 1, today)
    assert not is_before_period(2025, 2, today)
