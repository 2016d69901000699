"""
Calendar arithmetic for occurrence dates.

Every occurrence date produced here carries a fixed 12:00 time-of-day so a
timezone shift during serialization can never move it to a neighbouring day.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

NOON = time(12, 0, 0)


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(day: int, year: int, month: int) -> int:
    """Clamp ``day`` to the last valid day of the given month."""
    return min(day, days_in_month(year, month))


def at_noon(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, NOON)


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """Return the first and last instant (inclusive) of a 1-indexed month."""
    start = datetime(year, month, 1)
    end = datetime.combine(date(year, month, days_in_month(year, month)), time.max)
    return start, end


def shift_period(year: int, month: int, delta: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + delta
    return total // 12, total % 12 + 1


def add_months(base: date | datetime, n: int) -> datetime:
    """Add ``n`` whole months, clamping the day instead of rolling over.

    Jan 31 + 1 month is Feb 28 (or 29), never Mar 2/3.
    """
    year, month = shift_period(base.year, base.month, n)
    return datetime(year, month, clamp_day(base.day, year, month), 12, 0, 0)


def period_key(year: int, month: int) -> int:
    """Unambiguous integer for a period, e.g. 2025-02 -> 202502."""
    # month*100+year collides across years (1/2125 and 2/2025 both give 2225)
    return year * 100 + month


def is_before_period(year: int, month: int, reference: date) -> bool:
    """True when (year, month) lies strictly before the reference's month."""
    return (year, month) < (reference.year, reference.month)


def today_in(tz_name: str) -> date:
    try:
        zone = ZoneInfo(tz_name)
    except Exception:
        zone = ZoneInfo("UTC")
    return datetime.now(zone).date()
