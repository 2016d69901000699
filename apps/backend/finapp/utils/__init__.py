"""
Utils package
"""

from .dates import add_months, at_noon, clamp_day, month_bounds

__all__ = [
    "add_months",
    "at_noon",
    "clamp_day",
    "month_bounds",
]
