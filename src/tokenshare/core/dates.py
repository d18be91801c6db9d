"""Date and time helper functions."""

from __future__ import annotations

from datetime import date
from typing import Iterator

from dateutil.relativedelta import relativedelta


def format_date(value: date) -> str:
    """Formats a date for user-facing messages, e.g. '5 Jan 2025'."""
    return f"{value.day} {value:%b %Y}"


def month_start(value: date) -> date:
    """First day of the month containing ``value``."""
    return value.replace(day=1)


def iter_months(first: date, last: date) -> Iterator[date]:
    """Yields the first day of every month from ``first`` to ``last`` inclusive."""
    current = month_start(first)
    end = month_start(last)
    while current <= end:
        yield current
        current += relativedelta(months=1)


def days_between(earlier: date, later: date) -> int:
    """Whole days from ``earlier`` to ``later``."""
    return (later - earlier).days
