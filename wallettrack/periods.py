from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta

MONTH_WINDOW = 6


def month_start(value: date) -> date:
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


def shift_month(value: date, months: int) -> date:
    month_index = (value.year * 12 + value.month - 1) + months
    year = month_index // 12
    month = month_index % 12 + 1
    return date(year, month, 1)


def month_end(value: date) -> date:
    next_month = shift_month(month_start(value), 1)
    return next_month - timedelta(days=1)


def iter_months(start_value: date, end_value: date) -> list[date]:
    months: list[date] = []
    cursor = month_start(start_value)
    end_month = month_start(end_value)
    while cursor <= end_month:
        months.append(cursor)
        cursor = shift_month(cursor, 1)
    return months


def trailing_months(reference: date, count: int = MONTH_WINDOW) -> list[date]:
    """Return ``count`` month starts, ascending, ending at ``reference``'s month."""
    if count < 1:
        raise ValueError("count must be at least one month.")
    end_month = month_start(reference)
    return iter_months(shift_month(end_month, -(count - 1)), end_month)


def days_in_month(value: date) -> int:
    return calendar.monthrange(value.year, value.month)[1]


def iter_month_days(reference: date) -> list[date]:
    first_day = month_start(reference)
    return [first_day + timedelta(days=offset) for offset in range(days_in_month(first_day))]


def month_key(value: date) -> str:
    return value.strftime("%Y-%m")


def same_month(left: date, right: date) -> bool:
    return left.year == right.year and left.month == right.month
