from calendar import monthrange
from datetime import date, datetime, timedelta
from typing import Iterator


def as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def month_start(value) -> date:
    d = as_date(value)
    return d.replace(day=1)


def next_month_start(value) -> date:
    d = month_start(value)
    if d.month == 12:
        return d.replace(year=d.year + 1, month=1)
    return d.replace(month=d.month + 1)


def previous_month_start(value) -> date:
    d = month_start(value)
    return month_start(d - timedelta(days=1))


def days_in_month(value) -> int:
    d = as_date(value)
    return monthrange(d.year, d.month)[1]


def month_bounds(year: int, month: int):
    """(premier jour, dernier jour) inclus."""
    start = date(year, month, 1)
    return start, start.replace(day=monthrange(year, month)[1])


def date_range(date_from: date, date_to: date) -> Iterator[date]:
    """Jours de date_from à date_to inclus."""
    d = date_from
    while d <= date_to:
        yield d
        d += timedelta(days=1)
