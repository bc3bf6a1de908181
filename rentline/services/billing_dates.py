"""
Billing calendar. Pure functions, no DB.

Due dates step by calendar months, never by a fixed number of days. Each date
is re-anchored on the lease's due day, so a month that had to be clamped
(due day 31 in April → April 30) does not pull the following months earlier.
"""
from calendar import monthrange
from datetime import date, datetime, timezone


def utc_today() -> date:
    """The business date. API handlers and the Celery sweep both use UTC."""
    return datetime.now(timezone.utc).date()


def add_months(anchor: date, months: int, day: int) -> date:
    """Return ``day`` of the month ``months`` after ``anchor``'s month.

    ``day`` is clamped to the last day of the target month.
    """
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    last = monthrange(year, month)[1]
    return date(year, month, min(day, last))


def billing_dates(start: date, end: date, due_day: int) -> list[date]:
    """
    Due dates for one invoice per month between ``start`` and ``end``.

    The first date is ``due_day`` of ``start``'s own month, moved forward or
    back within that month, never into the next one. Generation stops once a
    date falls after ``end`` (``end`` itself is inclusive).

    >>> billing_dates(date(2024, 1, 15), date(2024, 4, 15), 15)
    [datetime.date(2024, 1, 15), datetime.date(2024, 2, 15), datetime.date(2024, 3, 15), datetime.date(2024, 4, 15)]
    """
    if not 1 <= due_day <= 31:
        raise ValueError(f"due_day must be between 1 and 31, got {due_day}")

    dates: list[date] = []
    offset = 0
    current = add_months(start, offset, due_day)
    while current <= end:
        dates.append(current)
        offset += 1
        current = add_months(start, offset, due_day)
    return dates
