"""
Time utilities for the Shared Todo List application.

This module provides a single source of truth for time operations,
ensuring consistency across the service and the sync client.
"""

import calendar
from datetime import date, datetime, timezone, timedelta
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time.
    Single source of truth for "now" throughout the application.

    Returns:
        timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def local_today() -> date:
    """Current calendar day on the machine running the code."""
    return date.today()


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes.

    SQLite drops tzinfo on round-trip, so values read back from the test
    database come out naive even though they were written as UTC.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def add_months(day: date, months: int) -> date:
    """
    Move a date by whole calendar months.

    The day of month is clamped to the length of the target month, so
    January 31st plus one month is the last day of February.
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def is_overdue(due_date: Optional[date], completed: bool, today: Optional[date] = None) -> bool:
    """
    Check if a todo is overdue.

    A todo is overdue if it has a due date strictly before today and
    is not completed.

    Args:
        due_date: The todo's due date (calendar day)
        completed: The todo's completion flag
        today: Override for the current day (defaults to local_today())

    Returns:
        True if todo is overdue, False otherwise
    """
    if not due_date or completed:
        return False
    return due_date < (today or local_today())


def is_due_today(due_date: Optional[date], completed: bool, today: Optional[date] = None) -> bool:
    """Check if an open todo falls due on the current calendar day."""
    if not due_date or completed:
        return False
    return due_date == (today or local_today())


def hours_since(moment: Optional[datetime], now: Optional[datetime] = None) -> Optional[float]:
    """Hours elapsed since `moment`, or None when there is no moment."""
    if moment is None:
        return None
    now = now or utc_now()
    return (ensure_aware(now) - ensure_aware(moment)) / timedelta(hours=1)
