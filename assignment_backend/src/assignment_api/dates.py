from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Return value as an aware UTC datetime. Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_midnight(value: datetime) -> datetime:
    """Start of the UTC calendar day containing value."""
    return datetime.combine(as_utc(value).date(), time.min, tzinfo=timezone.utc)


# PUBLIC_INTERFACE
def days_until(now: datetime, due: datetime) -> int:
    """
    Whole calendar days between the UTC days of now and due.

    The time-of-day portion is ignored: anything due later on the same UTC day
    is 0, the next UTC day is 1, and an earlier UTC day is negative.
    """
    now_day: date = as_utc(now).date()
    due_day: date = as_utc(due).date()
    return (due_day - now_day).days


def day_range(now: datetime, days: int) -> tuple[datetime, datetime]:
    """Half-open [start, end) range of UTC days beginning with today."""
    start = utc_midnight(now)
    return start, start + timedelta(days=days)


def month_end(now: datetime) -> datetime:
    """UTC midnight of the first day of the following month."""
    start = utc_midnight(now)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1, day=1)
    return start.replace(month=start.month + 1, day=1)
