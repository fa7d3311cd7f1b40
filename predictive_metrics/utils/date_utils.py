# predictive_metrics/utils/date_utils.py
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional, Union
import calendar


def convert_to_date(value: Union[date, datetime, str, None]) -> Optional[date]:
    """Convert a date-like value to a date.

    Args:
        value: date, datetime or ISO formatted string

    Returns:
        Date value, or None when value is None
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        text = value.strip()
        # Full timestamps are accepted and truncated to their calendar day
        if len(text) > 10:
            return convert_to_datetime(text).date()
        return date.fromisoformat(text)

    raise ValueError(f"Cannot convert {value!r} to a date")


def convert_to_datetime(value: Union[date, datetime, str, None]) -> Optional[datetime]:
    """Convert a timestamp to a naive UTC datetime.

    Stored timestamps come back either as datetime objects (SQLAlchemy) or as
    ISO strings with an offset (Supabase); both are normalized so they can be
    compared with the clock.

    Args:
        value: datetime, date or ISO formatted string

    Returns:
        Naive datetime in UTC, or None when value is None
    """
    if value is None:
        return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        value = datetime.fromisoformat(text)
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)

    return value


def date_range(start_date: date, end_date: date) -> Iterator[date]:
    """Iterate over every calendar day from start_date to end_date inclusive."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def is_weekend(day: date) -> bool:
    """Check whether a date falls on Saturday or Sunday."""
    return day.weekday() >= 5


def days_from_month_boundary(day: date) -> int:
    """Get the distance in days to the nearest month start or month end.

    Args:
        day: Date to check

    Returns:
        0 on the first or last day of the month, 1 on the day after/before, etc.
    """
    last_day = calendar.monthrange(day.year, day.month)[1]
    return min(day.day - 1, last_day - day.day)


def format_date_window(start_date: date, end_date: date) -> str:
    """Format a detection window as a stable key string."""
    return f"{start_date.isoformat()}..{end_date.isoformat()}"
