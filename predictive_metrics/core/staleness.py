# predictive_metrics/core/staleness.py
from datetime import datetime
from typing import Optional

from ..utils.date_utils import convert_to_datetime

DEFAULT_WINDOW_HOURS = 24


def record_age_hours(record, now: datetime) -> Optional[float]:
    """Get the age of a stored record in hours.

    Args:
        record: Any object with a ``created_at`` attribute
        now: Current timestamp

    Returns:
        Age in hours, or None when the record has no timestamp
    """
    created_at = convert_to_datetime(getattr(record, 'created_at', None))
    if created_at is None:
        return None
    return (now - created_at).total_seconds() / 3600.0


def is_fresh(record, force_refresh: bool, now: datetime, window_hours: float = DEFAULT_WINDOW_HOURS) -> bool:
    """Decide whether a stored record can be reused.

    Args:
        record: Stored record, or None when nothing is cached
        force_refresh: Caller asked to bypass the cache
        now: Current timestamp
        window_hours: Staleness window in hours

    Returns:
        True if the record was created less than window_hours ago
    """
    if force_refresh or record is None:
        return False

    age = record_age_hours(record, now)
    if age is None:
        return False

    return age < window_hours
