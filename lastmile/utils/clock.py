"""Wall-clock helpers for the dispatch timezone.

Timestamps are stored naive, in the dispatch timezone, because every order,
deadline and cache entry belongs to a single metropolitan operation.
"""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Ho_Chi_Minh"

SUNDAY = 6


def local_now(timezone: str = DEFAULT_TIMEZONE) -> datetime:
    """Return the current time in ``timezone`` as a naive datetime."""
    return datetime.now(ZoneInfo(timezone)).replace(tzinfo=None, microsecond=0)


def next_working_day(day: date) -> date:
    """Return the first day after ``day`` that is not a Sunday."""
    candidate = day + timedelta(days=1)
    while candidate.weekday() == SUNDAY:
        candidate += timedelta(days=1)
    return candidate
