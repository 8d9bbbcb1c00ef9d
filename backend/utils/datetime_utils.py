"""
Datetime utility functions.
Provides a timezone-aware replacement for the deprecated datetime.utcnow().
"""

from datetime import datetime, timedelta
from typing import Optional
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def utc_iso(value: datetime) -> str:
    """
    Serialize a datetime as an ISO-8601 UTC string.

    All expiry/consumption timestamps are stored in this form so that plain
    string comparison orders them chronologically.

    Args:
        value: Timezone-aware or naive (assumed UTC) datetime

    Returns:
        ISO string with a +00:00 offset
    """
    if value.tzinfo is None:
        value = pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC).isoformat()


def expires_in(minutes: int, now: Optional[datetime] = None) -> str:
    """Return the ISO timestamp `minutes` from now (or from `now`)."""
    return utc_iso((now or utcnow()) + timedelta(minutes=minutes))


def is_expired(expires_at: str, now: Optional[datetime] = None) -> bool:
    """Check an ISO expiry timestamp against the current time."""
    return expires_at < utc_iso(now or utcnow())
