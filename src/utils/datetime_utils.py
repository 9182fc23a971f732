"""Datetime helpers for timestamps, backup ids and snapshot serialization.

Usage:
    from src.utils.datetime_utils import utc_now

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime, default=utc_now)
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def epoch_millis(moment: Optional[datetime] = None) -> int:
    """
    Milliseconds since the Unix epoch.

    Args:
        moment: Datetime to convert (default: now). Naive values are read as UTC.

    Returns:
        Integer milliseconds
    """
    if moment is None:
        moment = utc_now()
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def as_utc(moment: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def parse_iso(value) -> Optional[datetime]:
    """Parse an ISO-8601 string produced by ``datetime.isoformat()``.

    Datetime values pass through unchanged; None stays None.
    """
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
