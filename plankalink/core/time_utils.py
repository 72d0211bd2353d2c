"""
Timezone-safe datetime utilities.

All timestamps are stored in UTC.
"""
from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Return current UTC datetime with timezone info attached.

    Example:
        >>> now = utc_now()
        >>> now.tzinfo
        datetime.timezone.utc
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Convert any datetime to UTC. Naive datetimes are assumed to already be UTC
    (SQLite drops tzinfo on round-trip).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
