"""
Timestamp helpers.

SQLite hands back naive datetimes even for timezone-aware columns, so every
comparison goes through as_utc().
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_past(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when `deadline` is set and already behind `now`"""
    if deadline is None:
        return False
    return as_utc(deadline) < (now or utcnow())
