"""Time helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)`` columns,
so anything read from the database goes through ``ensure_aware`` before it is
compared with ``utcnow()``.
"""

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes; leave aware ones alone."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def local_date(value: datetime, tz_name: Optional[str] = None) -> date:
    """Calendar date of ``value`` in the configured business timezone."""
    tz = ZoneInfo(tz_name or settings.timezone)
    return ensure_aware(value).astimezone(tz).date()
