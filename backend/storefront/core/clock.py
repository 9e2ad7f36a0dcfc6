"""Clock helpers - timezone-aware timestamps.

Invariants:
    - Every datetime compared in core/ is timezone-aware UTC
    - Naive datetimes (SQLite round-trips) are interpreted as UTC
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
