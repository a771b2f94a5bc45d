"""Timestamp helpers shared by models, executors and read paths."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Returns None for anything that is not a usable timestamp.
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    # fromisoformat only learned the trailing "Z" in 3.11
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def isoformat(value: datetime | None) -> str | None:
    """Serialize a timestamp the way API payloads carry it."""
    if value is None:
        return None
    return as_utc(value).isoformat()
