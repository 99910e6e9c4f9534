"""Datetime utilities for consistent timezone handling."""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    Get current UTC time as a timezone-aware datetime.

    Returns:
        datetime: Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Columns are stored as naive UTC, so naive values are assumed to already be UTC.
    """
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db(value: datetime | None) -> datetime | None:
    """Convert a datetime to the naive-UTC form stored in DateTime columns."""
    if value is None:
        return None
    return as_utc(value).replace(tzinfo=None)


def isoformat_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_utc(value).isoformat().replace("+00:00", "Z")
