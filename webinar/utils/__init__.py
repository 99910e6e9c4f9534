"""Utilities package - clock, datetime and auth helpers."""
from webinar.utils.auth import get_bearer_token, is_authorized
from webinar.utils.clock import Clock, FrozenClock, SystemClock
from webinar.utils.datetime_utils import as_utc, isoformat_utc, to_db, utcnow

__all__ = [
    "Clock",
    "FrozenClock",
    "SystemClock",
    "as_utc",
    "get_bearer_token",
    "is_authorized",
    "isoformat_utc",
    "to_db",
    "utcnow",
]
