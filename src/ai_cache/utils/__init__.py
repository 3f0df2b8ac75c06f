"""Utility modules for the AI cache."""

from .timeutils import as_timedelta, ensure_utc, from_timestamp, to_timestamp, utc_now

__all__ = [
    "as_timedelta",
    "ensure_utc",
    "from_timestamp",
    "to_timestamp",
    "utc_now",
]
