"""Timestamp helpers.

All times handled by the services are timezone-aware UTC datetimes.
Stores that persist numbers use Unix timestamps in seconds.
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive datetimes are assumed to already be in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_timestamp(value: datetime) -> float:
    return ensure_utc(value).timestamp()


def from_timestamp(value: float | str) -> datetime:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def as_timedelta(value: int | float | timedelta) -> timedelta:
    """Convert a duration given in seconds (or a timedelta) to a timedelta.

    Raises:
        ValueError: If the duration is not strictly positive
    """
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"duration must be seconds or a timedelta, got {value!r}")
    else:
        duration = timedelta(seconds=value)

    if duration <= timedelta(0):
        raise ValueError(f"duration must be positive, got {duration}")
    return duration
