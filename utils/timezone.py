"""UTC-everywhere time handling for credential lifetimes."""

from datetime import datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def expires_after(
    start: datetime,
    *,
    minutes: int = 0,
    hours: int = 0,
) -> datetime:
    """
    Expiry timestamp for a credential issued at ``start``.

    Raises ValueError if the resulting lifetime is not positive.
    """
    lifetime = timedelta(minutes=minutes, hours=hours)
    if lifetime <= timedelta(0):
        raise ValueError("Credential lifetime must be positive")
    return to_utc(start) + lifetime
