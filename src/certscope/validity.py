"""Time-window evaluation for certificate validity.

Every function takes the reference instant explicitly so callers (and tests)
control the clock. Naive datetimes are interpreted as UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

_ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Return *moment* as an aware UTC datetime."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def is_expired(not_after: datetime, now: datetime) -> bool:
    """Return True once *now* has reached *not_after*.

    The expiry instant itself counts as expired.
    """
    return as_utc(now) >= as_utc(not_after)


def is_within_window(not_before: datetime, not_after: datetime, now: datetime) -> bool:
    """Return True if *now* falls inside ``[not_before, not_after)``."""
    now = as_utc(now)
    return as_utc(not_before) <= now and not is_expired(not_after, now)


def days_until(not_after: datetime, now: datetime) -> int:
    """Signed whole days from *now* until *not_after*, floored.

    Returns a negative number for any expired certificate, including one
    expiring exactly at *now*.
    """
    remaining = as_utc(not_after) - as_utc(now)
    days = remaining // _ONE_DAY
    if remaining <= timedelta(0):
        return min(days, -1)
    return days


def lifespan_days(not_before: datetime, not_after: datetime) -> int:
    """Whole days between the start and end of the validity window."""
    return (as_utc(not_after) - as_utc(not_before)) // _ONE_DAY
