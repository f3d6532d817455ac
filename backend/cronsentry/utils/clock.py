"""Time helpers.

All timestamps are naive UTC datetimes internally; aware datetimes are only
produced at library boundaries (cron evaluation, API serialization).
"""
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_aware(value: datetime) -> datetime:
    """Attach UTC to a naive timestamp read from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def as_naive(value: datetime) -> datetime:
    """Convert any datetime to naive UTC for storage."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def elapsed_ms(start: datetime, end: datetime) -> int:
    return int((as_naive(end) - as_naive(start)).total_seconds() * 1000)
