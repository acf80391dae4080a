"""
UTC helpers shared by the store, scheduler and executor.

Convention: code passes timezone-aware UTC datetimes around; the database
holds naive UTC. Conversion happens only at the store boundary.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_naive_utc(value: datetime) -> datetime:
    """Aware (any zone) or naive-UTC datetime → naive UTC for storage."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def as_aware_utc(value: datetime | None) -> datetime | None:
    """Naive UTC from storage → aware UTC. Aware values are normalized to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_aware_utc(value).isoformat().replace("+00:00", "Z")
