"""
Timezone-aware datetime helpers.

Every date that enters the engines is normalized to an aware UTC datetime so
that legacy exports mixing naive and offset timestamps can be compared safely.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure a datetime object is timezone-aware and in UTC.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_since(moment: datetime, as_of: Optional[datetime] = None) -> int:
    """Whole days elapsed between ``moment`` and ``as_of`` (default: now)."""
    reference = ensure_utc(as_of) if as_of is not None else utc_now()
    return (reference - ensure_utc(moment)).days


def months_since(moment: datetime, as_of: Optional[datetime] = None) -> int:
    """Account-age style months: whole 30-day periods elapsed."""
    return days_since(moment, as_of) // 30
