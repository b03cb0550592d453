"""Timezone helpers. Every datetime handled by the engine is timezone-aware."""

from __future__ import annotations

import math
from datetime import datetime, time, timedelta, timezone, tzinfo

ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def start_of_local_day(now: datetime, tz: tzinfo) -> datetime:
    """Midnight of *now*'s calendar day in *tz*, as an aware datetime."""
    local = ensure_aware(now).astimezone(tz)
    return datetime.combine(local.date(), time.min, tzinfo=tz)


def whole_days_between(start: datetime, end: datetime) -> int:
    """floor((end - start) / 1 day); negative when *end* precedes *start*."""
    return math.floor((ensure_aware(end) - ensure_aware(start)) / ONE_DAY)


def days_until(end: datetime, now: datetime) -> int:
    """ceil((end - now) / 1 day), clamped at zero."""
    return max(0, math.ceil((ensure_aware(end) - ensure_aware(now)) / ONE_DAY))
