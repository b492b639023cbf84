"""Business-calendar helpers (Asia/Jakarta by default)."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from app.config import get_settings

_SECONDS_PER_DAY = 86_400


def business_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().BUSINESS_TIMEZONE)


def now() -> datetime:
    """Current instant in the business timezone."""
    return datetime.now(business_tz())


def ensure_aware(value: datetime) -> datetime:
    """Attach the business timezone to a naive datetime; aware values pass through."""
    if value.tzinfo is None:
        return value.replace(tzinfo=business_tz())
    return value


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from *start* to *end*, rounding partial days up.

    Negative when *end* precedes *start*.
    """
    delta: timedelta = ensure_aware(end) - ensure_aware(start)
    return math.ceil(delta.total_seconds() / _SECONDS_PER_DAY)
