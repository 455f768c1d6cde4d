import math
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from vod_payments.core.enums import AccessPeriod

PERIOD_DAYS = {
    AccessPeriod.HOURS_24: 1,
    AccessPeriod.DAYS_7: 7,
    AccessPeriod.DAYS_30: 30,
    AccessPeriod.DAYS_90: 90,
    AccessPeriod.DAYS_180: 180,
    AccessPeriod.DAYS_365: 365,
}

PERIOD_LABELS = {
    AccessPeriod.ONE_TIME: "One Time",
    AccessPeriod.HOURS_24: "24 Hours",
    AccessPeriod.DAYS_7: "7 Days",
    AccessPeriod.DAYS_30: "30 Days",
    AccessPeriod.DAYS_90: "90 Days",
    AccessPeriod.DAYS_180: "180 Days",
    AccessPeriod.DAYS_365: "1 Year",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def period_duration(period: Union[AccessPeriod, str, None]) -> Optional[timedelta]:
    """Duration of a fixed access period; None for one-time or unknown periods."""
    if period is None:
        return None
    try:
        days = PERIOD_DAYS.get(AccessPeriod(period))
    except ValueError:
        return None
    return timedelta(days=days) if days else None


def calculate_expiry(
    period: Union[AccessPeriod, str, None], start: Optional[datetime] = None
) -> Optional[datetime]:
    duration = period_duration(period)
    if duration is None:
        return None
    return (start or utcnow()) + duration


def period_label(period: Union[AccessPeriod, str]) -> str:
    try:
        return PERIOD_LABELS[AccessPeriod(period)]
    except ValueError:
        return str(period)


def days_remaining(expires_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    if expires_at is None:
        return None
    seconds = (expires_at - (now or utcnow())).total_seconds()
    return max(0, math.ceil(seconds / 86400))
