"""Bucketing engine: splits a period's lookback window into reporting intervals.

All functions are pure; pass ``now`` explicitly to get deterministic output.
"""
from datetime import datetime, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from gh_monitor.domain.models import DateBucket, Period


_LOOKBACK = {
    Period.WEEKLY: relativedelta(weeks=12),
    Period.MONTHLY: relativedelta(months=12),
    Period.YEARLY: relativedelta(years=1),
}

_STEP = {
    Period.WEEKLY: relativedelta(weeks=1),
    Period.MONTHLY: relativedelta(months=1),
    Period.YEARLY: relativedelta(years=1),
}


def start_date(period: Period, now: Optional[datetime] = None) -> datetime:
    """Start of the period's lookback window (12 weeks, 12 months or 1 year ago)."""
    now = now or datetime.now()
    return now - _LOOKBACK[period]


def bucket_key(date: datetime, period: Period) -> datetime:
    """Normalize ``date`` down to the start of its week, month or year.

    Weeks start on Monday. Time of day is zeroed and tzinfo is preserved,
    so applying the function twice yields the same value.
    """
    midnight = date.replace(hour=0, minute=0, second=0, microsecond=0)
    if period is Period.WEEKLY:
        return midnight - timedelta(days=midnight.weekday())
    if period is Period.MONTHLY:
        return midnight.replace(day=1)
    return midnight.replace(month=1, day=1)


def advance(date: datetime, period: Period) -> datetime:
    """Start of the bucket following the one starting at ``date``."""
    return date + _STEP[period]


def bucket_label(date: datetime, period: Period) -> str:
    """Axis label for a bucket start.

    Args:
        date: Bucket start
        period: Reporting period

    Returns:
        "Oct 5" for weeks, "Oct 2026" for months, "2026" for years
    """
    if period is Period.WEEKLY:
        return f"{date:%b} {date.day}"
    if period is Period.MONTHLY:
        return f"{date:%b %Y}"
    return f"{date:%Y}"


def date_buckets(period: Period, now: Optional[datetime] = None) -> List[DateBucket]:
    """Ordered, contiguous buckets covering the lookback window up to ``now``.

    Each bucket ends the day before the next one starts; the final bucket
    ends exactly at ``now`` so no query ever reaches into the future.

    Args:
        period: Reporting period
        now: Query time (defaults to the current local time)

    Returns:
        Buckets in ascending order of start
    """
    now = now or datetime.now()
    buckets: List[DateBucket] = []
    current = bucket_key(start_date(period, now), period)

    while current <= now:
        following = advance(current, period)
        end = now if following > now else following - timedelta(days=1)
        buckets.append(DateBucket(start=current, end=end))
        current = following

    return buckets


def format_date_range(start: datetime, end: datetime) -> str:
    """Render an inclusive range the way search qualifiers expect it."""
    return f"{start:%Y-%m-%d}..{end:%Y-%m-%d}"
