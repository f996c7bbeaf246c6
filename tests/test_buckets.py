"""Tests for the bucketing engine."""
from datetime import datetime, timedelta, timezone

import pytest

from gh_monitor.domain.buckets import (
    advance,
    bucket_key,
    bucket_label,
    date_buckets,
    format_date_range,
    start_date,
)
from gh_monitor.domain.models import Period

# A Wednesday afternoon, so the current week and month are both partial.
NOW = datetime(2026, 10, 21, 15, 30)


@pytest.mark.parametrize("period", list(Period))
@pytest.mark.parametrize("now", [
    NOW,
    datetime(2026, 10, 1),
    datetime(2024, 2, 29, 23, 59),
    datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc),
])
def test_buckets_are_contiguous_and_end_at_now(period, now):
    buckets = date_buckets(period, now)

    assert buckets
    assert buckets[0].start == bucket_key(start_date(period, now), period)
    assert buckets[-1].end == now
    for previous, current in zip(buckets, buckets[1:]):
        assert current.start > previous.start
        assert current.start == advance(previous.start, period)
        assert previous.end == current.start - timedelta(days=1)
    for bucket in buckets:
        assert bucket.start <= bucket.end <= now


@pytest.mark.parametrize("period, expected", [
    (Period.WEEKLY, 13),
    (Period.MONTHLY, 13),
    (Period.YEARLY, 2),
])
def test_bucket_counts(period, expected):
    assert len(date_buckets(period, NOW)) == expected


def test_monthly_buckets_start_on_first_of_month():
    buckets = date_buckets(Period.MONTHLY, NOW)

    assert buckets[0].start == datetime(2025, 10, 1)
    assert buckets[0].end == datetime(2025, 10, 31)
    assert all(b.start.day == 1 for b in buckets)
    assert buckets[-1].start == datetime(2026, 10, 1)


def test_weekly_buckets_start_on_monday():
    buckets = date_buckets(Period.WEEKLY, NOW)

    assert all(b.start.weekday() == 0 for b in buckets)
    assert buckets[0].start == datetime(2026, 7, 27)
    assert buckets[-1].start == datetime(2026, 10, 19)


def test_yearly_buckets():
    buckets = date_buckets(Period.YEARLY, NOW)

    assert [b.start for b in buckets] == [datetime(2025, 1, 1), datetime(2026, 1, 1)]
    assert buckets[0].end == datetime(2025, 12, 31)


def test_final_bucket_clamped_mid_bucket():
    last = date_buckets(Period.MONTHLY, NOW)[-1]

    assert last.end == NOW
    assert last.date_range == "2026-10-01..2026-10-21"


@pytest.mark.parametrize("period", list(Period))
@pytest.mark.parametrize("date", [
    NOW,
    datetime(2026, 1, 1),
    datetime(2025, 12, 31, 23, 59, 59),
    datetime(2026, 3, 15, 8, 0, tzinfo=timezone.utc),
])
def test_bucket_key_idempotent(period, date):
    key = bucket_key(date, period)

    assert bucket_key(key, period) == key
    assert key <= date
    assert key.tzinfo == date.tzinfo


def test_start_date_lookbacks():
    assert start_date(Period.WEEKLY, NOW) == NOW - timedelta(weeks=12)
    assert start_date(Period.MONTHLY, NOW) == datetime(2025, 10, 21, 15, 30)
    assert start_date(Period.YEARLY, NOW) == datetime(2025, 10, 21, 15, 30)


def test_bucket_labels():
    date = datetime(2026, 10, 5)

    assert bucket_label(date, Period.WEEKLY) == "Oct 5"
    assert bucket_label(date, Period.MONTHLY) == "Oct 2026"
    assert bucket_label(date, Period.YEARLY) == "2026"


def test_format_date_range():
    assert format_date_range(datetime(2025, 10, 21), NOW) == "2025-10-21..2026-10-21"
