"""Tests for the metrics aggregator."""
import asyncio
from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from gh_monitor.application.aggregator import (
    ACTIONS_FAILED,
    ACTIONS_SUCCEEDED,
    CHART_CATEGORIES,
    ISSUES_CLOSED,
    PRS_CREATED,
    PRS_MERGED,
    MetricsAggregator,
    build_chart_query,
    build_stats_query,
    issue_count,
    total_count,
)
from gh_monitor.domain.buckets import date_buckets
from gh_monitor.domain.models import Period, QueryResult, Repository
from gh_monitor.domain.source_interface import ISourceAdapter
from tests.conftest import FakeSource

NOW = datetime(2026, 10, 21, 15, 30)
REPO = Repository(owner="octo", name="cat")
RUNS_PATH = "repos/octo/cat/actions/runs"


def _run_counts(total, succeeded, failed):
    def route(params):
        assert params["created"] == "2025-10-21..2026-10-21"
        assert params["per_page"] == 1
        conclusion = params.get("conclusion")
        if conclusion == "success":
            return {"total_count": succeeded}
        if conclusion == "failure":
            return {"total_count": failed}
        return {"total_count": total}
    return route


def test_build_stats_query():
    query = build_stats_query("octo/cat", "2025-10-21..2026-10-21")

    assert ('prMerged: search(query: "repo:octo/cat type:pr is:merged '
            'created:2025-10-21..2026-10-21", type: ISSUE) { issueCount }') in query
    assert 'prOpen: search(query: "repo:octo/cat type:pr is:open", type: ISSUE)' in query
    assert 'issuesClosed: search(query: "repo:octo/cat type:issue is:closed' in query
    assert query.count("issueCount") == 6


def test_build_chart_query_has_four_aliases_per_bucket():
    buckets = date_buckets(Period.MONTHLY, NOW)
    query = build_chart_query("octo/cat", buckets)

    assert query.count("issueCount") == 4 * len(buckets)
    assert 'prC0: search(query: "repo:octo/cat type:pr created:2025-10-01..2025-10-31"' in query
    assert f'issC{len(buckets) - 1}: search(query: "repo:octo/cat type:issue is:closed ' \
           f'created:2026-10-01..2026-10-21"' in query


def test_issue_count_tolerates_malformed_fields():
    data = {"ok": {"issueCount": 4}, "str": {"issueCount": "4"}, "none": None}

    assert issue_count(data, "ok") == 4
    assert issue_count(data, "str") == 0
    assert issue_count(data, "none") == 0
    assert issue_count(data, "missing") == 0
    assert issue_count(None, "ok") == 0


def test_total_count_tolerates_malformed_body():
    assert total_count({"total_count": 12}) == 12
    assert total_count({"total_count": None}) == 0
    assert total_count([]) == 0
    assert total_count(None) == 0


@pytest.mark.asyncio
async def test_fetch_stats_merges_search_and_runs():
    source = FakeSource(
        graphql=QueryResult.success({
            "prCreated": {"issueCount": 12},
            "prMerged": {"issueCount": 9},
            "prOpen": {"issueCount": 3},
            "issuesOpened": {"issueCount": 20},
            "issuesClosed": {"issueCount": 15},
            "issuesOpen": {"issueCount": 40},
        }),
        routes={RUNS_PATH: _run_counts(10, 7, 3)},
    )

    stats = await MetricsAggregator(source).fetch_stats(REPO, Period.MONTHLY, now=NOW)

    assert (stats.pr_created, stats.pr_merged, stats.pr_open) == (12, 9, 3)
    assert (stats.issues_opened, stats.issues_closed, stats.issues_open) == (20, 15, 40)
    assert stats.actions_total == 10
    assert stats.actions_succeeded == 7
    assert stats.actions_failed == 3
    assert stats.actions_health_pct == 70
    assert stats.actions_failure_rate == "30.0%"
    assert stats.failed_queries == []
    # one batched search plus three run counts
    assert source.call_count == 4


@pytest.mark.asyncio
async def test_fetch_stats_search_failure_zeroes_only_search_fields():
    source = FakeSource(
        graphql=QueryResult.failure("transport down"),
        routes={RUNS_PATH: _run_counts(10, 7, 3)},
    )

    stats = await MetricsAggregator(source).fetch_stats(REPO, Period.MONTHLY, now=NOW)

    assert stats.pr_created == 0
    assert stats.issues_open == 0
    assert stats.actions_total == 10
    assert stats.failed_queries == ["search"]


@pytest.mark.asyncio
async def test_fetch_stats_single_run_count_failure_is_isolated():
    def route(params):
        if params.get("conclusion") == "failure":
            return QueryResult.failure("exit status 1")
        return {"total_count": 8}

    source = FakeSource(
        graphql=QueryResult.success({"prCreated": {"issueCount": 2}}),
        routes={RUNS_PATH: route},
    )

    stats = await MetricsAggregator(source).fetch_stats(REPO, Period.MONTHLY, now=NOW)

    assert stats.pr_created == 2
    assert stats.pr_merged == 0
    assert stats.actions_total == 8
    assert stats.actions_succeeded == 8
    assert stats.actions_failed == 0
    assert stats.failed_queries == ["actions_failed"]


@pytest.mark.asyncio
async def test_fetch_chart_data_keeps_bucket_order_when_runs_finish_reversed():
    buckets = date_buckets(Period.MONTHLY, NOW)
    ranges = [bucket.date_range for bucket in buckets]
    completion_order = []

    async def get_json(path, params=None, accept=None, paginate=False):
        index = ranges.index(params["created"])
        # earlier buckets finish last
        await asyncio.sleep((len(ranges) - index) * 0.002)
        completion_order.append(index)
        offset = 1 if params["conclusion"] == "success" else 2
        return QueryResult.success({"total_count": index * 10 + offset})

    search_data = {}
    for i in range(len(buckets)):
        search_data[f"prC{i}"] = {"issueCount": i}
        search_data[f"prM{i}"] = {"issueCount": i * 2}
        search_data[f"issO{i}"] = {"issueCount": i * 3}
        search_data[f"issC{i}"] = {"issueCount": i * 4}

    source = AsyncMock(spec=ISourceAdapter)
    source.execute_graphql.return_value = QueryResult.success(search_data)
    source.get_json.side_effect = get_json

    chart = await MetricsAggregator(source).fetch_chart_data(REPO, Period.MONTHLY, now=NOW)

    assert completion_order[0] == len(buckets) - 1
    assert source.execute_graphql.await_count == 1
    assert source.get_json.await_count == 2 * len(buckets)

    assert set(chart) == set(CHART_CATEGORIES)
    for name, series in chart.items():
        assert len(series) == len(buckets) == 13
        assert [p.date for p in series.points] == [b.start for b in buckets]
        assert all(p.category == name for p in series.points)

    assert chart[PRS_CREATED].values == list(range(13))
    assert chart[PRS_MERGED].values == [i * 2 for i in range(13)]
    assert chart[ISSUES_CLOSED].values == [i * 4 for i in range(13)]
    assert chart[ACTIONS_SUCCEEDED].values == [i * 10 + 1 for i in range(13)]
    assert chart[ACTIONS_FAILED].values == [i * 10 + 2 for i in range(13)]
    assert chart[PRS_CREATED].points[0].label == "Oct 2025"
    assert chart[PRS_CREATED].points[-1].label == "Oct 2026"


@pytest.mark.asyncio
async def test_fetch_chart_data_degrades_to_zero_series():
    source = FakeSource(
        graphql=QueryResult.failure("timeout"),
        routes={RUNS_PATH: QueryResult.failure("exit status 1")},
    )

    chart = await MetricsAggregator(source).fetch_chart_data(REPO, Period.WEEKLY, now=NOW)

    assert set(chart) == set(CHART_CATEGORIES)
    for series in chart.values():
        assert len(series) == 13
        assert set(series.values) == {0}
