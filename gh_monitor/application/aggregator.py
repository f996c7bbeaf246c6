"""Time-bucketed metrics aggregation over the source adapter."""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from gh_monitor.domain import buckets as bucketing
from gh_monitor.domain.models import (
    ChartPoint,
    DateBucket,
    MetricSeries,
    Period,
    PeriodStats,
    QueryResult,
    Repository,
)
from gh_monitor.domain.source_interface import ISourceAdapter


logger = logging.getLogger(__name__)


PRS_CREATED = "PRs Created"
PRS_MERGED = "PRs Merged"
ISSUES_OPENED = "Issues Opened"
ISSUES_CLOSED = "Issues Closed"
ACTIONS_SUCCEEDED = "Actions Succeeded"
ACTIONS_FAILED = "Actions Failed"

CHART_CATEGORIES = (
    PRS_CREATED, PRS_MERGED, ISSUES_OPENED, ISSUES_CLOSED, ACTIONS_SUCCEEDED, ACTIONS_FAILED,
)

# alias prefix in the batched chart query -> series it feeds
_CHART_ALIASES = (
    ("prC", PRS_CREATED),
    ("prM", PRS_MERGED),
    ("issO", ISSUES_OPENED),
    ("issC", ISSUES_CLOSED),
)

# PeriodStats field -> alias in the batched stats query
_STATS_FIELDS = (
    ("pr_created", "prCreated"),
    ("pr_merged", "prMerged"),
    ("pr_open", "prOpen"),
    ("issues_opened", "issuesOpened"),
    ("issues_closed", "issuesClosed"),
    ("issues_open", "issuesOpen"),
)


def _search(alias: str, query: str) -> str:
    return f'{alias}: search(query: "{query}", type: ISSUE) {{ issueCount }}'


def build_stats_query(full_name: str, date_range: str) -> str:
    """Batched search query for the scalar PR and issue counts of one period."""
    repo = f"repo:{full_name}"
    aliases = [
        _search("prCreated", f"{repo} type:pr created:{date_range}"),
        _search("prMerged", f"{repo} type:pr is:merged created:{date_range}"),
        _search("prOpen", f"{repo} type:pr is:open"),
        _search("issuesOpened", f"{repo} type:issue created:{date_range}"),
        _search("issuesClosed", f"{repo} type:issue is:closed created:{date_range}"),
        _search("issuesOpen", f"{repo} type:issue is:open"),
    ]
    return "{\n" + "\n".join(aliases) + "\n}"


def build_chart_query(full_name: str, date_buckets: List[DateBucket]) -> str:
    """One query holding four aliased searches per bucket.

    Keeps the PR/issue side of a chart to a single round trip regardless of
    how many buckets the period has.
    """
    repo = f"repo:{full_name}"
    aliases = []
    for i, bucket in enumerate(date_buckets):
        date_range = bucket.date_range
        aliases.append(_search(f"prC{i}", f"{repo} type:pr created:{date_range}"))
        aliases.append(_search(f"prM{i}", f"{repo} type:pr is:merged created:{date_range}"))
        aliases.append(_search(f"issO{i}", f"{repo} type:issue created:{date_range}"))
        aliases.append(_search(f"issC{i}", f"{repo} type:issue is:closed created:{date_range}"))
    return "{\n" + "\n".join(aliases) + "\n}"


def issue_count(data: Any, alias: str) -> int:
    """``data[alias].issueCount`` or 0 when missing or malformed."""
    node = data.get(alias) if isinstance(data, dict) else None
    count = node.get("issueCount") if isinstance(node, dict) else None
    return count if isinstance(count, int) else 0


def total_count(body: Any) -> int:
    """``total_count`` of a REST list response or 0 when missing or malformed."""
    count = body.get("total_count") if isinstance(body, dict) else None
    return count if isinstance(count, int) else 0


class MetricsAggregator:
    """Stateless service computing period stats and chart series for a repository.

    Every sub-query degrades independently: a failed or malformed field counts
    as zero and never aborts the aggregate.
    """

    def __init__(self, source: ISourceAdapter):
        """Initialize aggregator.

        Args:
            source: Source adapter used for all queries
        """
        self._source = source

    async def fetch_stats(
        self,
        repository: Repository,
        period: Period,
        now: Optional[datetime] = None
    ) -> PeriodStats:
        """Fetch scalar counts over the period's full lookback window.

        The batched search query and the three CI run counts are issued
        concurrently and share the same ``start..today`` range.

        Args:
            repository: Repository to query
            period: Reporting period
            now: Query time, injectable for tests

        Returns:
            PeriodStats with zeroes for any field whose query failed
        """
        now = now or datetime.now()
        date_range = bucketing.format_date_range(bucketing.start_date(period, now), now)
        full_name = repository.full_name

        search_result, (total, succeeded, failed) = await asyncio.gather(
            self._source.execute_graphql(build_stats_query(full_name, date_range)),
            asyncio.gather(
                self._run_count(full_name, date_range),
                self._run_count(full_name, date_range, "success"),
                self._run_count(full_name, date_range, "failure"),
            ),
        )

        stats = PeriodStats()
        if search_result.ok:
            for name, alias in _STATS_FIELDS:
                setattr(stats, name, issue_count(search_result.value, alias))
        else:
            self._record(stats, "search", full_name, search_result)

        for name, result in (("actions_total", total),
                             ("actions_succeeded", succeeded),
                             ("actions_failed", failed)):
            if result.ok:
                setattr(stats, name, total_count(result.value))
            else:
                self._record(stats, name, full_name, result)

        return stats

    async def fetch_chart_data(
        self,
        repository: Repository,
        period: Period,
        now: Optional[datetime] = None
    ) -> Dict[str, MetricSeries]:
        """Fetch per-bucket series for every chart category.

        Args:
            repository: Repository to query
            period: Reporting period
            now: Query time, injectable for tests

        Returns:
            Mapping of category name to a series with one point per bucket
        """
        date_buckets = bucketing.date_buckets(period, now)
        full_name = repository.full_name

        search_series, actions_series = await asyncio.gather(
            self._fetch_search_series(full_name, date_buckets, period),
            self._fetch_actions_series(full_name, date_buckets, period),
        )
        series = dict(search_series)
        series.update(actions_series)
        return series

    async def _fetch_search_series(
        self, full_name: str, date_buckets: List[DateBucket], period: Period
    ) -> Dict[str, MetricSeries]:
        result = await self._source.execute_graphql(build_chart_query(full_name, date_buckets))
        if not result.ok:
            logger.warning(f"Chart search query failed for {full_name}: {result.error}")
        data = result.value_or({})

        series = {name: MetricSeries(name) for _, name in _CHART_ALIASES}
        for i, bucket in enumerate(date_buckets):
            label = bucketing.bucket_label(bucket.start, period)
            for prefix, name in _CHART_ALIASES:
                series[name].points.append(
                    ChartPoint(bucket.start, label, issue_count(data, f"{prefix}{i}"), name)
                )
        return series

    async def _fetch_actions_series(
        self, full_name: str, date_buckets: List[DateBucket], period: Period
    ) -> Dict[str, MetricSeries]:
        # The runs endpoint has no multi-range query: one task per bucket and outcome.
        async def tagged(index: int, conclusion: str) -> Tuple[int, str, int]:
            result = await self._run_count(full_name, date_buckets[index].date_range, conclusion)
            if not result.ok:
                logger.warning(
                    f"Run count ({conclusion}) failed for {full_name} bucket {index}: {result.error}"
                )
            return index, conclusion, total_count(result.value_or({}))

        tasks = [
            tagged(i, conclusion)
            for i in range(len(date_buckets))
            for conclusion in ("success", "failure")
        ]
        collected = [await task for task in asyncio.as_completed(tasks)]
        collected.sort(key=lambda item: item[0])

        counts: Dict[str, Dict[int, int]] = {"success": {}, "failure": {}}
        for index, conclusion, count in collected:
            counts[conclusion][index] = count

        succeeded = MetricSeries(ACTIONS_SUCCEEDED)
        failed = MetricSeries(ACTIONS_FAILED)
        for i, bucket in enumerate(date_buckets):
            label = bucketing.bucket_label(bucket.start, period)
            succeeded.points.append(
                ChartPoint(bucket.start, label, counts["success"].get(i, 0), ACTIONS_SUCCEEDED)
            )
            failed.points.append(
                ChartPoint(bucket.start, label, counts["failure"].get(i, 0), ACTIONS_FAILED)
            )
        return {ACTIONS_SUCCEEDED: succeeded, ACTIONS_FAILED: failed}

    async def _run_count(
        self, full_name: str, date_range: str, conclusion: Optional[str] = None
    ) -> QueryResult[Any]:
        params: Dict[str, Any] = {"created": date_range, "per_page": 1}
        if conclusion:
            params["conclusion"] = conclusion
        return await self._source.get_json(f"repos/{full_name}/actions/runs", params=params)

    @staticmethod
    def _record(stats: PeriodStats, name: str, full_name: str, result: QueryResult) -> None:
        logger.warning(f"Stats query '{name}' failed for {full_name}: {result.error}")
        stats.failed_queries.append(name)
