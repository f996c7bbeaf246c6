"""Per-repository, per-period cache of dashboard data."""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from gh_monitor.application.activity import ActivityService
from gh_monitor.application.aggregator import MetricsAggregator
from gh_monitor.application.star_history import StarHistoryReconstructor
from gh_monitor.domain.models import (
    ActionRun,
    BranchInfo,
    ContributorStat,
    IssueInfo,
    MetricSeries,
    Period,
    PeriodStats,
    PullRequestInfo,
    ReleaseInfo,
    Repository,
    StarDataPoint,
)


logger = logging.getLogger(__name__)

ChartData = Dict[str, MetricSeries]


class EntryState(Enum):
    LOADING = "loading"
    LOADED = "loaded"


@dataclass(frozen=True)
class RepositorySnapshot:
    """Everything a bulk load fetches for one repository."""
    stats: PeriodStats
    recent_prs: List[PullRequestInfo]
    recent_runs: List[ActionRun]
    recent_issues: List[IssueInfo]
    releases: List[ReleaseInfo]
    contributors: List[ContributorStat]
    branches: List[BranchInfo]

    @classmethod
    def empty(cls) -> 'RepositorySnapshot':
        return cls(PeriodStats(), [], [], [], [], [], [])


class MonitorStore:
    """Read-through cache owning all fetched dashboard data.

    Stats and chart series are keyed by repository full name and period; star
    history and listings by full name only. All mutations happen in the
    coroutine that owns the store, after fetch tasks have completed, so one
    repository's fields are always written together.

    A repository moves from absent to LOADING to LOADED and back to absent on
    eviction. Failed fetches still end LOADED with zeroed or empty fields.
    """

    def __init__(
        self,
        aggregator: MetricsAggregator,
        star_history: StarHistoryReconstructor,
        activity: ActivityService
    ):
        """Initialize store.

        Args:
            aggregator: Service computing stats and chart series
            star_history: Service rebuilding star growth curves
            activity: Service fetching listings
        """
        self._aggregator = aggregator
        self._star_history = star_history
        self._activity = activity

        self._active_loads = 0
        self._generation = 0
        self._states: Dict[str, EntryState] = {}
        self._evictions: Dict[str, int] = {}

        self._stats: Dict[str, Dict[Period, PeriodStats]] = {}
        self._chart_data: Dict[str, Dict[Period, ChartData]] = {}
        self._star_history_cache: Dict[str, List[StarDataPoint]] = {}
        self._recent_prs: Dict[str, List[PullRequestInfo]] = {}
        self._recent_runs: Dict[str, List[ActionRun]] = {}
        self._recent_issues: Dict[str, List[IssueInfo]] = {}
        self._releases: Dict[str, List[ReleaseInfo]] = {}
        self._contributors: Dict[str, List[ContributorStat]] = {}
        self._branches: Dict[str, List[BranchInfo]] = {}

    @property
    def is_loading(self) -> bool:
        """True while any bulk load or refresh is running. A presentation hint only."""
        return self._active_loads > 0

    @property
    def _caches(self) -> Tuple[dict, ...]:
        return (
            self._stats, self._chart_data, self._star_history_cache,
            self._recent_prs, self._recent_runs, self._recent_issues,
            self._releases, self._contributors, self._branches,
        )

    def state_of(self, full_name: str) -> Optional[EntryState]:
        """Entry state of a repository, None when absent."""
        return self._states.get(full_name)

    @property
    def tracked_names(self) -> List[str]:
        return list(self._states)

    async def load_if_needed(self, repositories: Iterable[Repository]) -> None:
        """Load repositories not seen yet and evict those no longer tracked.

        Calling again with an unchanged set performs no fetches.
        """
        repositories = list(repositories)
        wanted = {repo.full_name for repo in repositories}

        for full_name in [name for name in self._states if name not in wanted]:
            self.evict(full_name)

        missing = [repo for repo in repositories if repo.full_name not in self._states]
        if not missing:
            return
        await self._load(missing)

    async def refresh(self, repositories: Iterable[Repository]) -> None:
        """Drop every cached entry and reload all given repositories."""
        self._generation += 1
        self._states.clear()
        for cache in self._caches:
            cache.clear()
        await self._load(list(repositories))

    def evict(self, full_name: str) -> None:
        """Remove every cache entry belonging to one repository."""
        self._states.pop(full_name, None)
        self._evictions[full_name] = self._evictions.get(full_name, 0) + 1
        for cache in self._caches:
            cache.pop(full_name, None)
        logger.info(f"Evicted cached data for {full_name}")

    async def fetch_stats_if_needed(self, full_name: str, period: Period) -> Optional[PeriodStats]:
        """Return cached stats for one period, fetching them on a miss.

        Args:
            full_name: Repository in ``owner/name`` form
            period: Reporting period

        Returns:
            PeriodStats, or None when ``full_name`` is malformed
        """
        cached = self.stats_for(full_name, period)
        if cached is not None:
            return cached
        repository = Repository.from_full_name(full_name)
        if repository is None:
            return None
        token = self._write_token(full_name)
        result = await self._aggregator.fetch_stats(repository, period)
        if self._still_current(full_name, token):
            self._stats.setdefault(full_name, {})[period] = result
        return result

    async def fetch_chart_if_needed(self, full_name: str, period: Period) -> Optional[ChartData]:
        """Return cached chart series for one period, fetching them on a miss.

        Args:
            full_name: Repository in ``owner/name`` form
            period: Reporting period

        Returns:
            Category name to series mapping, or None when ``full_name`` is malformed
        """
        cached = self.chart_for(full_name, period)
        if cached is not None:
            return cached
        repository = Repository.from_full_name(full_name)
        if repository is None:
            return None
        token = self._write_token(full_name)
        result = await self._aggregator.fetch_chart_data(repository, period)
        if self._still_current(full_name, token):
            self._chart_data.setdefault(full_name, {})[period] = result
        return result

    async def fetch_star_history_if_needed(self, full_name: str) -> Optional[List[StarDataPoint]]:
        """Return the cached star curve, rebuilding it on a miss.

        Args:
            full_name: Repository in ``owner/name`` form

        Returns:
            Monthly cumulative points, or None when ``full_name`` is malformed
        """
        cached = self.star_history_for(full_name)
        if cached is not None:
            return cached
        repository = Repository.from_full_name(full_name)
        if repository is None:
            return None
        token = self._write_token(full_name)
        result = await self._star_history.fetch_star_history(repository)
        if self._still_current(full_name, token):
            self._star_history_cache[full_name] = result
        return result

    def _write_token(self, full_name: str) -> Tuple[int, int]:
        return self._generation, self._evictions.get(full_name, 0)

    def _still_current(self, full_name: str, token: Tuple[int, int]) -> bool:
        # A refresh or eviction during the fetch makes its result stale.
        if self._write_token(full_name) == token:
            return True
        logger.info(f"Discarding stale read-through result for {full_name}")
        return False

    # Read accessors return None on a miss.

    def stats_for(self, full_name: str, period: Period) -> Optional[PeriodStats]:
        return self._stats.get(full_name, {}).get(period)

    def chart_for(self, full_name: str, period: Period) -> Optional[ChartData]:
        return self._chart_data.get(full_name, {}).get(period)

    def star_history_for(self, full_name: str) -> Optional[List[StarDataPoint]]:
        return self._star_history_cache.get(full_name)

    def recent_prs_for(self, full_name: str) -> Optional[List[PullRequestInfo]]:
        return self._recent_prs.get(full_name)

    def recent_runs_for(self, full_name: str) -> Optional[List[ActionRun]]:
        return self._recent_runs.get(full_name)

    def recent_issues_for(self, full_name: str) -> Optional[List[IssueInfo]]:
        return self._recent_issues.get(full_name)

    def releases_for(self, full_name: str) -> Optional[List[ReleaseInfo]]:
        return self._releases.get(full_name)

    def contributors_for(self, full_name: str) -> Optional[List[ContributorStat]]:
        return self._contributors.get(full_name)

    def branches_for(self, full_name: str) -> Optional[List[BranchInfo]]:
        return self._branches.get(full_name)

    async def _load(self, repositories: List[Repository]) -> None:
        generation = self._generation
        for repo in repositories:
            self._states[repo.full_name] = EntryState.LOADING

        logger.info(f"Loading {len(repositories)} repositories")
        self._active_loads += 1
        try:
            for task in asyncio.as_completed([self._fetch_snapshot(repo) for repo in repositories]):
                full_name, snapshot = await task
                self._store_snapshot(full_name, snapshot, generation)
        finally:
            self._active_loads -= 1
        logger.info(f"Finished loading {len(repositories)} repositories")

    async def _fetch_snapshot(self, repository: Repository) -> Tuple[str, RepositorySnapshot]:
        try:
            stats, prs, runs, issues, releases, contributors, branches = await asyncio.gather(
                self._aggregator.fetch_stats(repository, Period.MONTHLY),
                self._activity.fetch_pull_requests(repository),
                self._activity.fetch_action_runs(repository),
                self._activity.fetch_issues(repository),
                self._activity.fetch_releases(repository),
                self._activity.fetch_contributors(repository),
                self._activity.fetch_branches(repository),
            )
        except Exception as e:
            # Any failure still ends the entry LOADED, with empty fields.
            logger.error(f"Error loading {repository.full_name}: {e}", exc_info=True)
            return repository.full_name, RepositorySnapshot.empty()

        return repository.full_name, RepositorySnapshot(
            stats=stats,
            recent_prs=prs,
            recent_runs=runs,
            recent_issues=issues,
            releases=releases,
            contributors=contributors,
            branches=branches,
        )

    def _store_snapshot(self, full_name: str, snapshot: RepositorySnapshot, generation: int) -> None:
        # Drop results for repositories evicted or reset while the fetch was in flight.
        if generation != self._generation or self._states.get(full_name) is not EntryState.LOADING:
            logger.info(f"Discarding stale load result for {full_name}")
            return

        self._stats.setdefault(full_name, {})[Period.MONTHLY] = snapshot.stats
        self._recent_prs[full_name] = snapshot.recent_prs
        self._recent_runs[full_name] = snapshot.recent_runs
        self._recent_issues[full_name] = snapshot.recent_issues
        self._releases[full_name] = snapshot.releases
        self._contributors[full_name] = snapshot.contributors
        self._branches[full_name] = snapshot.branches
        self._states[full_name] = EntryState.LOADED
