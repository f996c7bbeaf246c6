"""Star history reconstruction from the paginated stargazer listing.

Stargazer events can number in the tens of thousands, so full enumeration is
not an option. The reconstructor reads at most ``page_cap`` pages of the most
recent events, keeps those inside the trailing window and rebuilds a monthly
cumulative curve anchored to the true total.

Repositories gaining more than ``page_cap * per_page`` stars inside the window
get an undercounted early part of the curve. Past 40,000 stars GitHub stops
listing stargazers, so the walk starts at the last listable page and the curve
may be flat until the final point. The final point always equals the real
total.
"""
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from gh_monitor.domain.models import ChartPoint, Repository, StarDataPoint
from gh_monitor.domain.source_interface import ISourceAdapter


logger = logging.getLogger(__name__)

DEFAULT_PAGE_CAP = 15
DEFAULT_PER_PAGE = 100
DEFAULT_WINDOW_DAYS = 365
# GitHub refuses stargazer pages beyond the first 40,000 entries (HTTP 422).
MAX_LISTED_STARGAZERS = 40000

_STRICT_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def parse_timestamp(raw: str) -> Optional[datetime]:
    """Parse a ``starred_at`` value, strict format first, then ISO 8601 leniently."""
    text = raw.strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, _STRICT_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def month_start(date: datetime) -> datetime:
    return date.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def build_cumulative_curve(
    timestamps: List[datetime],
    total_stars: int,
    now: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS
) -> List[StarDataPoint]:
    """Turn sampled star events into monthly cumulative points.

    Args:
        timestamps: Starring events in any order, possibly outside the window
        total_stars: True total star count of the repository
        now: End of the window (timezone-aware)
        window_days: Length of the trailing window

    Returns:
        One point per calendar month of the window, non-decreasing, with the
        last point equal to ``total_stars``
    """
    if total_stars <= 0:
        return []

    window_start = now - timedelta(days=window_days)
    in_window = [ts for ts in timestamps if window_start <= ts <= now]
    stars_before_window = max(total_stars - len(in_window), 0)

    months = {}
    current = month_start(window_start)
    last_month = month_start(now)
    while current <= last_month:
        months[current] = 0
        current += relativedelta(months=1)

    for ts in in_window:
        key = month_start(ts.astimezone(now.tzinfo))
        if key in months:
            months[key] += 1

    points: List[StarDataPoint] = []
    cumulative = stars_before_window
    for month, count in months.items():
        cumulative += count
        points.append(StarDataPoint(date=month, cumulative_count=min(cumulative, total_stars)))

    if points:
        points[-1] = StarDataPoint(date=points[-1].date, cumulative_count=total_stars)
    return points


class StarHistoryReconstructor:
    """Stateless service producing a trailing-window star growth curve."""

    def __init__(
        self,
        source: ISourceAdapter,
        page_cap: int = DEFAULT_PAGE_CAP,
        per_page: int = DEFAULT_PER_PAGE,
        window_days: int = DEFAULT_WINDOW_DAYS
    ):
        """Initialize reconstructor.

        Args:
            source: Source adapter used for all queries
            page_cap: Maximum number of stargazer pages read per repository
            per_page: Events per stargazer page (GitHub max is 100)
            window_days: Length of the trailing window
        """
        self._source = source
        self._page_cap = max(page_cap, 1)
        self._per_page = min(per_page, 100)
        self._window_days = window_days

    async def fetch_star_history(
        self, repository: Repository, now: Optional[datetime] = None
    ) -> List[StarDataPoint]:
        """Fetch and rebuild the monthly star curve for the trailing window.

        Args:
            repository: Repository to query
            now: End of the window, injectable for tests

        Returns:
            Monthly cumulative points, empty when the repository has no stars
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        total_stars = await self._fetch_total_stars(repository)
        if total_stars <= 0:
            return []

        timestamps = await self._fetch_recent_timestamps(repository, total_stars, now)
        return build_cumulative_curve(timestamps, total_stars, now, self._window_days)

    async def _fetch_total_stars(self, repository: Repository) -> int:
        result = await self._source.get_json(f"repos/{repository.full_name}")
        if not result.ok:
            logger.warning(f"Star count query failed for {repository.full_name}: {result.error}")
            return 0
        body = result.value
        count = body.get("stargazers_count") if isinstance(body, dict) else None
        return count if isinstance(count, int) else 0

    async def _fetch_recent_timestamps(
        self, repository: Repository, total_stars: int, now: datetime
    ) -> List[datetime]:
        total_pages = math.ceil(total_stars / self._per_page)
        last_page = min(total_pages, MAX_LISTED_STARGAZERS // self._per_page)
        if last_page < total_pages:
            logger.info(
                f"{repository.full_name} has {total_stars} stars; "
                f"starting the walk at the last listable page {last_page}"
            )
        pages_to_fetch = min(last_page, self._page_cap)
        window_start = now - timedelta(days=self._window_days)

        # The listing is oldest-first: walk from the last page backwards.
        # Pages are fetched one after another to stay under the rate limit.
        timestamps: List[datetime] = []
        for page in range(last_page, last_page - pages_to_fetch, -1):
            result = await self._source.fetch_stargazer_timestamps(
                repository.full_name, page, self._per_page
            )
            if not result.ok:
                logger.warning(
                    f"Stargazer page {page} failed for {repository.full_name}: {result.error}"
                )
                continue

            parsed = [ts for ts in (parse_timestamp(raw) for raw in result.value_or([])) if ts]
            timestamps.extend(parsed)
            if parsed and max(parsed) < window_start:
                break

        logger.info(
            f"Sampled {len(timestamps)} star events for {repository.full_name} "
            f"({total_stars} total)"
        )
        return timestamps


def monthly_growth(points: List[StarDataPoint]) -> List[ChartPoint]:
    """New stars per month, derived from consecutive cumulative points."""
    return [
        ChartPoint(
            date=current.date,
            label=f"{current.date:%b %Y}",
            value=current.cumulative_count - previous.cumulative_count,
            category="New Stars",
        )
        for previous, current in zip(points, points[1:])
    ]


def recent_monthly_growth(points: List[StarDataPoint]) -> int:
    if len(points) < 2:
        return 0
    return points[-1].cumulative_count - points[-2].cumulative_count


def average_monthly_stars(points: List[StarDataPoint]) -> int:
    if len(points) < 2:
        return 0
    return points[-1].cumulative_count // len(points)
