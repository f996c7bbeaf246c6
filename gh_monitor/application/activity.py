"""Recent-item and low-volume listings for a repository."""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, TypeVar

from gh_monitor.domain.models import (
    ActionRun,
    BranchInfo,
    ChartPoint,
    ContributorStat,
    IssueInfo,
    MetricSeries,
    PullRequestInfo,
    ReleaseInfo,
    Repository,
    WeekStat,
)
from gh_monitor.domain.source_interface import ISourceAdapter


logger = logging.getLogger(__name__)

T = TypeVar("T")

RECENT_LIMIT = 25
RELEASE_LIMIT = 50


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 API timestamp; None stays None.

    Raises:
        TypeError: If the value is neither None nor a string
        ValueError: If the string is not ISO 8601
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise TypeError(f"expected a timestamp string, got {type(value).__name__}")
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _login(user: Any) -> str:
    if isinstance(user, dict) and isinstance(user.get("login"), str) and user["login"]:
        return user["login"]
    return "unknown"


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def decode_pull_request(raw: Dict[str, Any]) -> PullRequestInfo:
    """Decode one item of the REST pull request listing.

    Args:
        raw: JSON object from ``repos/{owner}/{name}/pulls``

    Returns:
        PullRequestInfo entity
    """
    return PullRequestInfo(
        number=raw["number"],
        title=raw["title"],
        state=raw["state"],
        created_at=parse_datetime(raw["created_at"]),
        merged_at=parse_datetime(raw.get("merged_at")),
        closed_at=parse_datetime(raw.get("closed_at")),
        author=_login(raw.get("user")),
    )


def decode_issue(raw: Dict[str, Any]) -> IssueInfo:
    """Decode one item of the REST issue listing, labels included."""
    return IssueInfo(
        number=raw["number"],
        title=raw["title"],
        state=raw["state"],
        created_at=parse_datetime(raw["created_at"]),
        closed_at=parse_datetime(raw.get("closed_at")),
        author=_login(raw.get("user")),
        labels=[label["name"] for label in raw.get("labels") or []],
    )


def decode_action_run(raw: Dict[str, Any]) -> ActionRun:
    """Decode one entry of the ``workflow_runs`` array."""
    return ActionRun(
        run_id=raw["id"],
        name=raw.get("name") or "",
        status=raw.get("status") or "",
        conclusion=raw.get("conclusion") or "",
        created_at=parse_datetime(raw["created_at"]),
        head_branch=raw.get("head_branch") or "",
    )


def decode_release(raw: Dict[str, Any]) -> ReleaseInfo:
    """Decode one release; an unnamed release is shown under its tag."""
    return ReleaseInfo(
        tag_name=raw["tag_name"],
        name=raw.get("name") or raw["tag_name"],
        published_at=parse_datetime(raw.get("published_at")),
        is_prerelease=bool(raw.get("prerelease")),
    )


def decode_contributor(raw: Dict[str, Any]) -> ContributorStat:
    """Decode one entry of the contributor statistics endpoint.

    Args:
        raw: JSON object with ``author``, ``total`` and ``weeks`` (w/a/d/c keys)

    Returns:
        ContributorStat with weeks as UTC datetimes
    """
    return ContributorStat(
        login=_login(raw.get("author")),
        contributions=raw["total"],
        weeks=[
            WeekStat(
                week=datetime.fromtimestamp(week["w"], tz=timezone.utc),
                additions=week["a"],
                deletions=week["d"],
                commits=week["c"],
            )
            for week in raw.get("weeks") or []
        ],
    )


def decode_branch(raw: Dict[str, Any]) -> BranchInfo:
    """Decode one branch; the commit date is None unless the full commit is embedded."""
    commit = _as_dict(raw.get("commit"))
    committer = _as_dict(_as_dict(commit.get("commit")).get("committer"))
    return BranchInfo(
        name=raw["name"],
        is_protected=bool(raw.get("protected")),
        last_commit_date=parse_datetime(committer.get("date")),
    )


def weekly_commit_series(contributors: List[ContributorStat]) -> MetricSeries:
    """Sum every contributor's weekly commits into one chronological series."""
    per_week: Dict[datetime, int] = defaultdict(int)
    for contributor in contributors:
        for week in contributor.weeks:
            per_week[week.week] += week.commits

    series = MetricSeries("Commits")
    for week in sorted(per_week):
        label = f"{week:%b} {week.day}, {week:%Y}"
        series.points.append(ChartPoint(week, label, per_week[week], "Commits"))
    return series


class ActivityService:
    """Fetches recent pull requests, issues, runs and other listings.

    Any transport or decode failure yields an empty list.
    """

    def __init__(self, source: ISourceAdapter):
        self._source = source

    async def fetch_pull_requests(self, repository: Repository) -> List[PullRequestInfo]:
        """The 25 most recently created pull requests in any state."""
        return await self._fetch_list(
            repository, "pulls", decode_pull_request,
            params={"state": "all", "per_page": RECENT_LIMIT},
        )

    async def fetch_issues(self, repository: Repository) -> List[IssueInfo]:
        # The issues endpoint also lists pull requests; drop them.
        return await self._fetch_list(
            repository, "issues", decode_issue,
            params={"state": "all", "per_page": RECENT_LIMIT},
            keep=lambda raw: "pull_request" not in raw,
        )

    async def fetch_action_runs(self, repository: Repository) -> List[ActionRun]:
        """The 25 most recent workflow runs."""
        return await self._fetch_list(
            repository, "actions/runs", decode_action_run,
            params={"per_page": RECENT_LIMIT},
            envelope="workflow_runs",
        )

    async def fetch_releases(self, repository: Repository) -> List[ReleaseInfo]:
        """Up to 50 releases, newest first."""
        return await self._fetch_list(
            repository, "releases", decode_release, params={"per_page": RELEASE_LIMIT},
        )

    async def fetch_contributors(self, repository: Repository) -> List[ContributorStat]:
        """Contributor statistics sorted by total commits, highest first.

        Returns:
            Empty list while GitHub is still computing the statistics
        """
        contributors = await self._fetch_list(repository, "stats/contributors", decode_contributor)
        return sorted(contributors, key=lambda c: c.contributions, reverse=True)

    async def fetch_branches(self, repository: Repository) -> List[BranchInfo]:
        """All branches, following pagination links."""
        return await self._fetch_list(
            repository, "branches", decode_branch,
            params={"per_page": 100}, paginate=True,
        )

    async def _fetch_list(
        self,
        repository: Repository,
        resource: str,
        decode: Callable[[Dict[str, Any]], T],
        params: Optional[Dict[str, Any]] = None,
        envelope: Optional[str] = None,
        keep: Optional[Callable[[Dict[str, Any]], bool]] = None,
        paginate: bool = False
    ) -> List[T]:
        full_name = repository.full_name
        result = await self._source.get_json(
            f"repos/{full_name}/{resource}", params=params, paginate=paginate
        )
        if not result.ok:
            logger.warning(f"Listing '{resource}' failed for {full_name}: {result.error}")
            return []

        body = result.value
        if envelope and isinstance(body, dict):
            body = body.get(envelope)
        if not isinstance(body, list):
            # stats endpoints answer 202 with an empty body while computing
            logger.info(f"Listing '{resource}' for {full_name} returned no records")
            return []

        records = [raw for raw in body if isinstance(raw, dict)]
        if len(records) != len(body):
            logger.warning(
                f"Skipped {len(body) - len(records)} non-object records in '{resource}' "
                f"for {full_name}"
            )

        try:
            return [decode(raw) for raw in records if keep is None or keep(raw)]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed '{resource}' response for {full_name}: {e}")
            return []
