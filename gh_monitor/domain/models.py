"""Domain models representing core business entities."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Generic, List, Optional, TypeVar


T = TypeVar("T")

STALE_BRANCH_AGE = timedelta(days=30)


@dataclass(frozen=True)
class Repository:
    """Immutable domain entity representing a tracked GitHub repository.

    Using frozen dataclass for immutability following clean architecture principles.
    """
    owner: str
    name: str
    added_at: datetime = field(default_factory=datetime.now, compare=False)
    repo_id: Optional[int] = field(default=None, compare=False)

    @property
    def full_name(self) -> str:
        """Returns the full repository name (owner/name)."""
        return f"{self.owner}/{self.name}"

    def with_id(self, repo_id: int) -> 'Repository':
        """Returns a new Repository instance with the provided ID."""
        return Repository(
            owner=self.owner,
            name=self.name,
            added_at=self.added_at,
            repo_id=repo_id
        )

    @classmethod
    def from_full_name(cls, full_name: str) -> Optional['Repository']:
        """Build a Repository from "owner/name", or None if malformed."""
        parts = full_name.strip().split("/")
        if len(parts) != 2 or not all(parts):
            return None
        return cls(owner=parts[0], name=parts[1])


class Period(Enum):
    """Reporting period; drives lookback window, bucket size and labels."""
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    YEARLY = "Yearly"


@dataclass(frozen=True)
class DateBucket:
    """One reporting interval. ``end`` is clamped to query time for the last bucket."""
    start: datetime
    end: datetime

    @property
    def date_range(self) -> str:
        return f"{self.start:%Y-%m-%d}..{self.end:%Y-%m-%d}"


@dataclass(frozen=True)
class ChartPoint:
    date: datetime
    label: str
    value: int
    category: str


@dataclass
class MetricSeries:
    """Ordered chart points for one metric category."""
    name: str
    points: List[ChartPoint] = field(default_factory=list)

    @property
    def values(self) -> List[int]:
        return [point.value for point in self.points]

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class PeriodStats:
    """Scalar counts for one repository over a period's full lookback window."""
    pr_created: int = 0
    pr_merged: int = 0
    pr_open: int = 0
    issues_opened: int = 0
    issues_closed: int = 0
    issues_open: int = 0
    actions_total: int = 0
    actions_succeeded: int = 0
    actions_failed: int = 0
    failed_queries: List[str] = field(default_factory=list)

    @property
    def actions_failure_rate(self) -> str:
        if self.actions_total <= 0:
            return "0%"
        return f"{self.actions_failed / self.actions_total * 100:.1f}%"

    @property
    def actions_health_pct(self) -> int:
        if self.actions_total <= 0:
            return 100
        return int((self.actions_total - self.actions_failed) / self.actions_total * 100)


@dataclass(frozen=True)
class StarDataPoint:
    date: datetime
    cumulative_count: int


@dataclass(frozen=True)
class PullRequestInfo:
    number: int
    title: str
    state: str
    created_at: datetime
    merged_at: Optional[datetime]
    closed_at: Optional[datetime]
    author: str

    @property
    def is_merged(self) -> bool:
        return self.merged_at is not None

    @property
    def is_open(self) -> bool:
        return self.state.lower() == "open"


@dataclass(frozen=True)
class IssueInfo:
    number: int
    title: str
    state: str
    created_at: datetime
    closed_at: Optional[datetime]
    author: str
    labels: List[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.state.lower() == "open"

    @property
    def time_to_close(self) -> Optional[timedelta]:
        if self.closed_at is None:
            return None
        return self.closed_at - self.created_at


@dataclass(frozen=True)
class ActionRun:
    run_id: int
    name: str
    status: str
    conclusion: str
    created_at: datetime
    head_branch: str

    @property
    def is_success(self) -> bool:
        return self.conclusion == "success"

    @property
    def is_failure(self) -> bool:
        return self.conclusion == "failure"


@dataclass(frozen=True)
class ReleaseInfo:
    tag_name: str
    name: str
    published_at: Optional[datetime]
    is_prerelease: bool


@dataclass(frozen=True)
class WeekStat:
    week: datetime
    additions: int
    deletions: int
    commits: int


@dataclass(frozen=True)
class ContributorStat:
    login: str
    contributions: int
    weeks: List[WeekStat] = field(default_factory=list)


@dataclass(frozen=True)
class BranchInfo:
    name: str
    is_protected: bool
    last_commit_date: Optional[datetime] = None

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        """A branch without a known commit date, or idle for 30+ days, is stale."""
        if self.last_commit_date is None:
            return True
        now = now or datetime.now(self.last_commit_date.tzinfo)
        return now - self.last_commit_date > STALE_BRANCH_AGE


@dataclass(frozen=True)
class QueryResult(Generic[T]):
    """Outcome of one source query: either a value or an error description."""
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def value_or(self, default: T) -> T:
        if not self.ok or self.value is None:
            return default
        return self.value

    @classmethod
    def success(cls, value: T) -> 'QueryResult[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> 'QueryResult[T]':
        return cls(error=error)
