"""Configuration loaded from the environment (.env or env file)."""
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from gh_monitor.domain.models import Period


logger = logging.getLogger(__name__)


def load_environment() -> None:
    """Load environment variables from .env or env file."""
    load_dotenv('.env') or load_dotenv('env')


def get_connection_string() -> str:
    """Build PostgreSQL connection string from environment variables."""
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    database = os.getenv("POSTGRES_DB", "gh_monitor")
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")

    return f"host={host} port={port} dbname={database} user={user} password={password}"


def token_from_gh_cli() -> Optional[str]:
    """Ask the GitHub CLI for the token of the logged-in user."""
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True, text=True, timeout=10,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.info(f"GitHub CLI not available: {e}")
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def resolve_github_token() -> Optional[str]:
    """GITHUB_TOKEN if set, otherwise the token the GitHub CLI is logged in with."""
    return os.getenv("GITHUB_TOKEN") or token_from_gh_cli()


@dataclass(frozen=True)
class MonitorSettings:
    github_token: Optional[str]
    connection_string: str
    star_page_cap: int = 15
    advisory_timeout: float = 4.0
    period: Period = Period.MONTHLY

    @classmethod
    def from_env(cls) -> "MonitorSettings":
        return cls(
            github_token=resolve_github_token(),
            connection_string=get_connection_string(),
            star_page_cap=int(os.getenv("STAR_HISTORY_PAGE_CAP", "15")),
            advisory_timeout=float(os.getenv("ADVISORY_TIMEOUT_SECONDS", "4.0")),
            period=Period(os.getenv("MONITOR_PERIOD", Period.MONTHLY.value).capitalize()),
        )
