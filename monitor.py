"""Main entry point for the repository monitor.

Loads the tracked repositories, fills the dashboard cache and logs a summary.
Repositories given as arguments (owner/name) are added to the tracked set first.
"""
import asyncio
import sys
import logging
from gh_monitor.config import MonitorSettings, load_environment
from gh_monitor.application.activity import ActivityService
from gh_monitor.application.advisories import AdvisoryCenter
from gh_monitor.application.aggregator import MetricsAggregator
from gh_monitor.application.monitor_store import MonitorStore
from gh_monitor.application.star_history import StarHistoryReconstructor, recent_monthly_growth
from gh_monitor.application.tracked_repositories import RepositoryTracker
from gh_monitor.infrastructure.github_client import GitHubApiClient
from gh_monitor.infrastructure.postgres_repository import PostgresRepositoryStorage

load_environment()


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main(args):
    """Refresh and summarize every tracked repository."""
    settings = MonitorSettings.from_env()
    if not settings.github_token:
        logger.error("GITHUB_TOKEN is not set and the GitHub CLI is not logged in")
        sys.exit(1)

    # Initialize infrastructure components
    storage = PostgresRepositoryStorage(settings.connection_string)
    advisories = AdvisoryCenter(timeout=settings.advisory_timeout)
    github_client = GitHubApiClient(settings.github_token, advisories=advisories)

    # Initialize application services
    tracker = RepositoryTracker(storage)
    for full_name in args:
        tracker.add_full_name(full_name)

    store = MonitorStore(
        aggregator=MetricsAggregator(github_client),
        star_history=StarHistoryReconstructor(github_client, page_cap=settings.star_page_cap),
        activity=ActivityService(github_client)
    )

    try:
        repositories = tracker.repositories
        if not repositories:
            logger.info("No repositories tracked. Pass owner/name arguments to add some.")
            return

        await store.load_if_needed(repositories)

        logger.info("=" * 50)
        for repo in repositories:
            name = repo.full_name
            stats = await store.fetch_stats_if_needed(name, settings.period)
            chart = await store.fetch_chart_if_needed(name, settings.period)
            stars = await store.fetch_star_history_if_needed(name)

            logger.info(f"{name} ({settings.period.value}):")
            logger.info(
                f"  PRs: {stats.pr_created} created, {stats.pr_merged} merged, "
                f"{stats.pr_open} open"
            )
            logger.info(
                f"  Issues: {stats.issues_opened} opened, {stats.issues_closed} closed, "
                f"{stats.issues_open} open"
            )
            logger.info(
                f"  Actions: {stats.actions_total} runs, failure rate "
                f"{stats.actions_failure_rate}, health {stats.actions_health_pct}%"
            )
            for category, series in chart.items():
                logger.info(f"  {category}: {series.values}")
            if stars:
                logger.info(
                    f"  Stars: {stars[-1].cumulative_count} "
                    f"(+{recent_monthly_growth(stars)} this month)"
                )
            logger.info(
                f"  Releases: {len(store.releases_for(name) or [])}, "
                f"contributors: {len(store.contributors_for(name) or [])}, "
                f"branches: {len(store.branches_for(name) or [])}"
            )
        logger.info("=" * 50)

    except Exception as e:
        logger.error(f"Monitor run failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        await github_client.close()
        storage.close()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1:]))
