"""The ordered set of repositories the monitor tracks."""
import logging
from typing import List

from gh_monitor.domain.models import Repository
from gh_monitor.domain.repository_interface import IRepositoryStorage


logger = logging.getLogger(__name__)


class RepositoryTracker:
    """Keeps the tracked set and writes it back to storage after every change."""

    def __init__(self, storage: IRepositoryStorage):
        self._storage = storage
        self._repositories: List[Repository] = storage.load_repositories()
        logger.info(f"Loaded {len(self._repositories)} tracked repositories")

    @property
    def repositories(self) -> List[Repository]:
        return list(self._repositories)

    def is_tracked(self, full_name: str) -> bool:
        return any(repo.full_name == full_name for repo in self._repositories)

    def add(self, owner: str, name: str) -> bool:
        """Track a repository; newest additions come first.

        Returns:
            False if the repository was already tracked
        """
        repository = Repository(owner=owner, name=name)
        if self.is_tracked(repository.full_name):
            return False
        self._repositories.insert(0, repository)
        self._storage.save_repositories(self._repositories)
        logger.info(f"Tracking {repository.full_name}")
        return True

    def add_full_name(self, full_name: str) -> bool:
        repository = Repository.from_full_name(full_name)
        if repository is None:
            logger.warning(f"Ignoring malformed repository name: {full_name!r}")
            return False
        return self.add(repository.owner, repository.name)

    def remove(self, full_name: str) -> bool:
        remaining = [repo for repo in self._repositories if repo.full_name != full_name]
        if len(remaining) == len(self._repositories):
            return False
        self._repositories = remaining
        self._storage.save_repositories(self._repositories)
        logger.info(f"Stopped tracking {full_name}")
        return True
