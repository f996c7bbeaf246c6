"""Repository interface (port) for persisting the tracked repository set.

This is the port in hexagonal architecture that the infrastructure layer implements.
"""
from abc import ABC, abstractmethod
from typing import List
from gh_monitor.domain.models import Repository


class IRepositoryStorage(ABC):
    """Abstract interface for tracked repository storage."""

    @abstractmethod
    def load_repositories(self) -> List[Repository]:
        """Load the tracked repositories in display order."""
        pass

    @abstractmethod
    def save_repositories(self, repositories: List[Repository]) -> None:
        """Replace the stored set with ``repositories``.

        The order of the list is the display order and must be preserved.

        Args:
            repositories: List of Repository entities to persist
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close any open connections."""
        pass
