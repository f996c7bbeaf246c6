"""Source adapter interface (port) for querying repository activity.

This is the anti-corruption layer that shields the application from GitHub API specifics.
Implementations never raise for transport or decode problems; they return a failed
QueryResult and leave it to the caller to degrade gracefully.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from gh_monitor.domain.models import QueryResult


class ISourceAdapter(ABC):
    """Abstract interface for source-control platform queries."""

    @abstractmethod
    async def execute_graphql(self, query: str) -> QueryResult[Dict[str, Any]]:
        """Run a GraphQL document.

        Args:
            query: GraphQL query text, typically a set of aliased searches

        Returns:
            The response ``data`` object, possibly partial
        """
        pass

    @abstractmethod
    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        accept: Optional[str] = None,
        paginate: bool = False
    ) -> QueryResult[Any]:
        """GET a REST resource relative to the API root.

        Args:
            path: Resource path such as ``repos/owner/name/releases``
            params: Query string parameters
            accept: Override for the Accept header
            paginate: Follow ``next`` links and concatenate list pages

        Returns:
            Decoded JSON body
        """
        pass

    @abstractmethod
    async def fetch_stargazer_timestamps(
        self, full_name: str, page: int, per_page: int
    ) -> QueryResult[List[str]]:
        """Fetch raw ``starred_at`` strings for one page of the stargazer listing."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
