"""Shared fixtures: an in-memory source adapter that counts every call."""
import asyncio
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from gh_monitor.domain.models import QueryResult
from gh_monitor.domain.source_interface import ISourceAdapter


Route = Union[QueryResult, Callable[[Optional[Dict[str, Any]]], Any], Any]


class FakeSource(ISourceAdapter):
    """Source adapter answering from canned data.

    ``routes`` maps a REST path to a QueryResult, a raw body, or a callable
    receiving the query params. Unknown paths answer with an empty list.
    """

    def __init__(
        self,
        graphql: Optional[QueryResult] = None,
        routes: Optional[Dict[str, Route]] = None,
        stargazer_pages: Optional[Dict[int, List[str]]] = None
    ):
        self.graphql = graphql or QueryResult.success({})
        self.routes = routes or {}
        self.stargazer_pages = stargazer_pages or {}
        self.calls: List[tuple] = []
        self.requested_pages: List[int] = []
        self.gate: Optional[asyncio.Event] = None

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def _wait(self) -> None:
        if self.gate is not None:
            await self.gate.wait()

    async def execute_graphql(self, query):
        self.calls.append(("graphql", query))
        await self._wait()
        return self.graphql

    async def get_json(self, path, params=None, accept=None, paginate=False):
        self.calls.append(("get", path, params))
        await self._wait()
        route = self.routes.get(path, [])
        if callable(route):
            route = route(params)
        if isinstance(route, QueryResult):
            return route
        return QueryResult.success(route)

    async def fetch_stargazer_timestamps(self, full_name, page, per_page):
        self.calls.append(("stargazers", full_name, page))
        self.requested_pages.append(page)
        await self._wait()
        if page not in self.stargazer_pages:
            return QueryResult.failure(f"page {page} unavailable")
        return QueryResult.success(self.stargazer_pages[page])

    async def close(self):
        pass


@pytest.fixture
def fake_source():
    return FakeSource()
