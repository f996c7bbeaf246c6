"""GitHub API source adapter with rate limiting and retry logic."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from gql import gql, Client
from gql.transport.aiohttp import AIOHTTPTransport
from gql.transport.exceptions import TransportQueryError, TransportServerError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from gh_monitor.application.advisories import AdvisoryCenter
from gh_monitor.domain.models import QueryResult
from gh_monitor.domain.source_interface import ISourceAdapter


logger = logging.getLogger(__name__)

API_ROOT = "https://api.github.com"
GRAPHQL_URL = f"{API_ROOT}/graphql"
STAR_MEDIA_TYPE = "application/vnd.github.star+json"
MAX_PAGINATED_PAGES = 10
REQUEST_TIMEOUT_SECONDS = 30


class RateLimitException(Exception):
    """Exception raised when rate limit is hit."""
    pass


class GitHubApiClient(ISourceAdapter):
    """GitHub GraphQL and REST client implementing the ISourceAdapter port.

    Rate-limit hits and timeouts are retried with exponential backoff. Any
    other failure becomes a failed QueryResult and posts one advisory message,
    so callers can always fall back to zero or empty values.
    """

    def __init__(self, access_token: str, advisories: Optional[AdvisoryCenter] = None):
        """Initialize GitHub client.

        Args:
            access_token: GitHub token (personal access token or ``gh auth token``)
            advisories: Where to surface degraded-request notices
        """
        self._access_token = access_token
        self._advisories = advisories
        self._transport: Optional[AIOHTTPTransport] = None
        self._client: Optional[Client] = None
        self._gql_session = None
        self._http: Optional[aiohttp.ClientSession] = None
        self._init_lock = asyncio.Lock()
        self._rate_limit_remaining: int = 5000
        self._rate_limit_reset_at: Optional[datetime] = None

    async def __aenter__(self) -> "GitHubApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _init_graphql(self) -> None:
        """Connect the shared GraphQL session (lazy initialization)."""
        async with self._init_lock:
            if self._gql_session is None:
                self._transport = AIOHTTPTransport(
                    url=GRAPHQL_URL,
                    headers={"Authorization": f"Bearer {self._access_token}"},
                    timeout=REQUEST_TIMEOUT_SECONDS
                )
                self._client = Client(
                    transport=self._transport,
                    fetch_schema_from_transport=False
                )
                self._gql_session = await self._client.connect_async(reconnecting=False)

    async def _init_http(self) -> aiohttp.ClientSession:
        async with self._init_lock:
            if self._http is None:
                self._http = aiohttp.ClientSession(
                    headers=self._headers,
                    timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)
                )
            return self._http

    async def _check_rate_limit(self) -> None:
        """Check and handle rate limiting."""
        if self._rate_limit_remaining <= 10:
            if self._rate_limit_reset_at:
                wait_time = (self._rate_limit_reset_at - datetime.now(timezone.utc)).total_seconds()
                if wait_time > 0:
                    logger.warning(
                        f"Rate limit nearly exhausted. Waiting {wait_time:.0f} seconds "
                        f"until reset at {self._rate_limit_reset_at}"
                    )
                    await asyncio.sleep(wait_time + 1)  # Add 1 second buffer

    def _update_rate_limit(self, headers) -> None:
        remaining = headers.get("X-RateLimit-Remaining")
        reset = headers.get("X-RateLimit-Reset")
        if remaining is not None:
            self._rate_limit_remaining = int(remaining)
        if reset is not None:
            self._rate_limit_reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc)

    @retry(
        retry=retry_if_exception_type((RateLimitException, asyncio.TimeoutError)),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        reraise=True
    )
    async def _execute_graphql(self, query: str) -> Dict[str, Any]:
        """Execute a GraphQL document with retry logic.

        Raises:
            RateLimitException: When rate limit is hit
        """
        await self._init_graphql()
        await self._check_rate_limit()

        try:
            return await self._gql_session.execute(gql(query))
        except TransportQueryError as e:
            if "rate limit" in str(e).lower():
                raise RateLimitException(str(e))
            if e.data:
                # Some aliases failed; the others are still usable.
                logger.warning(f"GraphQL query returned partial data: {e.errors}")
                return e.data
            raise
        except TransportServerError as e:
            # The transport keeps the headers of the last response it received.
            headers = getattr(self._transport, "response_headers", None) or {}
            self._update_rate_limit(headers)
            if e.code == 429 or (e.code == 403 and headers.get("X-RateLimit-Remaining") == "0"):
                raise RateLimitException(str(e))
            raise

    @retry(
        retry=retry_if_exception_type((RateLimitException, asyncio.TimeoutError)),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=4, max=60),
        reraise=True
    )
    async def _get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        accept: Optional[str] = None
    ) -> Tuple[Any, Optional[str]]:
        """GET one REST page.

        Returns:
            Decoded body and the ``next`` page URL, if any

        Raises:
            RateLimitException: When rate limit is hit
        """
        http = await self._init_http()
        await self._check_rate_limit()

        headers = {"Accept": accept} if accept else None
        async with http.get(url, params=params, headers=headers) as response:
            self._update_rate_limit(response.headers)

            remaining = response.headers.get("X-RateLimit-Remaining")
            if response.status == 429 or (response.status == 403 and remaining == "0"):
                raise RateLimitException(f"Rate limit exceeded for {url}")
            if response.status == 202:
                # statistics are still being computed
                return {}, None
            response.raise_for_status()

            body = await response.json(content_type=None)
            next_link = response.links.get("next")
            next_url = str(next_link["url"]) if next_link else None
            return body, next_url

    async def execute_graphql(self, query: str) -> QueryResult[Dict[str, Any]]:
        try:
            data = await self._execute_graphql(query)
        except Exception as e:
            return self._failure("GraphQL query", e)
        if not isinstance(data, dict):
            return self._failure("GraphQL query", ValueError("response has no data object"))
        return QueryResult.success(data)

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        accept: Optional[str] = None,
        paginate: bool = False
    ) -> QueryResult[Any]:
        try:
            body, next_url = await self._get(f"{API_ROOT}/{path}", params, accept)

            pages = 1
            while paginate and isinstance(body, list) and next_url and pages < MAX_PAGINATED_PAGES:
                page_body, next_url = await self._get(next_url, accept=accept)
                if isinstance(page_body, list):
                    body.extend(page_body)
                pages += 1
        except Exception as e:
            return self._failure(f"GET {path}", e)

        return QueryResult.success(body)

    async def fetch_stargazer_timestamps(
        self, full_name: str, page: int, per_page: int
    ) -> QueryResult[List[str]]:
        result = await self.get_json(
            f"repos/{full_name}/stargazers",
            params={"per_page": per_page, "page": page},
            accept=STAR_MEDIA_TYPE
        )
        if not result.ok:
            return QueryResult.failure(result.error)
        if not isinstance(result.value, list):
            return self._failure(f"stargazers page {page}", ValueError("expected a list"))

        return QueryResult.success([
            item["starred_at"]
            for item in result.value
            if isinstance(item, dict) and isinstance(item.get("starred_at"), str)
        ])

    def _failure(self, context: str, error: Exception) -> QueryResult:
        logger.error(f"{context} failed: {error}")
        if self._advisories is not None:
            self._advisories.post(f"GitHub request failed: {context}")
        return QueryResult.failure(f"{context}: {error}")

    async def close(self) -> None:
        """Close the GraphQL client and HTTP session."""
        if self._client and self._gql_session is not None:
            await self._client.close_async()
        self._gql_session = None
        self._client = None
        self._transport = None
        if self._http:
            await self._http.close()
            self._http = None
