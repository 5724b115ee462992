"""GitHub REST API data source."""

import logging
import os
from datetime import datetime, timezone
from typing import Any

import httpx

from repohealth.adapters.base import (
    DataSource,
    NetworkError,
    NotFound,
    RateLimited,
    ResourceDescriptor,
    Unauthorized,
)

logger = logging.getLogger(__name__)


class GitHubSource(DataSource):
    """Fetches raw repository facts from the GitHub API.

    Requires a GitHub personal access token for higher rate limits.
    Set GITHUB_TOKEN environment variable or pass token to constructor.
    """

    BASE_URL = "https://api.github.com"

    # Page caps per resource (100 items per page)
    MAX_PAGES = {
        "commits": 10,
        "releases": 1,
        "contributors": 5,
        "issues": 3,
        "pulls": 3,
        "issue_comments": 3,
    }

    def __init__(
        self,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
    ) -> None:
        """Initialize the source.

        Args:
            token: GitHub personal access token. If not provided, uses GITHUB_TOKEN env var.
            client: Optional httpx client. If not provided, a shared client is created lazily.
            base_url: Override the API root (GitHub Enterprise).
        """
        self._token = token or os.environ.get("GITHUB_TOKEN")
        self._client = client
        self._owns_client = client is None
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

        # Rate limit tracking
        self.rate_limit_remaining: int = 5000
        self.rate_limit_total: int = 5000
        self.rate_limit_reset: datetime | None = None

    def _headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "repo-health",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0, headers=self._headers())
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GitHubSource":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    def _update_rate_limits(self, response: httpx.Response) -> None:
        """Extract and store rate limit info from response headers."""
        remaining = response.headers.get("X-RateLimit-Remaining")
        limit = response.headers.get("X-RateLimit-Limit")
        reset = response.headers.get("X-RateLimit-Reset")

        if remaining is not None:
            self.rate_limit_remaining = int(remaining)
        if limit is not None:
            self.rate_limit_total = int(limit)
        if reset is not None:
            self.rate_limit_reset = datetime.fromtimestamp(int(reset), tz=timezone.utc)

    def _raise_for_status(self, response: httpx.Response, descriptor: ResourceDescriptor) -> None:
        """Map HTTP failures onto the data source error taxonomy."""
        status = response.status_code
        if status < 400:
            return
        if status == 404:
            raise NotFound(descriptor)
        if status == 429 or (status == 403 and response.headers.get("X-RateLimit-Remaining") == "0"):
            raise RateLimited(descriptor, self.rate_limit_reset)
        if status in (401, 403):
            raise Unauthorized(descriptor, status)
        raise NetworkError(descriptor, f"GitHub returned HTTP {status} for {descriptor.endpoint}")

    async def _get(self, descriptor: ResourceDescriptor, params: dict) -> httpx.Response:
        client = self._get_client()
        url = f"{self.base_url}{descriptor.endpoint}"
        try:
            response = await client.get(url, params=params, headers=self._headers())
        except httpx.TransportError as e:
            raise NetworkError(descriptor, f"Request to {descriptor.endpoint} failed: {e}") from e
        self._update_rate_limits(response)
        return response

    def _json(self, response: httpx.Response, descriptor: ResourceDescriptor) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(
                descriptor, f"Unreadable response from {descriptor.endpoint} (HTTP {response.status_code}): {e}"
            ) from e

    async def fetch(self, descriptor: ResourceDescriptor) -> Any:
        """Fetch one resource, following pagination for list endpoints."""
        if descriptor.paginated:
            return await self._fetch_all_pages(descriptor)

        response = await self._get(descriptor, dict(descriptor.params))
        self._raise_for_status(response, descriptor)
        logger.debug(f"Fetched {descriptor.endpoint} ({self.rate_limit_remaining} requests left)")
        return self._json(response, descriptor)

    async def _fetch_all_pages(self, descriptor: ResourceDescriptor) -> list:
        """Fetch all pages from a paginated endpoint."""
        params: dict = dict(descriptor.params)
        params.setdefault("per_page", 100)
        max_pages = self.MAX_PAGES.get(descriptor.resource, 10)

        results = []
        page = 1

        while page <= max_pages:
            params["page"] = page
            response = await self._get(descriptor, params)

            # Empty repositories answer 409 on commits and 204 on contributors
            if response.status_code == 409 and descriptor.resource == "commits":
                return []
            if response.status_code == 204:
                break
            self._raise_for_status(response, descriptor)

            data = self._json(response, descriptor)
            if not data:
                break

            results.extend(data)

            # Check if there are more pages
            if len(data) < int(params["per_page"]):
                break
            page += 1

        logger.debug(f"Fetched {len(results)} items from {descriptor.endpoint}")
        return results
