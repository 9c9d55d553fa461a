"""GitHub REST API client for pull request harvesting.

Uses httpx.AsyncClient with trio for concurrent requests. Requests are never
retried here: every failure is mapped onto the error types in ``errors`` and
the run controller decides whether to suspend, skip or stop.
"""

import logging
from collections.abc import AsyncGenerator
from typing import Any

import httpx

from .config import GITHUB_API_URL, GITHUB_TOKEN, PER_PAGE, REQUEST_TIMEOUT
from .errors import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    RateLimitedError,
    TransientAPIError,
)

logger = logging.getLogger(__name__)


class GitHubClient:
    """Async GitHub REST API client bound to one repository."""

    def __init__(
        self,
        owner: str,
        name: str,
        token: str | None = None,
        base_url: str | None = None,
    ):
        """Initialize the client.

        Args:
            owner: Repository owner (user or organization)
            name: Repository name
            token: Personal access token; falls back to GITHUB_TOKEN
            base_url: REST root; falls back to GITHUB_API_URL
        """
        self.owner = owner
        self.name = name
        self.token = token or GITHUB_TOKEN
        if not self.token:
            raise ConfigurationError("GitHub auth required. Set GITHUB_TOKEN or pass --token")
        self.base_url = base_url or GITHUB_API_URL
        self.client: httpx.AsyncClient | None = None
        self._request_count = 0

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self.token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=REQUEST_TIMEOUT,
            http2=True,
        )
        return self

    async def __aexit__(self, *args):
        if self.client:
            await self.client.aclose()

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.name}"

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        """Primary limits report zero remaining; secondary limits send Retry-After."""
        if response.status_code == 429:
            return True
        if response.headers.get("X-RateLimit-Remaining") == "0":
            return True
        return "Retry-After" in response.headers

    def _raise_for_status(self, response: httpx.Response, method: str, path: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return

        message = f"{method} {path} returned {status}"
        if 300 <= status < 400:
            # Renamed or transferred repositories answer with a redirect
            location = response.headers.get("Location", "unknown")
            raise APIError(f"Moved: {message} (location {location})", status)
        if status in (403, 429) and self._is_rate_limited(response):
            reset = response.headers.get("X-RateLimit-Reset", "unknown")
            raise RateLimitedError(f"Rate limited: {message} (reset {reset})", status)
        if status == 401:
            raise AuthenticationError(f"Bad credentials: {message}", status)
        if status in (404, 410):
            raise NotFoundError(f"Not found: {message}", status)
        if status >= 500:
            raise TransientAPIError(f"Server error: {message}", status)
        raise APIError(f"{message}: {response.text[:200]}", status)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make a single request and map failures onto harvester errors."""
        if not self.client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        try:
            response = await self.client.request(method, path, params=params, headers=headers)
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} failed: {type(e).__name__}: {e}")
            raise TransientAPIError(f"{method} {path} failed: {e}") from e

        self._request_count += 1
        self._raise_for_status(response, method, path)
        return response

    async def get(self, path: str, params: dict | None = None, headers: dict | None = None) -> Any:
        """GET request returning JSON."""
        response = await self._request("GET", path, params=params, headers=headers)
        try:
            return response.json()
        except ValueError as e:
            raise TransientAPIError(f"GET {path} returned invalid JSON") from e

    async def paginate(
        self,
        path: str,
        params: dict | None = None,
        headers: dict | None = None,
        max_pages: int | None = None,
    ) -> AsyncGenerator[Any]:
        """Paginate through results, yielding each item."""
        params = params.copy() if params else {}
        params["per_page"] = PER_PAGE
        page = 1

        while True:
            params["page"] = page
            items = await self.get(path, params=params, headers=headers)

            if not items:
                break

            for item in items:
                yield item

            if len(items) < PER_PAGE:
                break

            if max_pages and page >= max_pages:
                break

            page += 1

    async def paginate_all(
        self,
        path: str,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> list[dict]:
        """Paginate through all results, returning a list."""
        results = []
        async for item in self.paginate(path, params, headers):
            results.append(item)
        return results

    async def get_repository(self) -> dict:
        """Get repository metadata."""
        return await self.get(self.repo_path)

    async def list_closed_pulls(self, page: int, per_page: int = PER_PAGE) -> list[dict]:
        """Get one page of closed PRs, most recently updated first."""
        params = {
            "state": "closed",
            "sort": "updated",
            "direction": "desc",
            "per_page": per_page,
            "page": page,
        }
        return await self.get(f"{self.repo_path}/pulls", params=params)

    async def get_pull_request(self, pr_number: int) -> dict:
        """Get full PR detail (includes additions/deletions)."""
        return await self.get(f"{self.repo_path}/pulls/{pr_number}")

    async def get_pr_reviews(self, pr_number: int) -> list[dict]:
        """Get all reviews for a PR."""
        return await self.paginate_all(f"{self.repo_path}/pulls/{pr_number}/reviews")

    async def get_pr_commits(self, pr_number: int) -> list[dict]:
        """Get commits in a PR, oldest first."""
        return await self.paginate_all(f"{self.repo_path}/pulls/{pr_number}/commits")

    async def get_pr_comments(self, pr_number: int) -> list[dict]:
        """Get PR-level comments (issue comments)."""
        return await self.paginate_all(f"{self.repo_path}/issues/{pr_number}/comments")

    async def get_rate_limit(self) -> dict:
        """Get current rate limit status."""
        return await self.get("/rate_limit")
