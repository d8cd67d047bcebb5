"""Built-in GitHub REST client with tenacity retry.

Provides a sync httpx client implementing the RemoteSource protocol for a
single repository. Reads configuration from constructor arguments or
environment variables.
"""

from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any

import httpx
import tenacity

from testhub.remote.errors import (
    RemoteAuthError,
    RemoteConfigError,
    RemoteNotFoundError,
    RemoteRateLimitError,
    RemoteResponseError,
)

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {500, 502, 503, 504}
_AUTH_ERROR_STATUS_CODES = {401, 403}
_NEXT_LINK = re.compile(r'\s*<([^>]+)>;\s*rel="next"')


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception is retryable.

    Retryable: 500, 502, 503, 504, connection errors.
    Not retryable: 404, 401, 403, 429 (surfaced to the caller's scheduler),
    other client errors.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout))


def _format_since(since: datetime) -> str:
    if since.tzinfo is not None:
        since = since.astimezone(timezone.utc).replace(tzinfo=None)
    return since.strftime("%Y-%m-%dT%H:%M:%SZ")


class GitHubClient:
    """Sync httpx client for one GitHub repository.

    Implements the RemoteSource protocol. Transient errors (5xx, connection
    failures) are retried with exponential backoff; everything else is
    mapped onto the remote error hierarchy and raised immediately.

    Usage::

        with GitHubClient("MESAHub/mesa", token="ghp_...") as client:
            commits = client.list_commits("main", since=yesterday)
    """

    BASE_URL = "https://api.github.com"
    DEFAULT_PER_PAGE = 100

    def __init__(
        self,
        repo: str,
        token: str | None = None,
        base_url: str | None = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        max_pages: int = 100,
    ) -> None:
        """Initialize the client.

        Args:
            repo: Target repository in ``owner/repo`` format.
            token: API token. Falls back to TESTHUB_GITHUB_TOKEN env var.
            base_url: API base URL. Falls back to TESTHUB_GITHUB_API_URL env
                var, then to https://api.github.com.
            timeout: Request timeout in seconds.
            max_retries: Maximum attempts for retryable errors.
            max_pages: Safety limit on followed pagination links.

        Raises:
            RemoteConfigError: If no token is available or repo is malformed.
        """
        if repo.count("/") != 1:
            raise RemoteConfigError(f"Repository must be 'owner/repo', got {repo!r}")
        self.repo = repo
        self._token = token or os.environ.get("TESTHUB_GITHUB_TOKEN", "")
        if not self._token:
            raise RemoteConfigError(
                "No GitHub token provided. Pass token= or set TESTHUB_GITHUB_TOKEN "
                "environment variable."
            )
        self._base_url = (
            base_url or os.environ.get("TESTHUB_GITHUB_API_URL", self.BASE_URL)
        ).rstrip("/")
        self._max_retries = max_retries
        self._max_pages = max_pages
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "testhub-sync",
            },
        )

    # ------------------------------------------------------------------
    # RemoteSource
    # ------------------------------------------------------------------

    def list_branches(self) -> list[dict[str, Any]]:
        return self._paginate(f"/repos/{self.repo}/branches")

    def list_commits(
        self,
        sha: str,
        *,
        since: datetime | None = None,
        auto_paginate: bool = True,
    ) -> list[dict[str, Any]]:
        params: dict[str, str] = {"sha": sha}
        if since is not None:
            params["since"] = _format_since(since)
        return self._paginate(
            f"/repos/{self.repo}/commits", params=params, auto_paginate=auto_paginate
        )

    def list_open_pull_requests(self) -> list[dict[str, Any]]:
        return self._paginate(f"/repos/{self.repo}/pulls", params={"state": "open"})

    def get_commit(self, sha: str) -> dict[str, Any]:
        return self._request("GET", f"/repos/{self.repo}/commits/{sha}").json()

    def get_file_content(self, path: str, *, ref: str) -> str:
        data = self._request(
            "GET",
            f"/repos/{self.repo}/contents/{path.lstrip('/')}",
            params={"ref": ref},
        ).json()
        if not isinstance(data, dict) or "content" not in data:
            raise RemoteResponseError(
                f"Unexpected content response for {path}: expected a file object"
            )
        return data["content"]

    def close(self) -> None:
        """Close the underlying httpx client."""
        self._client.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send one request with retry on transient failures.

        Uses tenacity.Retrying programmatically (not as decorator) so that
        max_retries is configurable per-instance.
        """
        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=(
                tenacity.wait_exponential(multiplier=1, min=1, max=30)
                + tenacity.wait_random(0, 2)
            ),
            stop=tenacity.stop_after_attempt(self._max_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retryer(self._do_request, method, url, params=params)

    def _do_request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Execute a single request (no retry) and map error statuses."""
        response = self._client.request(method, url, params=params)

        if response.status_code == 404:
            raise RemoteNotFoundError(
                f"Not found: {method} {url}", path=url
            )

        if response.status_code == 429 or (
            response.status_code == 403
            and response.headers.get("X-RateLimit-Remaining") == "0"
        ):
            retry_after_raw = response.headers.get("Retry-After")
            retry_after: float | None = None
            if retry_after_raw is not None:
                try:
                    retry_after = float(retry_after_raw)
                except (ValueError, TypeError):
                    pass
            raise RemoteRateLimitError(
                f"Rate limited: HTTP {response.status_code} - {response.text}",
                retry_after=retry_after,
            )

        if response.status_code in _AUTH_ERROR_STATUS_CODES:
            raise RemoteAuthError(
                f"Authentication failed: HTTP {response.status_code} - "
                f"{response.text}"
            )

        response.raise_for_status()
        return response

    def _paginate(
        self,
        path: str,
        *,
        params: dict[str, str] | None = None,
        auto_paginate: bool = True,
    ) -> list[dict[str, Any]]:
        """Fetch a list endpoint, following ``Link: rel="next"`` headers.

        With ``auto_paginate=False`` only the first page is returned.
        """
        items: list[dict[str, Any]] = []
        current_url = path
        current_params: dict[str, str] | None = {
            **(params or {}),
            "per_page": str(self.DEFAULT_PER_PAGE),
        }

        for page in range(self._max_pages):
            response = self._request("GET", current_url, params=current_params)
            data = response.json()
            if not isinstance(data, list):
                raise RemoteResponseError(
                    f"Unexpected response for {path}: expected a list"
                )
            items.extend(data)

            if not auto_paginate:
                break
            next_url = self._next_link(response.headers.get("Link", ""))
            if next_url is None:
                break
            # Parameters are embedded in the Link URL
            current_url = next_url
            current_params = None
            logger.debug("Paginating %s: page %d, %d items so far", path, page + 1, len(items))

        return items

    def _next_link(self, link_header: str) -> str | None:
        """Extract the ``rel="next"`` URL, refusing links off the API host."""
        for part in link_header.split(","):
            match = _NEXT_LINK.match(part.strip())
            if match:
                url = match.group(1)
                if not url.startswith(self._base_url + "/"):
                    logger.warning("Ignoring pagination link outside %s: %.100s", self._base_url, url)
                    return None
                return url
        return None
