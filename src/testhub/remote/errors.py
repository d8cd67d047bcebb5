"""Remote source error hierarchy.

All remote errors inherit from TestHubError for consistent exception handling.
"""

from __future__ import annotations

from testhub.exceptions import TestHubError


class RemoteClientError(TestHubError):
    """Base for all remote source client errors."""


class RemoteConfigError(RemoteClientError):
    """Missing or invalid remote configuration (e.g., no token)."""


class RemoteNotFoundError(RemoteClientError):
    """The requested ref, commit, or file does not exist remotely (404)."""

    def __init__(self, message: str = "Not found", *, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class RemoteRateLimitError(RemoteClientError):
    """Rate limited by the API (429, or 403 with an exhausted quota).

    Attributes:
        retry_after: Seconds to wait before retrying, or None if not provided.
    """

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message)


class RemoteAuthError(RemoteClientError):
    """Authentication failed (401/403)."""


class RemoteResponseError(RemoteClientError):
    """Unexpected response format from the remote API."""
