"""Remote source infrastructure for testhub.

Provides the RemoteSource protocol, a GitHub REST implementation, and the
remote error hierarchy.
"""

from testhub.remote.client import GitHubClient
from testhub.remote.errors import (
    RemoteAuthError,
    RemoteClientError,
    RemoteConfigError,
    RemoteNotFoundError,
    RemoteRateLimitError,
    RemoteResponseError,
)
from testhub.remote.protocols import RemoteSource

__all__ = [
    "GitHubClient",
    "RemoteSource",
    "RemoteClientError",
    "RemoteConfigError",
    "RemoteNotFoundError",
    "RemoteRateLimitError",
    "RemoteAuthError",
    "RemoteResponseError",
]
