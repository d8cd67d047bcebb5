"""Remote source protocol.

Defines the pluggable interface the sync engine and test-case mapper use to
read a hosted repository. The built-in GitHubClient implements it; tests
use an in-memory fake.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class RemoteSource(Protocol):
    """Read-only view of one hosted repository.

    Commit payloads follow the GitHub REST shape::

        {"sha": ..., "parents": [{"sha": ...}],
         "commit": {"author": {"name", "email", "date"}, "message": ...},
         "html_url": ...}

    Every method raises RemoteNotFoundError when the ref or path is unknown.
    """

    def list_branches(self) -> list[dict[str, Any]]:
        """Branches as ``{"name": ..., "commit": {"sha": ...}}``."""
        ...

    def list_commits(
        self,
        sha: str,
        *,
        since: datetime | None = None,
        auto_paginate: bool = True,
    ) -> list[dict[str, Any]]:
        """Commits reachable from *sha*, newest first."""
        ...

    def list_open_pull_requests(self) -> list[dict[str, Any]]:
        """Open pull requests with ``merge_commit_sha``, ``title``, ``html_url``."""
        ...

    def get_commit(self, sha: str) -> dict[str, Any]:
        ...

    def get_file_content(self, path: str, *, ref: str) -> str:
        """Base64-encoded content of *path* at revision *ref*."""
        ...

    def close(self) -> None:
        """Release underlying resources."""
        ...
