"""testhub: mirror a repository's commit graph and roll up test status.

Commits, branches and open pull requests are synced incrementally from
the remote; per-test-case results are aggregated into commit status.
"""

from testhub._version import __version__

# Core entry point
from testhub.hub import TestHub

# Models
from testhub.models.branch import BranchInfo
from testhub.models.commit import CommitInfo, RemoteCommit
from testhub.models.computer import ComputerSpec, ComputerSpecInfo
from testhub.models.config import HubConfig
from testhub.models.result import TestOutcome
from testhub.models.status import CompilationStatus, Status
from testhub.models.sync import BranchSyncResult, SyncReport

# Operations
from testhub.operations.aggregate import StatusAggregator
from testhub.operations.navigation import nearby_commits
from testhub.operations.sync import SyncEngine
from testhub.operations.test_cases import TestCaseMapper, parse_test_list

# Remote
from testhub.remote import GitHubClient, RemoteSource

# Exceptions
from testhub.exceptions import (
    AmbiguousShaError,
    BranchNotFoundError,
    CommitNotFoundError,
    CommitValidationError,
    RemoteSourceMissingError,
    TestHubError,
)
from testhub.remote.errors import (
    RemoteAuthError,
    RemoteClientError,
    RemoteConfigError,
    RemoteNotFoundError,
    RemoteRateLimitError,
)

__all__ = [
    "__version__",
    # Core
    "TestHub",
    # Models
    "BranchInfo",
    "BranchSyncResult",
    "CommitInfo",
    "CompilationStatus",
    "ComputerSpec",
    "ComputerSpecInfo",
    "HubConfig",
    "RemoteCommit",
    "Status",
    "SyncReport",
    "TestOutcome",
    # Operations
    "StatusAggregator",
    "SyncEngine",
    "TestCaseMapper",
    "nearby_commits",
    "parse_test_list",
    # Remote
    "GitHubClient",
    "RemoteSource",
    # Exceptions
    "AmbiguousShaError",
    "BranchNotFoundError",
    "CommitNotFoundError",
    "CommitValidationError",
    "RemoteAuthError",
    "RemoteClientError",
    "RemoteConfigError",
    "RemoteNotFoundError",
    "RemoteRateLimitError",
    "RemoteSourceMissingError",
    "TestHubError",
]
