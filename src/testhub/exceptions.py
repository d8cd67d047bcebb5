"""Testhub exception hierarchy.

All testhub-specific exceptions inherit from TestHubError.
"""


class TestHubError(Exception):
    """Base exception for all testhub errors."""

    __test__ = False


class CommitNotFoundError(TestHubError):
    """Raised when a commit lookup by sha, short sha, or alias fails."""

    def __init__(self, ref: str) -> None:
        self.ref = ref
        super().__init__(f"Commit not found: {ref}")


class BranchNotFoundError(TestHubError):
    """Raised when a branch lookup fails."""

    def __init__(self, branch_name: str) -> None:
        self.branch_name = branch_name
        super().__init__(f"Branch not found: {branch_name}")


class AmbiguousShaError(TestHubError):
    """Raised when a sha prefix matches multiple commits."""

    def __init__(self, prefix: str, candidates: list[str]) -> None:
        self.prefix = prefix
        self.candidates = candidates
        candidate_str = ", ".join(c[:12] + "..." for c in candidates[:5])
        super().__init__(
            f"Ambiguous sha '{prefix}'. Matches: {candidate_str}"
        )


class CommitValidationError(TestHubError):
    """Raised when a remote commit payload is missing required fields.

    The offending record is never persisted.
    """

    def __init__(self, sha: str | None, reason: str) -> None:
        self.sha = sha
        self.reason = reason
        super().__init__(f"Invalid commit {sha or '<unknown>'}: {reason}")


class RemoteSourceMissingError(TestHubError):
    """Raised when a sync is requested but no remote source was configured."""

    def __init__(self) -> None:
        super().__init__(
            "No remote source configured. Pass remote= to TestHub.open() "
            "or set TESTHUB_GITHUB_TOKEN."
        )
