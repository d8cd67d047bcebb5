"""Abstract repository interfaces for testhub storage.

Defines ABC interfaces for all database operations. No SQLAlchemy
imports here -- pure abstract contracts.

Every create operation is insert-if-absent or upsert against a unique key
(``sha``, ``(branch, commit)``, ``(module, name)``, ``(commit, test case)``)
so concurrent syncs converge instead of duplicating rows.

Concrete implementations are in sqlite.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, Sequence

if TYPE_CHECKING:
    from datetime import datetime

    from testhub.models.status import Status
    from testhub.storage.schema import (
        BranchRow,
        CommitRow,
        ComputerRow,
        SubmissionRow,
        TestCaseCommitRow,
        TestInstanceRow,
    )


class CommitRepository(ABC):
    """Abstract interface for commit storage operations."""

    @abstractmethod
    def get(self, sha: str) -> CommitRow | None:
        """Get a commit by full sha. Returns None if not found."""
        ...

    @abstractmethod
    def get_by_id(self, commit_id: int) -> CommitRow | None:
        ...

    @abstractmethod
    def get_by_short_sha(self, short_sha: str) -> CommitRow | None:
        ...

    @abstractmethod
    def find_by_prefix(self, prefix: str) -> CommitRow | None:
        """Find a commit by sha prefix (min 4 chars).

        Raises AmbiguousShaError if multiple matches.
        Returns None if no match.
        """
        ...

    @abstractmethod
    def upsert_many(self, records: Sequence[dict[str, Any]]) -> dict[str, int]:
        """Insert commits, updating metadata of those whose sha already exists.

        Rollup scalars of existing rows are never touched.

        Returns:
            Mapping of sha to commit id for every record.
        """
        ...

    @abstractmethod
    def ids_for_shas(self, shas: Iterable[str]) -> dict[str, int]:
        """Map the known subset of *shas* to commit ids."""
        ...

    @abstractmethod
    def needing_test_cases(self, commit_ids: Iterable[int]) -> Sequence[CommitRow]:
        """Commits among *commit_ids* whose test_case_count is still zero."""
        ...

    @abstractmethod
    def bulk_update(self, values: Sequence[dict[str, Any]]) -> None:
        """Update several commits at once. Each dict must carry ``id``."""
        ...

    @abstractmethod
    def open_pull_requests(self) -> Sequence[CommitRow]:
        """Commits flagged as open pull requests."""
        ...

    @abstractmethod
    def pull_request_shas(self, shas: Iterable[str]) -> set[str]:
        """The subset of *shas* already stored as pull request commits."""
        ...

    @abstractmethod
    def count(self) -> int:
        ...


class BranchRepository(ABC):
    """Abstract interface for branch storage operations."""

    @abstractmethod
    def get(self, name: str) -> BranchRow | None:
        ...

    @abstractmethod
    def get_by_id(self, branch_id: int) -> BranchRow | None:
        ...

    @abstractmethod
    def list_all(self, *, include_merged: bool = True) -> Sequence[BranchRow]:
        """All branches ordered by name."""
        ...

    @abstractmethod
    def ensure(self, name: str) -> BranchRow:
        """Return the named branch, creating it unmerged if absent."""
        ...

    @abstractmethod
    def set_merged(self, branch_id: int, merged: bool) -> None:
        ...

    @abstractmethod
    def set_head(self, branch_id: int, commit_id: int | None) -> None:
        ...


class MembershipRepository(ABC):
    """Abstract interface for branch membership and ordering."""

    @abstractmethod
    def shas_for_branch(self, branch_id: int) -> set[str]:
        ...

    @abstractmethod
    def commit_ids_for_branch(self, branch_id: int) -> list[int]:
        ...

    @abstractmethod
    def count(self, branch_id: int) -> int:
        ...

    @abstractmethod
    def latest_commit_time(self, branch_id: int) -> datetime | None:
        """Newest commit time among the branch's non pull request members."""
        ...

    @abstractmethod
    def earliest_commit_time(self, branch_id: int) -> datetime | None:
        ...

    @abstractmethod
    def insert_if_absent(self, branch_id: int, commit_ids: Iterable[int]) -> None:
        """Attach commits to a branch. Existing (branch, commit) pairs are skipped."""
        ...

    @abstractmethod
    def contains(self, branch_id: int, commit_id: int) -> bool:
        ...

    @abstractmethod
    def branch_ids_for_commits(self, commit_ids: Iterable[int]) -> set[int]:
        """Ids of every branch containing at least one of *commit_ids*."""
        ...

    @abstractmethod
    def branches_for_commit(self, commit_id: int) -> Sequence[BranchRow]:
        ...

    @abstractmethod
    def place(self, branch_id: int) -> None:
        """Assign positions so they follow commit time (head highest)."""
        ...

    @abstractmethod
    def head_commit(self, branch_id: int) -> CommitRow | None:
        """Member with the highest position."""
        ...

    @abstractmethod
    def page(self, branch_id: int, page: int, per_page: int) -> Sequence[CommitRow]:
        """One page of branch commits ordered by position, newest first.

        Pages are 1-based.
        """
        ...

    @abstractmethod
    def window(
        self,
        branch_id: int,
        *,
        start: datetime,
        end: datetime,
        end_inclusive: bool,
        descending: bool,
        limit: int,
        exclude_id: int | None = None,
    ) -> Sequence[CommitRow]:
        """Branch commits with ``start <= commit_time < end`` (or ``<= end``)."""
        ...

    @abstractmethod
    def open_pull_requests(self, branch_id: int) -> Sequence[CommitRow]:
        """Open pull request commits in a branch, oldest first."""
        ...


class TestCaseRepository(ABC):
    """Abstract interface for the test case catalog and test case commits."""

    __test__ = False

    @abstractmethod
    def modules(self) -> list[str]:
        """Distinct modules present in the catalog."""
        ...

    @abstractmethod
    def ensure_many(self, pairs: Iterable[tuple[str, str]]) -> dict[tuple[str, str], int]:
        """Create missing (module, name) entries and return ids for all pairs."""
        ...

    @abstractmethod
    def insert_commit_cases(self, pairs: Iterable[tuple[int, int]]) -> None:
        """Insert (commit_id, test_case_id) rows that do not exist yet."""
        ...

    @abstractmethod
    def for_commit(self, commit_id: int) -> Sequence[TestCaseCommitRow]:
        ...

    @abstractmethod
    def get_commit_case(self, commit_id: int, test_case_id: int) -> TestCaseCommitRow | None:
        ...

    @abstractmethod
    def status_counts(self, commit_id: int) -> dict[Status, int]:
        """Number of test case commits per status for one commit."""
        ...

    @abstractmethod
    def divergent_checksum_count(self, commit_id: int) -> int:
        """Test case commits whose instances reported more than one checksum."""
        ...


class ResultRepository(ABC):
    """Abstract interface for computers, submissions, and test instances."""

    @abstractmethod
    def ensure_computer(self, name: str, user_name: str | None = None) -> ComputerRow:
        ...

    @abstractmethod
    def add_submission(self, submission: SubmissionRow) -> None:
        ...

    @abstractmethod
    def add_instance(self, instance: TestInstanceRow) -> None:
        ...

    @abstractmethod
    def submissions_for(self, commit_id: int) -> Sequence[SubmissionRow]:
        ...

    @abstractmethod
    def instances_for(self, test_case_commit_id: int) -> Sequence[TestInstanceRow]:
        ...

    @abstractmethod
    def exercised_test_cases(self, submission_ids: Iterable[int]) -> int:
        """Distinct test cases run by the given submissions."""
        ...

    @abstractmethod
    def compiled_flags(
        self, commit_id: int, computer_id: int | None = None
    ) -> list[bool | None]:
        """``compiled`` values of a commit's submissions, optionally per computer."""
        ...
