"""SQLAlchemy implementations of repository interfaces.

All repositories use SQLAlchemy 2.0-style queries (select() + session.execute()).
Each repository takes a Session in its constructor.

Upserts go through the dialect-specific ``insert`` (SQLite or PostgreSQL),
both of which support ``ON CONFLICT``.
"""

from __future__ import annotations

from datetime import datetime
from itertools import islice
from typing import Any, Callable, Iterable, Iterator, Sequence, TypeVar

from sqlalchemy import distinct, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from testhub.models.status import Status
from testhub.storage.repositories import (
    BranchRepository,
    CommitRepository,
    MembershipRepository,
    ResultRepository,
    TestCaseRepository,
)
from testhub.storage.schema import (
    BranchMembershipRow,
    BranchRow,
    CommitRow,
    ComputerRow,
    SubmissionRow,
    TestCaseCommitRow,
    TestCaseRow,
    TestInstanceRow,
)

# Stays below SQLite's host-parameter limit for multi-row VALUES.
_BATCH_SIZE = 200

# Columns refreshed when a sync observes an already-stored sha.
_COMMIT_METADATA_FIELDS = (
    "short_sha",
    "author",
    "author_email",
    "commit_time",
    "message",
    "github_url",
)

T = TypeVar("T")


def _chunks(items: Iterable[T], size: int = _BATCH_SIZE) -> Iterator[list[T]]:
    it = iter(items)
    while chunk := list(islice(it, size)):
        yield chunk


def _insert(session: Session, entity: type) -> Any:
    """Dialect-specific INSERT that supports on_conflict_* clauses."""
    if session.get_bind().dialect.name == "postgresql":
        return postgresql.insert(entity)
    return sqlite.insert(entity)


class SqliteCommitRepository(CommitRepository):
    """SQL implementation of commit repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, sha: str) -> CommitRow | None:
        stmt = select(CommitRow).where(CommitRow.sha == sha)
        return self._session.execute(stmt).scalar_one_or_none()

    def get_by_id(self, commit_id: int) -> CommitRow | None:
        return self._session.get(CommitRow, commit_id)

    def get_by_short_sha(self, short_sha: str) -> CommitRow | None:
        stmt = select(CommitRow).where(CommitRow.short_sha == short_sha)
        return self._session.execute(stmt).scalar_one_or_none()

    def find_by_prefix(self, prefix: str) -> CommitRow | None:
        from testhub.exceptions import AmbiguousShaError

        if len(prefix) < 4:
            raise ValueError("Commit sha prefix must be at least 4 characters")

        stmt = select(CommitRow).where(CommitRow.sha.startswith(prefix)).limit(6)
        results = list(self._session.execute(stmt).scalars().all())
        if len(results) == 0:
            return None
        if len(results) == 1:
            return results[0]
        raise AmbiguousShaError(prefix, [r.sha for r in results])

    def upsert_many(self, records: Sequence[dict[str, Any]]) -> dict[str, int]:
        if not records:
            return {}
        # Pending ORM changes must reach the database before the raw upsert.
        self._session.flush()
        for chunk in _chunks(records):
            stmt = _insert(self._session, CommitRow).values(chunk)
            stmt = stmt.on_conflict_do_update(
                index_elements=["sha"],
                set_={name: getattr(stmt.excluded, name) for name in _COMMIT_METADATA_FIELDS},
            )
            self._session.execute(stmt)
        shas = {r["sha"] for r in records}
        self._expire_loaded(lambda c: c.sha in shas)
        return self.ids_for_shas(shas)

    def ids_for_shas(self, shas: Iterable[str]) -> dict[str, int]:
        ids: dict[str, int] = {}
        for chunk in _chunks(dict.fromkeys(shas)):
            stmt = select(CommitRow.sha, CommitRow.id).where(CommitRow.sha.in_(chunk))
            ids.update({sha: commit_id for sha, commit_id in self._session.execute(stmt)})
        return ids

    def needing_test_cases(self, commit_ids: Iterable[int]) -> Sequence[CommitRow]:
        found: list[CommitRow] = []
        for chunk in _chunks(commit_ids):
            stmt = (
                select(CommitRow)
                .where(CommitRow.id.in_(chunk), CommitRow.test_case_count == 0)
                .execution_options(populate_existing=True)
            )
            found.extend(self._session.execute(stmt).scalars().all())
        found.sort(key=lambda c: (c.commit_time, c.id))
        return found

    def bulk_update(self, values: Sequence[dict[str, Any]]) -> None:
        if not values:
            return
        self._session.flush()
        self._session.execute(update(CommitRow), list(values))
        touched = {v["id"] for v in values}
        self._expire_loaded(lambda c: c.id in touched)

    def _expire_loaded(self, predicate: Callable[[CommitRow], bool]) -> None:
        """Expire loaded rows a bulk statement changed behind the ORM's back."""
        for obj in list(self._session.identity_map.values()):
            if isinstance(obj, CommitRow) and predicate(obj):
                self._session.expire(obj)

    def open_pull_requests(self) -> Sequence[CommitRow]:
        stmt = (
            select(CommitRow)
            .where(CommitRow.pull_request.is_(True), CommitRow.open.is_(True))
            .order_by(CommitRow.commit_time)
        )
        return list(self._session.execute(stmt).scalars().all())

    def pull_request_shas(self, shas: Iterable[str]) -> set[str]:
        found: set[str] = set()
        for chunk in _chunks(dict.fromkeys(shas)):
            stmt = select(CommitRow.sha).where(
                CommitRow.pull_request.is_(True), CommitRow.sha.in_(chunk)
            )
            found.update(self._session.execute(stmt).scalars().all())
        return found

    def count(self) -> int:
        return self._session.execute(select(func.count()).select_from(CommitRow)).scalar_one()


class SqliteBranchRepository(BranchRepository):
    """SQL implementation of branch repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, name: str) -> BranchRow | None:
        stmt = select(BranchRow).where(BranchRow.name == name)
        return self._session.execute(stmt).scalar_one_or_none()

    def get_by_id(self, branch_id: int) -> BranchRow | None:
        return self._session.get(BranchRow, branch_id)

    def list_all(self, *, include_merged: bool = True) -> Sequence[BranchRow]:
        stmt = select(BranchRow).order_by(BranchRow.name)
        if not include_merged:
            stmt = stmt.where(BranchRow.merged.is_(False))
        return list(self._session.execute(stmt).scalars().all())

    def ensure(self, name: str) -> BranchRow:
        self._session.flush()
        stmt = (
            _insert(self._session, BranchRow)
            .values(name=name, merged=False)
            .on_conflict_do_nothing(index_elements=["name"])
        )
        self._session.execute(stmt)
        branch = self.get(name)
        assert branch is not None
        return branch

    def set_merged(self, branch_id: int, merged: bool) -> None:
        branch = self.get_by_id(branch_id)
        if branch is not None and branch.merged != merged:
            branch.merged = merged
            self._session.flush()

    def set_head(self, branch_id: int, commit_id: int | None) -> None:
        branch = self.get_by_id(branch_id)
        if branch is not None and branch.head_id != commit_id:
            branch.head_id = commit_id
            self._session.flush()
            # The loaded ``head`` relationship still points at the old row.
            self._session.expire(branch, ["head"])


class SqliteMembershipRepository(MembershipRepository):
    """SQL implementation of branch membership repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _branch_commits(self, branch_id: int):  # type: ignore[no-untyped-def]
        return (
            select(CommitRow)
            .join(BranchMembershipRow, BranchMembershipRow.commit_id == CommitRow.id)
            .where(BranchMembershipRow.branch_id == branch_id)
        )

    def shas_for_branch(self, branch_id: int) -> set[str]:
        stmt = (
            select(CommitRow.sha)
            .join(BranchMembershipRow, BranchMembershipRow.commit_id == CommitRow.id)
            .where(BranchMembershipRow.branch_id == branch_id)
        )
        return set(self._session.execute(stmt).scalars().all())

    def commit_ids_for_branch(self, branch_id: int) -> list[int]:
        stmt = select(BranchMembershipRow.commit_id).where(
            BranchMembershipRow.branch_id == branch_id
        )
        return list(self._session.execute(stmt).scalars().all())

    def count(self, branch_id: int) -> int:
        stmt = select(func.count()).select_from(BranchMembershipRow).where(
            BranchMembershipRow.branch_id == branch_id
        )
        return self._session.execute(stmt).scalar_one()

    def latest_commit_time(self, branch_id: int) -> datetime | None:
        stmt = (
            select(func.max(CommitRow.commit_time))
            .join(BranchMembershipRow, BranchMembershipRow.commit_id == CommitRow.id)
            .where(
                BranchMembershipRow.branch_id == branch_id,
                CommitRow.pull_request.is_(False),
            )
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def earliest_commit_time(self, branch_id: int) -> datetime | None:
        stmt = (
            select(func.min(CommitRow.commit_time))
            .join(BranchMembershipRow, BranchMembershipRow.commit_id == CommitRow.id)
            .where(BranchMembershipRow.branch_id == branch_id)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def insert_if_absent(self, branch_id: int, commit_ids: Iterable[int]) -> None:
        rows = [{"branch_id": branch_id, "commit_id": cid} for cid in dict.fromkeys(commit_ids)]
        if not rows:
            return
        self._session.flush()
        for chunk in _chunks(rows):
            stmt = (
                _insert(self._session, BranchMembershipRow)
                .values(chunk)
                .on_conflict_do_nothing(
                    index_elements=["branch_id", "commit_id"]
                )
            )
            self._session.execute(stmt)

    def contains(self, branch_id: int, commit_id: int) -> bool:
        stmt = select(BranchMembershipRow.id).where(
            BranchMembershipRow.branch_id == branch_id,
            BranchMembershipRow.commit_id == commit_id,
        )
        return self._session.execute(stmt).first() is not None

    def branch_ids_for_commits(self, commit_ids: Iterable[int]) -> set[int]:
        found: set[int] = set()
        for chunk in _chunks(dict.fromkeys(commit_ids)):
            stmt = select(BranchMembershipRow.branch_id).distinct().where(
                BranchMembershipRow.commit_id.in_(chunk)
            )
            found.update(self._session.execute(stmt).scalars().all())
        return found

    def branches_for_commit(self, commit_id: int) -> Sequence[BranchRow]:
        stmt = (
            select(BranchRow)
            .join(BranchMembershipRow, BranchMembershipRow.branch_id == BranchRow.id)
            .where(BranchMembershipRow.commit_id == commit_id)
            .order_by(BranchRow.name)
        )
        return list(self._session.execute(stmt).scalars().all())

    def place(self, branch_id: int) -> None:
        """Renumber the branch 1..n by (commit_time, message, id).

        Only rows whose position actually changes are written.
        """
        stmt = (
            select(BranchMembershipRow)
            .join(CommitRow, CommitRow.id == BranchMembershipRow.commit_id)
            .where(BranchMembershipRow.branch_id == branch_id)
            .order_by(CommitRow.commit_time, CommitRow.message, CommitRow.id)
        )
        memberships = self._session.execute(stmt).scalars().all()
        for position, membership in enumerate(memberships, start=1):
            if membership.position != position:
                membership.position = position
        self._session.flush()

    def head_commit(self, branch_id: int) -> CommitRow | None:
        stmt = (
            self._branch_commits(branch_id)
            .where(BranchMembershipRow.position.is_not(None))
            .order_by(BranchMembershipRow.position.desc())
            .limit(1)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def page(self, branch_id: int, page: int, per_page: int) -> Sequence[CommitRow]:
        if page < 1:
            raise ValueError("page must be >= 1")
        stmt = (
            self._branch_commits(branch_id)
            .order_by(BranchMembershipRow.position.desc(), CommitRow.commit_time.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(self._session.execute(stmt).scalars().all())

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
        upper = CommitRow.commit_time <= end if end_inclusive else CommitRow.commit_time < end
        stmt = self._branch_commits(branch_id).where(CommitRow.commit_time >= start, upper)
        if exclude_id is not None:
            stmt = stmt.where(CommitRow.id != exclude_id)
        order = CommitRow.commit_time.desc() if descending else CommitRow.commit_time.asc()
        stmt = stmt.order_by(order).limit(limit)
        return list(self._session.execute(stmt).scalars().all())

    def open_pull_requests(self, branch_id: int) -> Sequence[CommitRow]:
        stmt = (
            self._branch_commits(branch_id)
            .where(CommitRow.pull_request.is_(True), CommitRow.open.is_(True))
            .order_by(CommitRow.commit_time)
        )
        return list(self._session.execute(stmt).scalars().all())


class SqliteTestCaseRepository(TestCaseRepository):
    """SQL implementation of the test case catalog repository."""

    __test__ = False

    def __init__(self, session: Session) -> None:
        self._session = session

    def modules(self) -> list[str]:
        stmt = select(TestCaseRow.module).distinct().order_by(TestCaseRow.module)
        return list(self._session.execute(stmt).scalars().all())

    def ensure_many(self, pairs: Iterable[tuple[str, str]]) -> dict[tuple[str, str], int]:
        wanted = list(dict.fromkeys(pairs))
        if not wanted:
            return {}
        self._session.flush()
        for chunk in _chunks(wanted):
            stmt = (
                _insert(self._session, TestCaseRow)
                .values([{"module": m, "name": n} for m, n in chunk])
                .on_conflict_do_nothing(index_elements=["module", "name"])
            )
            self._session.execute(stmt)

        modules = {m for m, _ in wanted}
        stmt = select(TestCaseRow.module, TestCaseRow.name, TestCaseRow.id).where(
            TestCaseRow.module.in_(modules)
        )
        wanted_set = set(wanted)
        return {
            (module, name): tc_id
            for module, name, tc_id in self._session.execute(stmt)
            if (module, name) in wanted_set
        }

    def insert_commit_cases(self, pairs: Iterable[tuple[int, int]]) -> None:
        rows = [
            {"commit_id": commit_id, "test_case_id": tc_id}
            for commit_id, tc_id in dict.fromkeys(pairs)
        ]
        if not rows:
            return
        self._session.flush()
        for chunk in _chunks(rows):
            stmt = (
                _insert(self._session, TestCaseCommitRow)
                .values(chunk)
                .on_conflict_do_nothing(
                    index_elements=["commit_id", "test_case_id"]
                )
            )
            self._session.execute(stmt)

    def for_commit(self, commit_id: int) -> Sequence[TestCaseCommitRow]:
        stmt = (
            select(TestCaseCommitRow)
            .join(TestCaseRow, TestCaseRow.id == TestCaseCommitRow.test_case_id)
            .where(TestCaseCommitRow.commit_id == commit_id)
            .order_by(TestCaseRow.module, TestCaseRow.name)
        )
        return list(self._session.execute(stmt).scalars().all())

    def get_commit_case(self, commit_id: int, test_case_id: int) -> TestCaseCommitRow | None:
        stmt = select(TestCaseCommitRow).where(
            TestCaseCommitRow.commit_id == commit_id,
            TestCaseCommitRow.test_case_id == test_case_id,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def status_counts(self, commit_id: int) -> dict[Status, int]:
        self._session.flush()
        stmt = (
            select(TestCaseCommitRow.status, func.count())
            .where(TestCaseCommitRow.commit_id == commit_id)
            .group_by(TestCaseCommitRow.status)
        )
        counts = {status: 0 for status in Status}
        for status, n in self._session.execute(stmt):
            counts[status] = n
        return counts

    def divergent_checksum_count(self, commit_id: int) -> int:
        stmt = select(func.count()).select_from(TestCaseCommitRow).where(
            TestCaseCommitRow.commit_id == commit_id,
            TestCaseCommitRow.checksum_count > 1,
        )
        return self._session.execute(stmt).scalar_one()


class SqliteResultRepository(ResultRepository):
    """SQL implementation of computer/submission/instance storage."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def ensure_computer(self, name: str, user_name: str | None = None) -> ComputerRow:
        stmt = select(ComputerRow).where(ComputerRow.name == name)
        computer = self._session.execute(stmt).scalar_one_or_none()
        if computer is None:
            computer = ComputerRow(name=name, user_name=user_name)
            self._session.add(computer)
            self._session.flush()
        return computer

    def add_submission(self, submission: SubmissionRow) -> None:
        self._session.add(submission)
        self._session.flush()

    def add_instance(self, instance: TestInstanceRow) -> None:
        self._session.add(instance)
        self._session.flush()

    def submissions_for(self, commit_id: int) -> Sequence[SubmissionRow]:
        stmt = (
            select(SubmissionRow)
            .where(SubmissionRow.commit_id == commit_id)
            .order_by(SubmissionRow.created_at, SubmissionRow.id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def instances_for(self, test_case_commit_id: int) -> Sequence[TestInstanceRow]:
        stmt = (
            select(TestInstanceRow)
            .where(TestInstanceRow.test_case_commit_id == test_case_commit_id)
            .order_by(TestInstanceRow.created_at, TestInstanceRow.id)
        )
        return list(self._session.execute(stmt).scalars().all())

    def exercised_test_cases(self, submission_ids: Iterable[int]) -> int:
        ids = list(dict.fromkeys(submission_ids))
        if not ids:
            return 0
        stmt = select(func.count(distinct(TestInstanceRow.test_case_id))).where(
            TestInstanceRow.submission_id.in_(ids)
        )
        return self._session.execute(stmt).scalar_one()

    def compiled_flags(
        self, commit_id: int, computer_id: int | None = None
    ) -> list[bool | None]:
        stmt = select(SubmissionRow.compiled).where(SubmissionRow.commit_id == commit_id)
        if computer_id is not None:
            stmt = stmt.where(SubmissionRow.computer_id == computer_id)
        return list(self._session.execute(stmt).scalars().all())
