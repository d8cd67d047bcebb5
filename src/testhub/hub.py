"""TestHub facade -- the public entry point for testhub.

Owns the database engine, session, repositories and the injected remote
source. Query methods return pydantic models; ORM rows never leave this
module.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from testhub.exceptions import BranchNotFoundError, RemoteSourceMissingError
from testhub.models.branch import BranchInfo
from testhub.models.commit import CommitInfo, utcnow
from testhub.models.computer import ComputerSpec, ComputerSpecInfo
from testhub.models.config import HubConfig
from testhub.models.result import TestOutcome
from testhub.models.status import CompilationStatus, Status
from testhub.models.sync import SyncReport
from testhub.operations.aggregate import StatusAggregator
from testhub.operations.branches import commits_in_branch
from testhub.operations.navigation import (
    adjacent_commits,
    branch_head,
    nearby_commits,
    resolve_sha,
)
from testhub.operations.sync import SyncEngine
from testhub.storage.engine import create_hub_engine, create_session_factory, init_db
from testhub.storage.schema import SubmissionRow, TestInstanceRow
from testhub.storage.sqlite import (
    SqliteBranchRepository,
    SqliteCommitRepository,
    SqliteMembershipRepository,
    SqliteResultRepository,
    SqliteTestCaseRepository,
)

if TYPE_CHECKING:
    from testhub.remote.protocols import RemoteSource
    from testhub.storage.schema import BranchRow, CommitRow

logger = logging.getLogger(__name__)


class TestHub:
    """Local mirror of one repository's commit graph and test status.

    Create via ``TestHub.open()``, not directly.

    Example::

        with TestHub.open("hub.db", remote=client) as hub:
            hub.sync()
            for commit in hub.log("main"):
                print(commit.short_sha, commit.status)
    """

    __test__ = False

    def __init__(
        self,
        *,
        engine: Engine | None,
        session: Session,
        config: HubConfig,
        remote: RemoteSource | None = None,
        owns_remote: bool = False,
    ) -> None:
        self._engine = engine
        self._session = session
        self._config = config
        self._remote = remote
        self._owns_remote = owns_remote
        self._closed = False

        self._commits = SqliteCommitRepository(session)
        self._branches = SqliteBranchRepository(session)
        self._memberships = SqliteMembershipRepository(session)
        self._test_cases = SqliteTestCaseRepository(session)
        self._results = SqliteResultRepository(session)
        self._aggregator = StatusAggregator(self._test_cases, self._results)
        self._sync_engine: SyncEngine | None = None

    @classmethod
    def open(
        cls,
        path: str = ":memory:",
        *,
        config: HubConfig | None = None,
        remote: RemoteSource | None = None,
        url: str | None = None,
    ) -> TestHub:
        """Open (or create) a testhub database.

        Args:
            path: SQLite path. ``":memory:"`` for in-memory (default).
            config: Hub configuration. Defaults created if *None*.
            remote: Remote source to sync from. When omitted and the config
                carries a GitHub token, a GitHubClient is built and closed
                together with the hub.
            url: Full SQLAlchemy URL; overrides *path*.

        Returns:
            A ready-to-use ``TestHub`` instance.
        """
        if config is None:
            config = HubConfig(db_path=path, db_url=url)

        engine = create_hub_engine(path, url=url or config.db_url)
        init_db(engine)
        session = create_session_factory(engine)()

        owns_remote = False
        if remote is None and config.github_token:
            from testhub.remote.client import GitHubClient

            remote = GitHubClient(
                config.repo_path,
                token=config.github_token,
                base_url=config.github_api_url,
            )
            owns_remote = True

        return cls(
            engine=engine,
            session=session,
            config=config,
            remote=remote,
            owns_remote=owns_remote,
        )

    @property
    def config(self) -> HubConfig:
        return self._config

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def _engine_for_sync(self) -> SyncEngine:
        if self._remote is None:
            raise RemoteSourceMissingError()
        if self._sync_engine is None:
            self._sync_engine = SyncEngine(self._session, self._remote, self._config)
        return self._sync_engine

    def sync(
        self,
        branch: str | None = None,
        *,
        force: bool = False,
        days_before: int | None = None,
    ) -> SyncReport:
        """Mirror the remote into the local store. See SyncEngine.sync_tree."""
        return self._engine_for_sync().sync_tree(
            branch=branch, force=force, days_before=days_before
        )

    def push_update(self, timestamps: Iterable[datetime | str]) -> SyncReport:
        """Sync in response to a push carrying these commit timestamps."""
        return self._engine_for_sync().push_update(timestamps)

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def _branch(self, name: str | None) -> BranchRow:
        name = name or self._config.default_branch
        branch = self._branches.get(name)
        if branch is None:
            raise BranchNotFoundError(name)
        return branch

    def _resolve(self, ref: str, branch: str | None) -> CommitRow:
        return resolve_sha(ref, self._branch(branch), self._commits, self._memberships)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_commit(self, ref: str, branch: str | None = None) -> CommitInfo:
        """Look up a commit by sha, short sha, prefix, ``head`` or ``auto``.

        Raises:
            CommitNotFoundError: Nothing matches *ref*.
            BranchNotFoundError: *branch* is unknown.
        """
        return CommitInfo.model_validate(self._resolve(ref, branch))

    def list_branches(self, *, include_merged: bool = True) -> list[BranchInfo]:
        infos: list[BranchInfo] = []
        for branch in self._branches.list_all(include_merged=include_merged):
            head = branch_head(branch, self._memberships)
            infos.append(
                BranchInfo(
                    name=branch.name,
                    head_sha=head.sha if head is not None else None,
                    merged=branch.merged,
                    commit_count=self._memberships.count(branch.id),
                )
            )
        return infos

    def branches_containing(self, ref: str, branch: str | None = None) -> list[str]:
        """Names of every branch the referenced commit belongs to."""
        commit = self._resolve(ref, branch)
        return [b.name for b in self._memberships.branches_for_commit(commit.id)]

    def log(
        self,
        branch: str | None = None,
        page: int = 1,
        per_page: int | None = None,
    ) -> list[CommitInfo]:
        """One page of a branch's commits, newest first."""
        rows = commits_in_branch(
            self._memberships,
            self._branch(branch).id,
            page=page,
            per_page=per_page or self._config.per_page,
        )
        return [CommitInfo.model_validate(row) for row in rows]

    def nearby(
        self,
        ref: str,
        branch: str | None = None,
        limit: int | None = None,
        *,
        now: datetime | None = None,
    ) -> list[CommitInfo]:
        """Commits around *ref* in *branch*, oldest first, head last."""
        branch_row = self._branch(branch)
        target = resolve_sha(ref, branch_row, self._commits, self._memberships)
        rows = nearby_commits(
            target,
            branch_row,
            self._memberships,
            limit=limit or self._config.nearby_limit,
            now=now,
        )
        return [CommitInfo.model_validate(row) for row in rows]

    def adjacent(
        self,
        ref: str,
        branch: str | None = None,
        limit: int | None = None,
    ) -> tuple[CommitInfo | None, CommitInfo | None]:
        """(previous, next) commits of *ref* for stepping through a branch."""
        branch_row = self._branch(branch)
        target = resolve_sha(ref, branch_row, self._commits, self._memberships)
        window = nearby_commits(
            target, branch_row, self._memberships, limit=limit or self._config.nearby_limit
        )
        previous, following = adjacent_commits(target, window)
        return (
            CommitInfo.model_validate(previous) if previous is not None else None,
            CommitInfo.model_validate(following) if following is not None else None,
        )

    # ------------------------------------------------------------------
    # Test status
    # ------------------------------------------------------------------

    def recompute(self, ref: str, branch: str | None = None) -> Status:
        """Recompute every rollup for a commit from its stored results."""
        commit = self._resolve(ref, branch)
        status = self._aggregator.refresh(commit)
        self._session.commit()
        return status

    def computer_info(self, ref: str, branch: str | None = None) -> list[ComputerSpecInfo]:
        return self._aggregator.computer_info(self._resolve(ref, branch))

    def compilation_status(self, ref: str, branch: str | None = None) -> CompilationStatus:
        return self._aggregator.compilation_status(self._resolve(ref, branch))

    def compile_counts(self, ref: str, branch: str | None = None) -> tuple[int, int]:
        """(successful, failed) compile reports for a commit."""
        return self._aggregator.compile_counts(self._resolve(ref, branch))

    def record_submission(
        self,
        ref: str,
        computer: str,
        outcomes: Iterable[TestOutcome] = (),
        *,
        compiled: bool | None = None,
        spec: ComputerSpec | None = None,
        user_name: str | None = None,
        branch: str | None = None,
        created_at: datetime | None = None,
    ) -> Status:
        """Store one computer's submission for a commit and refresh rollups.

        Test cases named by *outcomes* are cataloged and attached to the
        commit if they are not already.

        Returns:
            The commit's status after aggregation.
        """
        commit = self._resolve(ref, branch)
        outcomes = list(outcomes)
        created_at = created_at or utcnow()
        spec = spec or ComputerSpec()

        try:
            computer_row = self._results.ensure_computer(computer, user_name)
            submission = SubmissionRow(
                commit_id=commit.id,
                computer_id=computer_row.id,
                compiled=compiled,
                created_at=created_at,
                **spec.model_dump(),
            )
            self._results.add_submission(submission)

            case_ids = self._test_cases.ensure_many((o.module, o.name) for o in outcomes)
            self._test_cases.insert_commit_cases((commit.id, tc_id) for tc_id in case_ids.values())
            for outcome in outcomes:
                tc_id = case_ids[(outcome.module, outcome.name)]
                tcc = self._test_cases.get_commit_case(commit.id, tc_id)
                assert tcc is not None
                self._results.add_instance(
                    TestInstanceRow(
                        test_case_commit_id=tcc.id,
                        test_case_id=tc_id,
                        submission_id=submission.id,
                        computer_id=computer_row.id,
                        passed=outcome.passed,
                        checksum=outcome.checksum,
                        failure_type=outcome.failure_type,
                        created_at=created_at,
                    )
                )

            status = self._aggregator.refresh(commit)
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        logger.debug("Recorded submission from %s for %s: %s", computer, commit.short_sha, status)
        return status

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the session, dispose the engine and any owned remote."""
        if self._closed:
            return
        self._closed = True
        self._session.close()
        if self._owns_remote and self._remote is not None:
            self._remote.close()
        if self._engine is not None:
            self._engine.dispose()

    def __enter__(self) -> TestHub:
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()

    def __repr__(self) -> str:
        if self._closed:
            return f"TestHub(repo='{self._config.repo_path}', closed=True)"
        return f"TestHub(repo='{self._config.repo_path}', commits={self._commits.count()})"
