"""Sync engine: mirrors the remote commit graph into local storage.

Every write is an upsert or insert-if-absent against a unique key, so
repeated or overlapping syncs converge instead of duplicating rows.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from sqlalchemy.exc import IntegrityError

from testhub.exceptions import CommitValidationError
from testhub.models.commit import RemoteCommit, to_utc_naive, utcnow
from testhub.models.status import Status
from testhub.models.sync import BranchSyncResult, SyncReport
from testhub.operations.branches import (
    place_memberships,
    reconcile_branches,
    refresh_branch_names,
    resolve_head,
)
from testhub.operations.test_cases import TestCaseMapper
from testhub.remote.errors import RemoteNotFoundError
from testhub.storage.sqlite import (
    SqliteBranchRepository,
    SqliteCommitRepository,
    SqliteMembershipRepository,
    SqliteTestCaseRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from testhub.models.config import HubConfig
    from testhub.remote.protocols import RemoteSource

logger = logging.getLogger(__name__)


class SyncEngine:
    """Reconciles commits, branches and open pull requests with a remote.

    The remote source is injected and owned by the caller. Every pass runs
    against one session; each per-branch write step commits on its own so
    a failure on one branch never leaves commits without memberships.
    """

    def __init__(
        self,
        session: Session,
        remote: RemoteSource,
        config: HubConfig,
    ) -> None:
        self._session = session
        self._remote = remote
        self._config = config
        self._commits = SqliteCommitRepository(session)
        self._branches = SqliteBranchRepository(session)
        self._memberships = SqliteMembershipRepository(session)
        self._test_cases = SqliteTestCaseRepository(session)
        self._mapper = TestCaseMapper(remote, self._test_cases, config)

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Commit on success, roll back and re-raise on any exception."""
        try:
            yield
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def sync_tree(
        self,
        branch: str | None = None,
        force: bool = False,
        days_before: int | None = None,
    ) -> SyncReport:
        """Bring the local mirror up to date with the remote.

        Args:
            branch: Sync only this branch. None refreshes branch names,
                syncs every known branch, reconciles open pull requests and
                re-derives head and merged state for all branches.
            force: Fetch the full history and upsert every commit instead
                of only the recent window.
            days_before: Initial lookback window in days. Defaults to the
                configured ``days_before``.

        Returns:
            A SyncReport describing what changed.
        """
        days = days_before if days_before is not None else self._config.days_before
        report = SyncReport()

        if branch is not None:
            report.branches.append(
                self._sync_branch(branch, force=force, days_before=days, report=report)
            )
            return report

        with self._transaction():
            reported = refresh_branch_names(self._remote, self._branches)

        for row in self._branches.list_all():
            report.branches.append(
                self._sync_branch(row.name, force=force, days_before=days, report=report)
            )

        self.reconcile_pull_requests(report)

        with self._transaction():
            report.merged_branches.extend(
                reconcile_branches(
                    self._branches,
                    self._commits,
                    self._memberships,
                    default_branch=self._config.default_branch,
                    reported=reported,
                )
            )

        logger.info("Sync complete: %s", report)
        return report

    def push_update(self, timestamps: Iterable[datetime | str]) -> SyncReport:
        """Full sync sized to cover the commits of a push notification.

        The lookback reaches one hour before the earliest pushed commit,
        and is never shorter than the configured ``days_before``.
        """
        parsed = [_parse_timestamp(t) for t in timestamps]
        if not parsed:
            return self.sync_tree()
        earliest = min(parsed) - timedelta(hours=1)
        days = max(days_since(earliest), self._config.days_before)
        logger.info("Push received; syncing with a %d day lookback", days)
        return self.sync_tree(days_before=days)

    # ------------------------------------------------------------------
    # Per-branch sync
    # ------------------------------------------------------------------

    def _sync_branch(
        self,
        name: str,
        *,
        force: bool,
        days_before: int,
        report: SyncReport,
    ) -> BranchSyncResult:
        result = BranchSyncResult(branch=name)
        with self._transaction():
            branch = self._branches.ensure(name)
        branch_id = branch.id

        local_shas = self._memberships.shas_for_branch(branch_id)
        latest = self._memberships.latest_commit_time(branch_id)
        unfiltered = force or not local_shas

        days = days_before
        while True:
            since = None
            if not unfiltered and latest is not None:
                since = latest - timedelta(days=days)
                result.lookbacks.append(days)
            try:
                payloads = self._remote.list_commits(name, since=since)
            except RemoteNotFoundError:
                logger.info("Branch %s not found on remote; marking merged", name)
                with self._transaction():
                    self._branches.set_merged(branch_id, True)
                result.merged = True
                return result

            commits = self._validate(payloads, report)
            if unfiltered:
                break
            if local_shas & {c.sha for c in commits}:
                break
            if days >= self._config.lookback_cap_days:
                logger.warning(
                    "No overlap for %s within %d days; giving up until the next sync",
                    name,
                    days,
                )
                result.halted = True
                return result
            days *= self._config.lookback_factor
            logger.info("No known commits for %s in window; searching back %d days", name, days)

        result.fetched = len(commits)
        remote_head = commits[0].sha if commits else None
        if not force:
            commits = [c for c in commits if c.sha not in local_shas]
        if not commits:
            return result

        try:
            with self._transaction():
                ids = self._commits.upsert_many([c.to_record() for c in commits])
                self._memberships.insert_if_absent(branch_id, ids.values())
                place_memberships(self._memberships, branch_id)
                self._branches.set_head(
                    branch_id,
                    resolve_head(branch_id, remote_head, self._commits, self._memberships),
                )
                result.populated = self._populate_test_cases(ids.values())
            result.added = sum(1 for c in commits if c.sha not in local_shas)
        except IntegrityError as exc:
            logger.warning("Concurrent sync already stored %s: %s", name, exc.orig)
            result.already_synchronized = True
            return result

        logger.info(
            "Synced %s: %d fetched, %d added, %d populated",
            name,
            result.fetched,
            result.added,
            result.populated,
        )
        return result

    def _validate(
        self, payloads: list[dict[str, Any]], report: SyncReport
    ) -> list[RemoteCommit]:
        """Parse remote payloads, rejecting the ones missing required fields."""
        commits: list[RemoteCommit] = []
        for payload in payloads:
            try:
                commits.append(RemoteCommit.from_github(payload))
            except CommitValidationError as exc:
                sha = exc.sha or "<unknown>"
                if sha not in report.rejected:
                    logger.warning("Rejecting remote commit: %s", exc)
                    report.rejected.append(sha)
        return commits

    def _populate_test_cases(self, commit_ids: Iterable[int]) -> int:
        """Create test case commits for commits that have none yet.

        Runs inside the caller's transaction so a remote failure while
        reading test lists also discards the commits being stored.
        Writes the initial scalars directly; an aggregator pass over zero
        test case commits would only reproduce these values.
        """
        pending = self._commits.needing_test_cases(commit_ids)
        if not pending:
            return 0

        updates: list[dict[str, Any]] = []
        pairs: list[tuple[int, int]] = []
        for commit in pending:
            discovered = self._mapper.discover(commit.sha)
            tc_ids = self._mapper.ensure_test_cases(discovered)
            case_ids = list(
                dict.fromkeys(
                    tc_ids[(module, name)]
                    for module, names in discovered.items()
                    for name in names
                )
            )
            updates.append(
                {
                    "id": commit.id,
                    "test_case_count": len(case_ids),
                    "untested_count": len(case_ids),
                    "status": Status.UNTESTED,
                }
            )
            pairs.extend((commit.id, tc_id) for tc_id in case_ids)

        self._commits.bulk_update(updates)
        self._test_cases.insert_commit_cases(pairs)
        return len(pending)

    # ------------------------------------------------------------------
    # Pull requests
    # ------------------------------------------------------------------

    def reconcile_pull_requests(self, report: SyncReport | None = None) -> SyncReport:
        """Close stale pull request commits and mirror new ones.

        A new pull request's merge commit joins every branch one of its
        parents already belongs to, not the branches its parents would
        imply once merged.
        """
        report = report if report is not None else SyncReport()
        pulls: dict[str, dict[str, Any]] = {}
        for pull in self._remote.list_open_pull_requests():
            sha = pull.get("merge_commit_sha")
            if sha:
                pulls[sha] = pull

        created: list[int] = []
        with self._transaction():
            for commit in self._commits.open_pull_requests():
                if commit.sha not in pulls:
                    commit.open = False
                    report.closed_pull_requests.append(commit.sha)

            known = self._commits.pull_request_shas(pulls)
            updates: list[dict[str, Any]] = []
            touched_branches: set[int] = set()
            for sha, pull in pulls.items():
                if sha in known:
                    continue
                try:
                    commit = RemoteCommit.from_github(self._remote.get_commit(sha))
                except RemoteNotFoundError:
                    logger.warning("Pull request merge commit %s not found; skipping", sha[:7])
                    continue
                except CommitValidationError as exc:
                    logger.warning("Rejecting pull request commit: %s", exc)
                    report.rejected.append(sha)
                    continue

                commit_id = self._commits.upsert_many([commit.to_record()])[commit.sha]
                parent_ids = self._commits.ids_for_shas(commit.parent_shas).values()
                for branch_id in self._memberships.branch_ids_for_commits(parent_ids):
                    self._memberships.insert_if_absent(branch_id, [commit_id])
                    touched_branches.add(branch_id)

                updates.append(
                    {
                        "id": commit_id,
                        "pull_request": True,
                        "open": True,
                        "message": pull.get("title") or commit.message,
                        "github_url": pull.get("html_url") or commit.github_url,
                    }
                )
                created.append(commit_id)
                report.opened_pull_requests.append(sha)

            self._commits.bulk_update(updates)
            for branch_id in touched_branches:
                place_memberships(self._memberships, branch_id)
            self._populate_test_cases(created)

        if report.closed_pull_requests or report.opened_pull_requests:
            logger.info(
                "Pull requests: %d opened, %d closed",
                len(report.opened_pull_requests),
                len(report.closed_pull_requests),
            )
        return report


def _parse_timestamp(value: datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return to_utc_naive(value)


def days_since(moment: datetime, *, today: date | None = None) -> int:
    """Whole calendar days between *moment* and *today* (UTC)."""
    today = today or utcnow().date()
    return (today - to_utc_naive(moment).date()).days
