"""Status aggregation: roll test instances up into test case commits, and
test case commits plus submissions up into commit-level scalars.

The precedence rules are pure functions so they can be exercised without a
database; StatusAggregator applies them to stored rows.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING, Iterable

from testhub.models.computer import ComputerSpec, ComputerSpecInfo
from testhub.models.status import CompilationStatus, Status

if TYPE_CHECKING:
    from testhub.storage.repositories import ResultRepository, TestCaseRepository
    from testhub.storage.schema import CommitRow, SubmissionRow, TestCaseCommitRow


def commit_status_for(
    *,
    test_case_count: int,
    passed_count: int,
    failed_count: int,
    mixed_count: int,
    checksum_count: int,
) -> Status:
    """Commit rollup precedence: mixed > failing > checksum > passing > untested."""
    if mixed_count > 0:
        return Status.MIXED
    if failed_count > 0:
        return Status.FAILING
    if checksum_count > 0:
        return Status.CHECKSUM_MISMATCH
    if passed_count == test_case_count and test_case_count > 0:
        return Status.PASSING
    return Status.UNTESTED


def instance_rollup_status(
    *, passed_count: int, failed_count: int, checksum_count: int
) -> Status:
    """Status of one test case at one commit from its instance outcomes.

    ``checksum_count`` is the number of distinct non-empty checksums
    reported; more than one means the computers disagree.
    """
    if passed_count > 0 and failed_count > 0:
        return Status.MIXED
    if failed_count > 0:
        return Status.FAILING
    if checksum_count > 1:
        return Status.CHECKSUM_MISMATCH
    if passed_count > 0:
        return Status.PASSING
    return Status.UNTESTED


def compilation_status_for(flags: Iterable[bool | None]) -> CompilationStatus:
    """Fold ``compiled`` flags; None means the submission did not say."""
    distinct = {flag for flag in flags if flag is not None}
    if not distinct:
        return CompilationStatus.UNKNOWN
    if len(distinct) > 1:
        return CompilationStatus.MIXED
    return CompilationStatus.SUCCESS if distinct.pop() else CompilationStatus.FAILURE


def _spec_key(sub: SubmissionRow) -> tuple:
    return (
        sub.computer_id,
        sub.platform_version,
        sub.sdk_version,
        sub.math_backend,
        sub.compiler,
        sub.compiler_version,
    )


class StatusAggregator:
    """Recomputes derived scalars from stored test case commits and submissions.

    Must be invoked after any mutation to a commit's test case commits or
    submissions. Nothing is committed here; the caller owns the transaction.
    """

    def __init__(
        self,
        test_case_repo: TestCaseRepository,
        result_repo: ResultRepository,
    ) -> None:
        self._test_case_repo = test_case_repo
        self._result_repo = result_repo

    def recompute_test_case_commit(self, tcc: TestCaseCommitRow) -> Status:
        """Refresh counts and status of one test case commit from its instances."""
        instances = self._result_repo.instances_for(tcc.id)
        passed = sum(1 for ti in instances if ti.passed)
        failed = len(instances) - passed
        checksums = {ti.checksum for ti in instances if ti.checksum}

        tcc.passed_count = passed
        tcc.failed_count = failed
        tcc.checksum_count = len(checksums)
        tcc.computer_count = len({ti.computer_id for ti in instances})
        tcc.last_tested = max((ti.created_at for ti in instances), default=None)
        tcc.status = instance_rollup_status(
            passed_count=passed, failed_count=failed, checksum_count=len(checksums)
        )
        return tcc.status

    def computer_info(self, commit: CommitRow) -> list[ComputerSpecInfo]:
        """Per computer+spec completion for a commit.

        Submissions are grouped by (computer, platform version, SDK version,
        math backend, compiler, compiler version). A group's numerator is the
        number of distinct test cases its submissions ran.
        """
        submissions = self._result_repo.submissions_for(commit.id)
        groups: dict[tuple, list[SubmissionRow]] = defaultdict(list)
        for sub in submissions:
            groups[_spec_key(sub)].append(sub)

        denominator = len(self._test_case_repo.for_commit(commit.id))
        specs: list[ComputerSpecInfo] = []
        for key, subs in groups.items():
            first = subs[0]
            specs.append(
                ComputerSpecInfo(
                    computer=first.computer.name,
                    spec=ComputerSpec(
                        platform_version=first.platform_version,
                        sdk_version=first.sdk_version,
                        math_backend=first.math_backend,
                        compiler=first.compiler,
                        compiler_version=first.compiler_version,
                    ),
                    numerator=self._result_repo.exercised_test_cases(s.id for s in subs),
                    denominator=denominator,
                    compilation=compilation_status_for(
                        self._result_repo.compiled_flags(commit.id, computer_id=key[0])
                    ),
                )
            )
        specs.sort(key=lambda s: (s.computer.lower(), str(s.spec)))
        return specs

    def recompute_scalars(self, commit: CommitRow) -> Status:
        """Refresh every rollup column of *commit* from its child rows."""
        counts = self._test_case_repo.status_counts(commit.id)
        commit.test_case_count = sum(counts.values())
        commit.passed_count = counts[Status.PASSING] + counts[Status.CHECKSUM_MISMATCH]
        commit.failed_count = counts[Status.FAILING]
        commit.mixed_count = counts[Status.MIXED]
        commit.untested_count = counts[Status.UNTESTED]
        commit.checksum_count = self._test_case_repo.divergent_checksum_count(commit.id)

        specs = self.computer_info(commit)
        commit.computer_count = len(specs)
        commit.complete_computer_count = sum(1 for spec in specs if spec.complete)

        commit.status = commit_status_for(
            test_case_count=commit.test_case_count,
            passed_count=commit.passed_count,
            failed_count=commit.failed_count,
            mixed_count=commit.mixed_count,
            checksum_count=commit.checksum_count,
        )
        return commit.status

    def refresh(self, commit: CommitRow) -> Status:
        """Recompute every test case commit of *commit*, then the commit itself."""
        for tcc in self._test_case_repo.for_commit(commit.id):
            self.recompute_test_case_commit(tcc)
        return self.recompute_scalars(commit)

    def compilation_status(self, commit: CommitRow) -> CompilationStatus:
        return compilation_status_for(self._result_repo.compiled_flags(commit.id))

    def compile_counts(self, commit: CommitRow) -> tuple[int, int]:
        """(successful, failed) compilation reports for a commit."""
        flags = self._result_repo.compiled_flags(commit.id)
        return sum(1 for f in flags if f is True), sum(1 for f in flags if f is False)
