"""Tests for repository implementations.

Covers:
- SqliteCommitRepository upsert, lookup and bulk update
- SqliteBranchRepository ensure / merged / head
- SqliteMembershipRepository insert-if-absent, placement, paging, windows
- SqliteTestCaseRepository catalog and test case commits
- SqliteResultRepository computers, submissions and instances
"""

from datetime import datetime, timedelta

import pytest

from testhub.exceptions import AmbiguousShaError
from testhub.models.status import Status
from testhub.storage.schema import SubmissionRow, TestInstanceRow
from tests.fakes import make_sha

T0 = datetime(2024, 1, 1, 0, 0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(label: str, when: datetime = T0, message: str | None = None) -> dict:
    sha = make_sha(label)
    return {
        "sha": sha,
        "short_sha": sha[:7],
        "author": "Ada",
        "author_email": "ada@example.com",
        "commit_time": when,
        "message": message or f"commit {label}",
        "github_url": None,
    }


def _seed_branch(commit_repo, branch_repo, membership_repo, labels, name="main"):
    """Store commits one hour apart on a branch and place them."""
    records = [_record(label, T0 + timedelta(hours=i)) for i, label in enumerate(labels)]
    ids = commit_repo.upsert_many(records)
    branch = branch_repo.ensure(name)
    membership_repo.insert_if_absent(branch.id, ids.values())
    membership_repo.place(branch.id)
    return branch, [ids[r["sha"]] for r in records]


# ---------------------------------------------------------------------------
# Commit Repository
# ---------------------------------------------------------------------------


class TestSqliteCommitRepository:
    def test_upsert_inserts_and_returns_ids(self, commit_repo):
        ids = commit_repo.upsert_many([_record("a"), _record("b")])
        assert set(ids) == {make_sha("a"), make_sha("b")}
        assert commit_repo.count() == 2
        assert commit_repo.get(make_sha("a")).id == ids[make_sha("a")]

    def test_upsert_is_idempotent(self, commit_repo):
        first = commit_repo.upsert_many([_record("a")])
        second = commit_repo.upsert_many([_record("a")])
        assert first == second
        assert commit_repo.count() == 1

    def test_upsert_updates_metadata_but_not_scalars(self, commit_repo):
        ids = commit_repo.upsert_many([_record("a")])
        commit_id = ids[make_sha("a")]
        commit_repo.bulk_update(
            [{"id": commit_id, "test_case_count": 4, "status": Status.FAILING}]
        )

        commit_repo.upsert_many([_record("a", message="reworded")])
        commit = commit_repo.get_by_id(commit_id)
        assert commit.message == "reworded"
        assert commit.test_case_count == 4
        assert commit.status is Status.FAILING

    def test_get_by_short_sha(self, commit_repo):
        commit_repo.upsert_many([_record("a")])
        assert commit_repo.get_by_short_sha(make_sha("a")[:7]).sha == make_sha("a")
        assert commit_repo.get_by_short_sha("0000000") is None

    def test_find_by_prefix(self, commit_repo):
        commit_repo.upsert_many([_record("a")])
        assert commit_repo.find_by_prefix(make_sha("a")[:10]).sha == make_sha("a")
        assert commit_repo.find_by_prefix("ffffffffff") is None

    def test_find_by_prefix_too_short(self, commit_repo):
        with pytest.raises(ValueError):
            commit_repo.find_by_prefix("ab")

    def test_find_by_prefix_ambiguous(self, commit_repo):
        first = {**_record("x"), "sha": "abcd" + "1" * 36, "short_sha": "abcd111"}
        second = {**_record("y"), "sha": "abcd" + "2" * 36, "short_sha": "abcd222"}
        commit_repo.upsert_many([first, second])
        with pytest.raises(AmbiguousShaError) as exc_info:
            commit_repo.find_by_prefix("abcd")
        assert set(exc_info.value.candidates) == {first["sha"], second["sha"]}
        assert commit_repo.find_by_prefix("abcd1").sha == first["sha"]

    def test_ids_for_shas_ignores_unknown(self, commit_repo):
        commit_repo.upsert_many([_record("a")])
        ids = commit_repo.ids_for_shas([make_sha("a"), make_sha("zzz")])
        assert list(ids) == [make_sha("a")]

    def test_needing_test_cases(self, commit_repo):
        ids = commit_repo.upsert_many([_record("a"), _record("b")])
        commit_repo.bulk_update([{"id": ids[make_sha("a")], "test_case_count": 3}])
        pending = commit_repo.needing_test_cases(ids.values())
        assert [c.sha for c in pending] == [make_sha("b")]

    def test_pull_request_queries(self, commit_repo):
        ids = commit_repo.upsert_many([_record("a"), _record("b")])
        commit_repo.bulk_update(
            [{"id": ids[make_sha("a")], "pull_request": True, "open": True}]
        )
        assert [c.sha for c in commit_repo.open_pull_requests()] == [make_sha("a")]
        assert commit_repo.pull_request_shas([make_sha("a"), make_sha("b")]) == {make_sha("a")}


# ---------------------------------------------------------------------------
# Branch Repository
# ---------------------------------------------------------------------------


class TestSqliteBranchRepository:
    def test_ensure_creates_once(self, branch_repo):
        first = branch_repo.ensure("main")
        second = branch_repo.ensure("main")
        assert first.id == second.id
        assert not first.merged
        assert [b.name for b in branch_repo.list_all()] == ["main"]

    def test_list_excludes_merged(self, branch_repo):
        branch_repo.ensure("main")
        old = branch_repo.ensure("old")
        branch_repo.set_merged(old.id, True)
        assert [b.name for b in branch_repo.list_all(include_merged=False)] == ["main"]
        assert [b.name for b in branch_repo.list_all()] == ["main", "old"]

    def test_set_head_refreshes_relationship(self, commit_repo, branch_repo):
        ids = commit_repo.upsert_many([_record("a"), _record("b")])
        branch = branch_repo.ensure("main")
        branch_repo.set_head(branch.id, ids[make_sha("a")])
        assert branch.head.sha == make_sha("a")
        branch_repo.set_head(branch.id, ids[make_sha("b")])
        assert branch.head.sha == make_sha("b")


# ---------------------------------------------------------------------------
# Membership Repository
# ---------------------------------------------------------------------------


class TestSqliteMembershipRepository:
    def test_insert_if_absent_skips_existing(self, commit_repo, branch_repo, membership_repo):
        branch, ids = _seed_branch(commit_repo, branch_repo, membership_repo, ["a", "b"])
        membership_repo.insert_if_absent(branch.id, ids + ids)
        assert membership_repo.count(branch.id) == 2

    def test_place_orders_by_commit_time(self, commit_repo, branch_repo, membership_repo):
        late = _record("late", T0 + timedelta(hours=5))
        early = _record("early", T0)
        ids = commit_repo.upsert_many([late, early])
        branch = branch_repo.ensure("main")
        membership_repo.insert_if_absent(branch.id, ids.values())
        membership_repo.place(branch.id)

        page = membership_repo.page(branch.id, 1, 10)
        assert [c.sha for c in page] == [late["sha"], early["sha"]]
        assert membership_repo.head_commit(branch.id).sha == late["sha"]

    def test_place_breaks_time_ties_by_message(self, commit_repo, branch_repo, membership_repo):
        b = _record("b", T0, message="b second")
        a = _record("a", T0, message="a first")
        ids = commit_repo.upsert_many([b, a])
        branch = branch_repo.ensure("main")
        membership_repo.insert_if_absent(branch.id, ids.values())
        membership_repo.place(branch.id)
        assert membership_repo.head_commit(branch.id).sha == b["sha"]

    def test_place_after_backfill_renumbers(self, commit_repo, branch_repo, membership_repo):
        branch, _ = _seed_branch(commit_repo, branch_repo, membership_repo, ["a", "b"])
        older = commit_repo.upsert_many([_record("older", T0 - timedelta(days=1))])
        membership_repo.insert_if_absent(branch.id, older.values())
        membership_repo.place(branch.id)
        page = membership_repo.page(branch.id, 1, 10)
        assert page[-1].sha == make_sha("older")
        assert page[0].sha == make_sha("b")

    def test_page_is_one_based(self, commit_repo, branch_repo, membership_repo):
        labels = [f"p{i}" for i in range(5)]
        branch, _ = _seed_branch(commit_repo, branch_repo, membership_repo, labels)
        assert [c.sha for c in membership_repo.page(branch.id, 1, 2)] == [
            make_sha("p4"),
            make_sha("p3"),
        ]
        assert [c.sha for c in membership_repo.page(branch.id, 3, 2)] == [make_sha("p0")]
        assert membership_repo.page(branch.id, 4, 2) == []
        with pytest.raises(ValueError):
            membership_repo.page(branch.id, 0, 2)

    def test_window_bounds(self, commit_repo, branch_repo, membership_repo):
        labels = [f"w{i}" for i in range(6)]
        branch, ids = _seed_branch(commit_repo, branch_repo, membership_repo, labels)
        before = membership_repo.window(
            branch.id,
            start=T0,
            end=T0 + timedelta(hours=3),
            end_inclusive=False,
            descending=True,
            limit=2,
        )
        assert [c.sha for c in before] == [make_sha("w2"), make_sha("w1")]

        after = membership_repo.window(
            branch.id,
            start=T0 + timedelta(hours=3),
            end=T0 + timedelta(hours=5),
            end_inclusive=True,
            descending=False,
            limit=10,
            exclude_id=ids[3],
        )
        assert [c.sha for c in after] == [make_sha("w4"), make_sha("w5")]

    def test_commit_time_bounds(self, commit_repo, branch_repo, membership_repo):
        branch, _ = _seed_branch(commit_repo, branch_repo, membership_repo, ["a", "b", "c"])
        assert membership_repo.earliest_commit_time(branch.id) == T0
        assert membership_repo.latest_commit_time(branch.id) == T0 + timedelta(hours=2)
        empty = branch_repo.ensure("empty")
        assert membership_repo.latest_commit_time(empty.id) is None

    def test_latest_commit_time_skips_pull_requests(self, commit_repo, branch_repo, membership_repo):
        branch, ids = _seed_branch(commit_repo, branch_repo, membership_repo, ["a", "b", "pr"])
        commit_repo.bulk_update([{"id": ids[2], "pull_request": True, "open": True}])
        assert membership_repo.latest_commit_time(branch.id) == T0 + timedelta(hours=1)

    def test_branches_for_commit(self, commit_repo, branch_repo, membership_repo):
        main, ids = _seed_branch(commit_repo, branch_repo, membership_repo, ["a"])
        feature = branch_repo.ensure("feature")
        membership_repo.insert_if_absent(feature.id, ids)
        assert [b.name for b in membership_repo.branches_for_commit(ids[0])] == ["feature", "main"]
        assert membership_repo.branch_ids_for_commits(ids) == {main.id, feature.id}
        assert membership_repo.contains(feature.id, ids[0])


# ---------------------------------------------------------------------------
# Test Case Repository
# ---------------------------------------------------------------------------


class TestSqliteTestCaseRepository:
    def test_ensure_many_is_idempotent(self, case_repo):
        first = case_repo.ensure_many([("star", "a"), ("binary", "b")])
        second = case_repo.ensure_many([("star", "a"), ("star", "c")])
        assert second[("star", "a")] == first[("star", "a")]
        assert set(second) == {("star", "a"), ("star", "c")}
        assert case_repo.modules() == ["binary", "star"]

    def test_commit_cases_and_counts(self, commit_repo, case_repo):
        commit_id = commit_repo.upsert_many([_record("a")])[make_sha("a")]
        tc_ids = case_repo.ensure_many([("star", "a"), ("star", "b")])
        pairs = [(commit_id, tc) for tc in tc_ids.values()]
        case_repo.insert_commit_cases(pairs + pairs)

        rows = case_repo.for_commit(commit_id)
        assert len(rows) == 2
        assert all(r.status is Status.UNTESTED for r in rows)

        rows[0].status = Status.PASSING
        counts = case_repo.status_counts(commit_id)
        assert counts[Status.PASSING] == 1
        assert counts[Status.UNTESTED] == 1
        assert counts[Status.MIXED] == 0

    def test_divergent_checksum_count(self, commit_repo, case_repo):
        commit_id = commit_repo.upsert_many([_record("a")])[make_sha("a")]
        tc_ids = case_repo.ensure_many([("star", "a"), ("star", "b")])
        case_repo.insert_commit_cases((commit_id, tc) for tc in tc_ids.values())
        first, second = case_repo.for_commit(commit_id)
        first.checksum_count = 2
        second.checksum_count = 1
        case_repo.status_counts(commit_id)  # flushes
        assert case_repo.divergent_checksum_count(commit_id) == 1


# ---------------------------------------------------------------------------
# Result Repository
# ---------------------------------------------------------------------------


class TestSqliteResultRepository:
    def test_submissions_and_instances(self, commit_repo, case_repo, result_repo):
        commit_id = commit_repo.upsert_many([_record("a")])[make_sha("a")]
        tc_ids = case_repo.ensure_many([("star", "a"), ("star", "b")])
        case_repo.insert_commit_cases((commit_id, tc) for tc in tc_ids.values())
        computer = result_repo.ensure_computer("hyperion", "ada")
        assert result_repo.ensure_computer("hyperion").id == computer.id

        sub = SubmissionRow(
            commit_id=commit_id, computer_id=computer.id, compiled=True, created_at=T0
        )
        result_repo.add_submission(sub)
        for tc_id in tc_ids.values():
            tcc = case_repo.get_commit_case(commit_id, tc_id)
            result_repo.add_instance(
                TestInstanceRow(
                    test_case_commit_id=tcc.id,
                    test_case_id=tc_id,
                    submission_id=sub.id,
                    computer_id=computer.id,
                    passed=True,
                    created_at=T0,
                )
            )

        assert [s.id for s in result_repo.submissions_for(commit_id)] == [sub.id]
        assert result_repo.exercised_test_cases([sub.id]) == 2
        assert result_repo.exercised_test_cases([]) == 0
        assert result_repo.compiled_flags(commit_id) == [True]
        assert result_repo.compiled_flags(commit_id, computer_id=computer.id + 1) == []
