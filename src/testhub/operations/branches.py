"""Branch bookkeeping for testhub.

Refreshes branch names from the remote, keeps membership positions in
commit-time order, and derives head and merged state for every branch.
Composes storage primitives (branch repo, membership repo) into
higher-level actions.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from testhub.remote.protocols import RemoteSource
    from testhub.storage.repositories import (
        BranchRepository,
        CommitRepository,
        MembershipRepository,
    )
    from testhub.storage.schema import BranchRow, CommitRow

logger = logging.getLogger(__name__)


def refresh_branch_names(
    remote: RemoteSource,
    branch_repo: BranchRepository,
) -> dict[str, str | None]:
    """Make the local branch set match the names the remote reports.

    Unknown names are created unmerged; known branches the remote no
    longer reports are marked merged (deleted after merging).

    Returns:
        Mapping of every reported branch name to its remote head sha.
    """
    reported: dict[str, str | None] = {}
    for payload in remote.list_branches():
        name = payload.get("name")
        if not name:
            continue
        reported[name] = (payload.get("commit") or {}).get("sha")

    for name in reported:
        branch_repo.ensure(name)

    for branch in branch_repo.list_all():
        if branch.name not in reported and not branch.merged:
            logger.info("Branch %s no longer reported by remote; marking merged", branch.name)
            branch_repo.set_merged(branch.id, True)

    return reported


def place_memberships(membership_repo: MembershipRepository, branch_id: int) -> None:
    """Number a branch's memberships 1..n in commit order (head highest)."""
    membership_repo.place(branch_id)


def commits_in_branch(
    membership_repo: MembershipRepository,
    branch_id: int,
    page: int = 1,
    per_page: int = 50,
) -> Sequence[CommitRow]:
    """One 1-based page of branch commits, newest position first."""
    return membership_repo.page(branch_id, page, per_page)


def resolve_head(
    branch_id: int,
    remote_head: str | None,
    commit_repo: CommitRepository,
    membership_repo: MembershipRepository,
) -> int | None:
    """Id of the branch head: the remote-reported head if it is a member,
    else the highest-position member."""
    if remote_head:
        commit = commit_repo.get(remote_head)
        if commit is not None and membership_repo.contains(branch_id, commit.id):
            return commit.id
    head = membership_repo.head_commit(branch_id)
    return head.id if head is not None else None


def reconcile_branches(
    branch_repo: BranchRepository,
    commit_repo: CommitRepository,
    membership_repo: MembershipRepository,
    *,
    default_branch: str,
    reported: dict[str, str | None] | None = None,
) -> list[str]:
    """Re-derive head and merged state for every branch.

    A branch's head is the remote-reported head when it is a stored member,
    else its highest-position member. A branch other than *default_branch*
    is merged when the remote does not report it, or when its head commit
    is also a member of another unmerged branch. Branches found merged into
    another have their memberships copied into the containing branch.

    Args:
        reported: Branch name to remote head sha, as returned by
            refresh_branch_names. None skips the "not reported" rule and
            falls back to stored heads.

    Returns:
        Names of branches that became merged during this call.
    """
    branches = sorted(
        branch_repo.list_all(),
        key=lambda b: (b.name != default_branch, b.name),
    )

    heads: dict[int, int | None] = {}
    for branch in branches:
        remote_head = reported.get(branch.name) if reported else None
        head_id = resolve_head(branch.id, remote_head, commit_repo, membership_repo)
        branch_repo.set_head(branch.id, head_id)
        heads[branch.id] = head_id

    newly_merged: list[str] = []
    for branch in branches:
        if branch.name == default_branch:
            branch_repo.set_merged(branch.id, False)
            continue

        was_merged = branch.merged
        containers = _containing_branches(branch.id, heads[branch.id], membership_repo)
        merged = bool(containers) or (reported is not None and branch.name not in reported)
        branch_repo.set_merged(branch.id, merged)

        if merged and not was_merged:
            newly_merged.append(branch.name)
            logger.info("Branch %s detected as merged", branch.name)
            member_ids = membership_repo.commit_ids_for_branch(branch.id)
            for container in containers:
                membership_repo.insert_if_absent(container.id, member_ids)
                membership_repo.place(container.id)

    return newly_merged


def _containing_branches(
    branch_id: int,
    head_id: int | None,
    membership_repo: MembershipRepository,
) -> list[BranchRow]:
    """Unmerged branches, other than *branch_id*, holding the head commit."""
    if head_id is None:
        return []
    return [
        other
        for other in membership_repo.branches_for_commit(head_id)
        if other.id != branch_id and not other.merged
    ]
