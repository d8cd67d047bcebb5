"""Navigation over a branch's linear history.

Resolves user-facing commit references and builds the bounded "nearby
commits" window used to step backwards and forwards through a branch.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Sequence, TypeVar

from testhub.exceptions import CommitNotFoundError
from testhub.models.commit import SHORT_SHA_LENGTH, to_utc_naive, utcnow

if TYPE_CHECKING:
    from testhub.storage.repositories import CommitRepository, MembershipRepository
    from testhub.storage.schema import BranchRow, CommitRow

T = TypeVar("T")


def center_window(items: Sequence[T], index: int, limit: int) -> list[T]:
    """Take at most *limit* items around ``items[index]``.

    Grows outward one step at a time, earlier side first, and never
    overshoots *limit*. When one side runs out the other keeps growing.
    """
    if limit < 1:
        return []
    result = [items[index]]
    offset = 0
    while len(result) < limit:
        offset += 1
        before, after = index - offset, index + offset
        if before < 0 and after >= len(items):
            break
        if before >= 0:
            result.insert(0, items[before])
            if len(result) >= limit:
                break
        if after < len(items):
            result.append(items[after])
    return result


def branch_head(branch: BranchRow, membership_repo: MembershipRepository) -> CommitRow | None:
    """Stored head of *branch*, falling back to its highest-position member."""
    if branch.head is not None:
        return branch.head
    return membership_repo.head_commit(branch.id)


def nearby_commits(
    target: CommitRow,
    branch: BranchRow,
    membership_repo: MembershipRepository,
    *,
    limit: int = 7,
    now: datetime | None = None,
) -> list[CommitRow]:
    """Up to *limit* branch commits around *target*, oldest first.

    The branch head, when it falls inside the window, is always last
    regardless of its timestamp. *target* is always included.
    """
    now = to_utc_naive(now) if now is not None else utcnow()
    earliest = membership_repo.earliest_commit_time(branch.id)
    if earliest is None or earliest > target.commit_time:
        earliest = target.commit_time

    before = list(
        reversed(
            membership_repo.window(
                branch.id,
                start=earliest,
                end=target.commit_time,
                end_inclusive=False,
                descending=True,
                limit=limit,
            )
        )
    )
    after = membership_repo.window(
        branch.id,
        start=target.commit_time,
        end=now,
        end_inclusive=True,
        descending=False,
        limit=limit,
        exclude_id=target.id,
    )

    candidates = sorted([*before, target, *after], key=lambda c: (c.commit_time, c.message))

    head = branch_head(branch, membership_repo)
    if head is not None:
        for i, commit in enumerate(candidates):
            if commit.id == head.id:
                candidates.append(candidates.pop(i))
                break

    if len(candidates) <= limit:
        return candidates

    index = next(i for i, c in enumerate(candidates) if c.id == target.id)
    return center_window(candidates, index, limit)


def adjacent_commits(
    target: CommitRow, window: Sequence[CommitRow]
) -> tuple[CommitRow | None, CommitRow | None]:
    """(previous, next) neighbours of *target* in a nearby-commits window."""
    ids = [c.id for c in window]
    if target.id not in ids:
        return None, None
    loc = ids.index(target.id)
    previous = window[loc - 1] if loc > 0 else None
    following = window[loc + 1] if loc < len(window) - 1 else None
    return previous, following


def resolve_sha(
    ref: str,
    branch: BranchRow,
    commit_repo: CommitRepository,
    membership_repo: MembershipRepository,
) -> CommitRow:
    """Resolve a user-facing reference to a stored commit.

    ``head`` is the branch head; ``auto`` is the oldest open pull request
    in the branch, or the head when there is none. A 7-character ref is a
    short sha, a 40-character ref a full sha, anything else a sha prefix.

    Raises:
        CommitNotFoundError: Nothing matches *ref*.
        AmbiguousShaError: A prefix matches several commits.
    """
    key = ref.strip().lower()
    commit: CommitRow | None
    if key == "auto":
        pulls = membership_repo.open_pull_requests(branch.id)
        commit = pulls[0] if pulls else branch_head(branch, membership_repo)
    elif key == "head":
        commit = branch_head(branch, membership_repo)
    elif len(key) == SHORT_SHA_LENGTH:
        commit = commit_repo.get_by_short_sha(key)
    elif len(key) == 40:
        commit = commit_repo.get(key)
    elif len(key) >= 4:
        commit = commit_repo.find_by_prefix(key)
    else:
        commit = None

    if commit is None:
        raise CommitNotFoundError(ref)
    return commit
