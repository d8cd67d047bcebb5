"""Result models returned by sync passes."""

from __future__ import annotations

from pydantic import BaseModel


class BranchSyncResult(BaseModel):
    """Outcome of syncing a single branch.

    Attributes:
        branch: Branch name.
        lookbacks: Day windows tried, in order (empty for unfiltered fetches).
        fetched: Valid commits returned by the final remote call.
        added: Commits newly attached to the branch.
        populated: New commits whose test case commits were created.
        merged: The remote no longer knows the branch; it was marked merged.
        halted: Lookback hit its cap without finding overlap.
        already_synchronized: A concurrent sync won a uniqueness race.
    """

    branch: str
    lookbacks: list[int] = []
    fetched: int = 0
    added: int = 0
    populated: int = 0
    merged: bool = False
    halted: bool = False
    already_synchronized: bool = False


class SyncReport(BaseModel):
    """Aggregate outcome of a sync_tree call."""

    branches: list[BranchSyncResult] = []
    rejected: list[str] = []
    opened_pull_requests: list[str] = []
    closed_pull_requests: list[str] = []
    merged_branches: list[str] = []

    def for_branch(self, name: str) -> BranchSyncResult | None:
        for result in self.branches:
            if result.branch == name:
                return result
        return None

    @property
    def added(self) -> int:
        return sum(r.added for r in self.branches)

    def __str__(self) -> str:
        return (
            f"{len(self.branches)} branches | {self.added} commits added | "
            f"{len(self.opened_pull_requests)} PRs opened, "
            f"{len(self.closed_pull_requests)} closed | "
            f"{len(self.rejected)} rejected"
        )
