"""Branch domain model for testhub.

BranchInfo is the SDK-facing model returned when listing branches.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class BranchInfo(BaseModel):
    """SDK-facing branch information model.

    Returned by TestHub.list_branches().
    """

    name: str
    head_sha: Optional[str] = None
    merged: bool = False
    commit_count: Optional[int] = None

    def __str__(self) -> str:
        head = self.head_sha[:7] if self.head_sha else "-"
        state = "merged" if self.merged else "open"
        return f"{self.name} @ {head} ({state})"
