"""Domain models for testhub."""

from testhub.models.branch import BranchInfo
from testhub.models.commit import CommitInfo, RemoteCommit
from testhub.models.computer import ComputerSpec, ComputerSpecInfo
from testhub.models.config import HubConfig
from testhub.models.result import TestOutcome
from testhub.models.status import CompilationStatus, Status
from testhub.models.sync import BranchSyncResult, SyncReport

__all__ = [
    "BranchInfo",
    "BranchSyncResult",
    "CommitInfo",
    "CompilationStatus",
    "ComputerSpec",
    "ComputerSpecInfo",
    "HubConfig",
    "RemoteCommit",
    "Status",
    "SyncReport",
    "TestOutcome",
]
