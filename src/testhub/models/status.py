"""Status enumerations for commits, test case commits, and compilation.

Statuses are persisted as small integers. The tables below are the only
place where the integer codes are defined; everything else goes through
:meth:`Status.code` and :meth:`Status.from_code`.
"""

from __future__ import annotations

import enum


class Status(str, enum.Enum):
    """Rollup status of a commit or of one test case at one commit."""

    UNTESTED = "untested"
    PASSING = "passing"
    FAILING = "failing"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    MIXED = "mixed"

    def __repr__(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value

    @property
    def code(self) -> int:
        """Integer code stored in the ``status`` columns."""
        return _STATUS_TO_CODE[self]

    @classmethod
    def from_code(cls, code: int) -> Status:
        """Map a stored integer code back to a Status.

        Raises ValueError for codes outside the table.
        """
        try:
            return _CODE_TO_STATUS[code]
        except KeyError:
            raise ValueError(f"Unknown status code: {code!r}") from None


_STATUS_TO_CODE: dict[Status, int] = {
    Status.UNTESTED: -1,
    Status.PASSING: 0,
    Status.FAILING: 1,
    Status.CHECKSUM_MISMATCH: 2,
    Status.MIXED: 3,
}
_CODE_TO_STATUS: dict[int, Status] = {v: k for k, v in _STATUS_TO_CODE.items()}


class CompilationStatus(str, enum.Enum):
    """Build outcome across all submissions for a commit.

    Computed on read, never persisted.
    """

    UNKNOWN = "unknown"
    SUCCESS = "success"
    FAILURE = "failure"
    MIXED = "mixed"

    def __repr__(self) -> str:
        return self.value

    def __str__(self) -> str:
        return self.value

    @property
    def code(self) -> int:
        return _COMPILATION_TO_CODE[self]

    @classmethod
    def from_code(cls, code: int) -> CompilationStatus:
        try:
            return _CODE_TO_COMPILATION[code]
        except KeyError:
            raise ValueError(f"Unknown compilation status code: {code!r}") from None


_COMPILATION_TO_CODE: dict[CompilationStatus, int] = {
    CompilationStatus.UNKNOWN: -1,
    CompilationStatus.SUCCESS: 0,
    CompilationStatus.FAILURE: 1,
    CompilationStatus.MIXED: 2,
}
_CODE_TO_COMPILATION: dict[int, CompilationStatus] = {
    v: k for k, v in _COMPILATION_TO_CODE.items()
}
