"""Commit domain models for testhub.

RemoteCommit is the validated form of one commit payload from the remote
source. CommitInfo is the SDK-facing model returned when querying the
local store.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from testhub.exceptions import CommitValidationError
from testhub.models.status import Status

SHORT_SHA_LENGTH = 7


def to_utc_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC. Naive input is assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    """Current time as naive UTC, matching how commit times are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RemoteCommit(BaseModel):
    """A commit as reported by the remote source, validated for storage."""

    sha: str = Field(min_length=SHORT_SHA_LENGTH)
    author: str = Field(min_length=1)
    author_email: str = Field(min_length=1)
    message: str = Field(min_length=1)
    commit_time: datetime
    github_url: Optional[str] = None
    parent_shas: list[str] = []

    @field_validator("commit_time")
    @classmethod
    def _normalize_time(cls, v: datetime) -> datetime:
        return to_utc_naive(v)

    @property
    def short_sha(self) -> str:
        return self.sha[:SHORT_SHA_LENGTH]

    @classmethod
    def from_github(cls, payload: dict[str, Any]) -> RemoteCommit:
        """Build from a GitHub commit payload.

        Raises:
            CommitValidationError: If sha, author, email, message or date
                is missing or blank.
        """
        sha = payload.get("sha")
        commit = payload.get("commit") or {}
        author = commit.get("author") or {}
        try:
            return cls(
                sha=sha,
                author=author.get("name"),
                author_email=author.get("email"),
                message=commit.get("message"),
                commit_time=author.get("date"),
                github_url=payload.get("html_url"),
                parent_shas=[p["sha"] for p in payload.get("parents") or [] if p.get("sha")],
            )
        except ValidationError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            raise CommitValidationError(
                sha if isinstance(sha, str) else None,
                f"missing or invalid {', '.join(fields)}",
            ) from exc

    def to_record(self) -> dict[str, Any]:
        """Column values for an upsert into the commits table."""
        return {
            "sha": self.sha,
            "short_sha": self.short_sha,
            "author": self.author,
            "author_email": self.author_email,
            "commit_time": self.commit_time,
            "message": self.message,
            "github_url": self.github_url,
        }


class CommitInfo(BaseModel):
    """SDK-facing commit information model.

    Not an ORM model -- used for data transfer only.
    """

    sha: str
    short_sha: str
    author: str
    author_email: str
    message: str
    commit_time: datetime
    github_url: Optional[str] = None
    pull_request: bool = False
    open: bool = False
    test_case_count: int = 0
    passed_count: int = 0
    failed_count: int = 0
    mixed_count: int = 0
    checksum_count: int = 0
    untested_count: int = 0
    computer_count: int = 0
    complete_computer_count: int = 0
    status: Status = Status.UNTESTED

    model_config = {"from_attributes": True}

    def __str__(self) -> str:
        return self.short_sha

    def __repr__(self) -> str:
        return f"CommitInfo({self.short_sha} {self.status.value} {self.message_first_line()!r})"

    def message_first_line(self, max_len: int = 70) -> str:
        """First line of the message, cut at a word boundary with an ellipsis
        when it is not shorter than ``max_len``."""
        first_line = self.message.split("\n")[0]
        if len(first_line) < max_len:
            return first_line

        res = ""
        for word in re.split(r"\s+", first_line):
            if len(f"{res} {word}...".lstrip()) > max_len:
                return f"{res}..."
            res = f"{res} {word}" if res else word
        return res

    def message_rest(self, max_len: int = 70) -> str | None:
        """Remainder of the message not shown by :meth:`message_first_line`."""
        first = self.message_first_line(max_len)
        if first == self.message:
            return None

        start = len(first.removesuffix("..."))
        rest = self.message[start:].strip()
        if not rest:
            return None
        return "..." + rest
