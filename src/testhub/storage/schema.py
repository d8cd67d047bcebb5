"""SQLAlchemy ORM schema for testhub.

Defines all database tables: commits, branches, branch_memberships,
test_cases, test_case_commits, test_instances, computers, submissions,
_hub_meta.

Status columns store integer codes through StatusCode; the enum itself
lives in the domain models and is not redefined here.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from testhub.models.status import Status


class StatusCode(TypeDecorator):
    """Persist a Status as its integer code."""

    impl = Integer
    cache_ok = True

    def process_bind_param(self, value, dialect):  # type: ignore[no-untyped-def]
        if value is None:
            return None
        if isinstance(value, Status):
            return value.code
        return Status.from_code(int(value)).code

    def process_result_value(self, value, dialect):  # type: ignore[no-untyped-def]
        if value is None:
            return None
        return Status.from_code(value)


class Base(DeclarativeBase):
    """Base class for all testhub ORM models."""

    pass


class CommitRow(Base):
    """One mirrored commit plus its derived rollup scalars.

    The rollup columns are written only by the status aggregator and the
    sync engine's first-population pass.
    """

    __tablename__ = "commits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sha: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    short_sha: Mapped[str] = mapped_column(String(7), nullable=False, unique=True)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    author_email: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    commit_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    github_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    pull_request: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    open: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    test_case_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    passed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    mixed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    checksum_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    untested_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    computer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    complete_computer_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )
    status: Mapped[Status] = mapped_column(
        StatusCode, nullable=False, default=Status.UNTESTED, server_default="-1"
    )

    __table_args__ = (
        Index("ix_commits_commit_time", "commit_time"),
        Index("ix_commits_pull_request_open", "pull_request", "open"),
    )


class BranchRow(Base):
    """Named branch with a pointer at its current head commit."""

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    head_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("commits.id", ondelete="SET NULL"),
        nullable=True,
    )
    merged: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    head: Mapped[Optional["CommitRow"]] = relationship("CommitRow", lazy="select")


class BranchMembershipRow(Base):
    """Association between a branch and a commit reachable from its head.

    ``position`` is the commit's place in the branch's linear order
    (head highest). It is NULL until the membership has been placed.
    """

    __tablename__ = "branch_memberships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    branch_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False,
    )
    commit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("commits.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    commit: Mapped["CommitRow"] = relationship("CommitRow", lazy="select")

    __table_args__ = (
        UniqueConstraint("branch_id", "commit_id", name="uq_branch_memberships_branch_commit"),
        Index("ix_branch_memberships_branch_position", "branch_id", "position"),
        Index("ix_branch_memberships_commit", "commit_id"),
    )


class TestCaseRow(Base):
    """Catalog entry for one test case of one module."""

    __test__ = False
    __tablename__ = "test_cases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("module", "name", name="uq_test_cases_module_name"),
    )


class TestCaseCommitRow(Base):
    """Outcome of one test case at one commit, rolled up from its instances."""

    __test__ = False
    __tablename__ = "test_case_commits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    commit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("commits.id", ondelete="CASCADE"),
        nullable=False,
    )
    test_case_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[Status] = mapped_column(
        StatusCode, nullable=False, default=Status.UNTESTED, server_default="-1"
    )
    passed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    checksum_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    computer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_tested: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    test_case: Mapped["TestCaseRow"] = relationship("TestCaseRow", lazy="select")

    __table_args__ = (
        UniqueConstraint("commit_id", "test_case_id", name="uq_test_case_commits_commit_case"),
        Index("ix_test_case_commits_commit_status", "commit_id", "status"),
    )


class ComputerRow(Base):
    """A machine that submits build and test results."""

    __tablename__ = "computers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class SubmissionRow(Base):
    """One build report from a computer for a commit."""

    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    commit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("commits.id", ondelete="CASCADE"),
        nullable=False,
    )
    computer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("computers.id", ondelete="CASCADE"),
        nullable=False,
    )
    compiled: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    platform_version: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sdk_version: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    math_backend: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    compiler: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    compiler_version: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    computer: Mapped["ComputerRow"] = relationship("ComputerRow", lazy="select")

    __table_args__ = (
        Index("ix_submissions_commit", "commit_id"),
    )


class TestInstanceRow(Base):
    """One run of one test case by one submission."""

    __test__ = False
    __tablename__ = "test_instances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    test_case_commit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("test_case_commits.id", ondelete="CASCADE"),
        nullable=False,
    )
    test_case_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False,
    )
    submission_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("submissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    computer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("computers.id", ondelete="CASCADE"),
        nullable=False,
    )
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    checksum: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    failure_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_test_instances_tcc", "test_case_commit_id"),
        Index("ix_test_instances_submission", "submission_id"),
    )


class HubMetaRow(Base):
    """Key-value metadata for the database (e.g. schema_version)."""

    __tablename__ = "_hub_meta"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
