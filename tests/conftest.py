"""Shared test fixtures for testhub.

Provides in-memory SQLite engine, session, repository fixtures, a fake
remote source, and helpers that build a hub with synced history.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import Session, sessionmaker

from testhub.models.config import HubConfig
from testhub.storage.engine import create_hub_engine, init_db
from testhub.storage.sqlite import (
    SqliteBranchRepository,
    SqliteCommitRepository,
    SqliteMembershipRepository,
    SqliteResultRepository,
    SqliteTestCaseRepository,
)
from tests.fakes import FakeRemoteSource, make_sha

BASE_TIME = datetime(2024, 3, 1, 12, 0, 0)
STAR_CASES = ["1M_pre_ms_to_wd", "15M_dynamo", "wd_cool"]


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    eng = create_hub_engine(":memory:")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    """Session with automatic rollback after each test."""
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
    sess = SessionLocal()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def commit_repo(session: Session) -> SqliteCommitRepository:
    return SqliteCommitRepository(session)


@pytest.fixture
def branch_repo(session: Session) -> SqliteBranchRepository:
    return SqliteBranchRepository(session)


@pytest.fixture
def membership_repo(session: Session) -> SqliteMembershipRepository:
    return SqliteMembershipRepository(session)


@pytest.fixture
def case_repo(session: Session) -> SqliteTestCaseRepository:
    return SqliteTestCaseRepository(session)


@pytest.fixture
def result_repo(session: Session) -> SqliteResultRepository:
    return SqliteResultRepository(session)


@pytest.fixture
def config() -> HubConfig:
    return HubConfig(modules=["star", "binary"])


@pytest.fixture
def remote() -> FakeRemoteSource:
    fake = FakeRemoteSource()
    fake.set_test_list("star", STAR_CASES)
    return fake


@pytest.fixture
def hub(config, remote):
    from testhub import TestHub

    h = TestHub.open(":memory:", config=config, remote=remote)
    yield h
    h.close()


# ------------------------------------------------------------------
# Shared test helpers (used by test_sync.py, test_navigation.py, test_hub.py)
# ------------------------------------------------------------------


def hourly_history(
    remote: FakeRemoteSource,
    n: int,
    *,
    branch: str = "main",
    start: datetime = BASE_TIME,
    prefix: str = "c",
) -> list[str]:
    """Add *n* commits one hour apart to *branch*; return shas oldest first."""
    shas = []
    for i in range(n):
        sha = make_sha(f"{prefix}{i}")
        remote.add_commit(branch, sha, start + timedelta(hours=i), message=f"{prefix} commit {i}")
        shas.append(sha)
    return shas


def make_hub_with_history(n: int = 20, **kwargs):
    """Create an in-memory hub whose main branch holds *n* hourly commits.

    Returns (hub, remote, shas oldest first).
    """
    from testhub import TestHub

    remote = FakeRemoteSource()
    remote.set_test_list("star", STAR_CASES)
    shas = hourly_history(remote, n)
    hub = TestHub.open(":memory:", config=HubConfig(modules=["star"], **kwargs), remote=remote)
    hub.sync("main")
    return hub, remote, shas
