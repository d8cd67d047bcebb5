"""Database setup for the local commit mirror.

A hub database is normally a single SQLite file that a sync process writes
while the CLI and result submitters read from it, so file-backed SQLite
runs in WAL mode with a busy timeout. Any other backend is reached through
a full SQLAlchemy URL and gets no pragmas.
"""

from __future__ import annotations

from sqlalchemy import Engine, create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker

from testhub.storage.schema import Base, HubMetaRow

SCHEMA_VERSION = "1"

# Applied on every new SQLite connection. Membership and test case commit
# rows rely on ON DELETE CASCADE, which SQLite ignores without foreign_keys.
_SQLITE_PRAGMAS = (
    "PRAGMA busy_timeout=5000",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
)


def create_hub_engine(
    db_path: str = ":memory:",
    *,
    url: str | None = None,
) -> Engine:
    """Create the engine backing a hub.

    Args:
        db_path: SQLite file holding the mirror, or ``":memory:"`` for a
            throwaway hub. Ignored when *url* is given.
        url: SQLAlchemy URL for a shared database, e.g. the
            ``TESTHUB_DB_URL`` a deployment points at Postgres.

    Returns:
        Engine with the SQLite connection pragmas installed when the
        dialect is SQLite.
    """
    if url is not None:
        engine = create_engine(url, echo=False)
    elif db_path == ":memory:":
        engine = create_engine("sqlite://", echo=False)
    else:
        engine = create_engine(f"sqlite:///{db_path}", echo=False)

    if engine.dialect.name == "sqlite":
        # WAL needs a real file; an in-memory database keeps its default journal.
        use_wal = engine.url.database not in (None, "", ":memory:")

        @event.listens_for(engine, "connect")
        def _configure_connection(dbapi_conn, connection_record):  # type: ignore[no-untyped-def]
            cursor = dbapi_conn.cursor()
            if use_wal:
                cursor.execute("PRAGMA journal_mode=WAL")
            for pragma in _SQLITE_PRAGMAS:
                cursor.execute(pragma)
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory for hub sessions.

    Commits and branches handed back by the repositories are read after the
    sync transaction commits, so loaded rows are not expired on commit.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Initialize the database: create all tables and record schema_version.

    Idempotent: existing tables are left alone and the version row is
    only written once.
    """
    Base.metadata.create_all(engine)

    SessionLocal = create_session_factory(engine)
    with SessionLocal() as session:
        existing = session.execute(
            select(HubMetaRow).where(HubMetaRow.key == "schema_version")
        ).scalar_one_or_none()
        if existing is None:
            session.add(HubMetaRow(key="schema_version", value=SCHEMA_VERSION))
            session.commit()


def get_schema_version(engine: Engine) -> str | None:
    """Return the stored schema_version, or None for an uninitialized database."""
    SessionLocal = create_session_factory(engine)
    with SessionLocal() as session:
        row = session.execute(
            select(HubMetaRow).where(HubMetaRow.key == "schema_version")
        ).scalar_one_or_none()
        return row.value if row is not None else None
