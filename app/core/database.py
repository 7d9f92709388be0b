"""Database configuration and session management.

The sync engine writes in short per-batch transactions while the rest of the
application reads the synchronized tables, so the engine is configured for
concurrent readers when running on SQLite.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: Readers are not blocked while a sync
      batch is being committed.

    - **Foreign Keys**: Disabled by default in SQLite. Enabled so that a
      LocalUser can never reference a Person row that does not exist.

    - **check_same_thread=False**: Sync passes run on scheduler and
      threadpool workers, not on the thread that opened the connection.

Other backends (PostgreSQL) are used as-is.
"""

from sqlalchemy import event as sa_event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from app.core.config import settings


def is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine for ``url`` with the per-dialect connection setup."""
    connect_args = {"check_same_thread": False} if is_sqlite(url) else {}
    new_engine = create_engine(url, connect_args=connect_args, echo=echo)

    if is_sqlite(url):
        sa_event.listen(new_engine, "connect", set_sqlite_pragma)

    return new_engine


def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = build_engine(settings.database_url, echo=settings.debug)


def create_db_and_tables(bind: Engine = engine):
    """Create all database tables."""
    SQLModel.metadata.create_all(bind)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session
