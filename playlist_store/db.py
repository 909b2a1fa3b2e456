"""Playlist Store - Database engine, session management and unit of work.

The engine + session factory pair is the storage provider handle. It is
created explicitly (init_db) at process start, passed to whatever needs
storage, and disposed at process end. Nothing here holds a process-wide pool.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from playlist_store.config import DATABASE_URL
from playlist_store.models import Base

logger = logging.getLogger(__name__)


def get_database_url(database_url: str | None = None) -> str:
    """Get the database URL.

    Args:
        database_url: Optional URL override. Defaults to config.DATABASE_URL.

    Returns:
        SQLAlchemy connection URL string.
    """
    return database_url if database_url is not None else DATABASE_URL


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """Turn on FK enforcement for every new SQLite connection.

    SQLite ships with foreign keys disabled per connection.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str | None = None, echo: bool = False) -> Engine:
    """Create SQLAlchemy engine.

    Args:
        database_url: Optional URL override.
        echo: If True, log all SQL statements.

    Returns:
        SQLAlchemy Engine instance.
    """
    url = get_database_url(database_url)
    is_sqlite = url.startswith("sqlite")
    engine = create_engine(
        url,
        echo=echo,
        # Sessions are never shared across threads; FastAPI runs sync
        # endpoints in a threadpool, so SQLite must allow handoff.
        connect_args={"check_same_thread": False} if is_sqlite else {},
    )
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the given engine.

    Args:
        engine: SQLAlchemy Engine instance.

    Returns:
        Configured sessionmaker.
    """
    # - autoflush=False: statements are issued explicitly by the upsert engine
    # - expire_on_commit=False: rows read in a unit of work stay usable after it
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(database_url: str | None = None, echo: bool = False) -> tuple[Engine, sessionmaker]:
    """Initialize the database: create engine, session factory, and all tables.

    This is idempotent - safe to call multiple times.

    Args:
        database_url: Optional URL override.
        echo: If True, log all SQL statements.

    Returns:
        Tuple of (engine, SessionFactory).
    """
    engine = create_db_engine(database_url, echo=echo)
    SessionFactory = create_session_factory(engine)

    # Create all tables (idempotent via checkfirst=True default)
    Base.metadata.create_all(engine)

    return engine, SessionFactory


@contextmanager
def transaction(session_factory: sessionmaker) -> Iterator[Session]:
    """Run a unit of work on one checked-out session.

    Commits when the block completes, rolls back and re-raises the original
    exception when it does not (KeyboardInterrupt included), and closes the
    session exactly once on every path. No retries.

    Args:
        session_factory: Session factory from init_db.

    Yields:
        The session for the unit of work.

    Example:
        with transaction(SessionFactory) as session:
            upsert_record_set(session, records, tally)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
        logger.debug("Unit of work committed")
    except BaseException:
        session.rollback()
        logger.debug("Unit of work rolled back")
        raise
    finally:
        session.close()
