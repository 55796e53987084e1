"""Database engine and session management.

Provides engine setup, schema creation and a session context manager that
commits on success and rolls back on error.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)

# Default database location
DEFAULT_DB_URL = "sqlite:///db/noteearly.db"

Base = declarative_base()

# Current engine (module-level, configured once per process)
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (stored as-is in the database)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine, handling the SQLite specifics."""
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory databases live on a single shared connection
        engine = create_engine(
            url, echo=echo, connect_args=connect_args, poolclass=StaticPool
        )
    else:
        db_file = url.removeprefix("sqlite:///")
        Path(db_file).parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(url, echo=echo, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    return engine


def configure_engine(url: str | None = None, echo: bool = False) -> Engine:
    """Bind the module to a database URL without creating tables.

    Args:
        url: SQLAlchemy database URL. Defaults to the configured URL.
        echo: Log emitted SQL.

    Returns:
        The configured engine.
    """
    global _engine, _SessionLocal

    if url is None:
        from noteearly.config.app_config import load_app_config

        db_config = load_app_config().database
        url = db_config.get_url()
        echo = echo or db_config.echo

    if _engine is not None:
        _engine.dispose()

    _engine = _make_engine(url, echo=echo)
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
    logger.debug("database.engine_configured", url=_engine.url.render_as_string(hide_password=True))
    return _engine


def init_db(url: str | None = None) -> Engine:
    """Initialize database with schema.

    Creates all required tables if they don't exist.

    Args:
        url: SQLAlchemy database URL. Defaults to the configured URL.

    Returns:
        The configured engine.
    """
    # Register models on Base.metadata
    from noteearly.db import models  # noqa: F401

    engine = configure_engine(url)
    Base.metadata.create_all(engine)
    logger.info("database.initialized", url=engine.url.render_as_string(hide_password=True))
    return engine


def get_engine() -> Engine:
    """Get the current engine, configuring it on first use."""
    if _engine is None:
        configure_engine()
    assert _engine is not None
    return _engine


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session as context manager.

    Yields:
        SQLAlchemy session, committed on success and rolled back on error.

    Example:
        with get_session() as session:
            module = session.get(ReadingModule, module_id)
    """
    if _SessionLocal is None:
        configure_engine()
    assert _SessionLocal is not None

    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def drop_db() -> None:
    """Drop all tables (tests and local resets only)."""
    from noteearly.db import models  # noqa: F401

    Base.metadata.drop_all(get_engine())
    logger.info("database.dropped")
