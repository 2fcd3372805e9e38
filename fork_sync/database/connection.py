"""
Database connection management for fork-sync.

Provides a lazily created SQLAlchemy engine and a session context
manager. Works against the PostgreSQL database shared with the web
application, or a local SQLite file for development and tests.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from fork_sync.config import ForkSyncConfig, get_config

logger = logging.getLogger(__name__)

# Global engine and session factory (lazy-loaded)
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def get_db_path(config: Optional[ForkSyncConfig] = None) -> Optional[Path]:
    """
    Get the database file path for SQLite URLs.

    Args:
        config: fork-sync configuration (uses global if not provided)

    Returns:
        Path to the SQLite database file, or None for server databases
    """
    if config is None:
        config = get_config()

    db_url = config.database_url
    if db_url.startswith("sqlite:///"):
        return Path(db_url[10:])
    return None


def init_engine(config: Optional[ForkSyncConfig] = None) -> Engine:
    """
    Initialize the SQLAlchemy engine.

    Args:
        config: fork-sync configuration (uses global if not provided)

    Returns:
        Configured SQLAlchemy engine
    """
    global _engine

    if _engine is not None:
        return _engine

    if config is None:
        config = get_config()

    engine_kwargs: Dict[str, Any] = {
        "pool_pre_ping": True,  # Verify connections before use
        "echo": False,
    }

    if _is_sqlite(config.database_url):
        db_path = get_db_path(config)
        if db_path is not None:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        engine_kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": 30,
        }
    else:
        engine_kwargs["pool_recycle"] = 3600

    _engine = create_engine(config.database_url, **engine_kwargs)

    if _is_sqlite(config.database_url):
        @event.listens_for(_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """Enable SQLite foreign key support."""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.debug(f"Database engine initialized: {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def get_session_maker(config: Optional[ForkSyncConfig] = None) -> sessionmaker:
    """
    Get or create the session maker.

    Args:
        config: fork-sync configuration (uses global if not provided)

    Returns:
        Configured session maker
    """
    global _SessionLocal

    if _SessionLocal is not None:
        return _SessionLocal

    engine = init_engine(config)
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )

    return _SessionLocal


@contextmanager
def get_db_session(config: Optional[ForkSyncConfig] = None) -> Generator[Session, None, None]:
    """
    Get a database session context manager.

    Usage:
        with get_db_session() as session:
            link = session.query(Link).first()

    Args:
        config: fork-sync configuration (uses global if not provided)

    Yields:
        SQLAlchemy Session
    """
    SessionLocal = get_session_maker(config)
    session = SessionLocal()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionLocal

    if _engine is not None:
        _engine.dispose()
        logger.debug("Database engine disposed")
    _engine = None
    _SessionLocal = None


def create_tables(config: Optional[ForkSyncConfig] = None) -> None:
    """
    Create all database tables.

    Args:
        config: fork-sync configuration (uses global if not provided)
    """
    from fork_sync.database.models import Base

    engine = init_engine(config)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")
