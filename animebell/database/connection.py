"""
Database connection management for animebell.

Provides a lazily created SQLAlchemy engine and a session context manager.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from animebell.config import AnimeBellConfig, get_config

logger = logging.getLogger(__name__)

# Global engine and session factory (lazy-loaded)
_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def get_db_path(config: Optional[AnimeBellConfig] = None) -> Optional[Path]:
    """
    Get the SQLite database file path.

    Args:
        config: animebell configuration (uses global if not provided)

    Returns:
        Path to the SQLite database file, or None for other backends
    """
    if config is None:
        config = get_config()

    db_url = config.database_url
    if db_url.startswith("sqlite:///"):
        return Path(db_url[10:])
    return None


def init_engine(config: Optional[AnimeBellConfig] = None) -> Engine:
    """
    Initialize the SQLAlchemy engine.

    Args:
        config: animebell configuration (uses global if not provided)

    Returns:
        Configured SQLAlchemy engine
    """
    global _engine

    if _engine is not None:
        return _engine

    if config is None:
        config = get_config()

    db_path = get_db_path(config)
    if db_path is None:
        _engine = create_engine(config.database_url, pool_pre_ping=True)
        logger.debug(f"Database engine initialized: {config.database_url}")
        return _engine

    db_path.parent.mkdir(parents=True, exist_ok=True)

    _engine = create_engine(
        config.database_url,
        connect_args={
            "check_same_thread": False,
            "timeout": 30,
        },
        pool_pre_ping=True,
        echo=False,
    )

    @event.listens_for(_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable SQLite foreign key support."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    logger.debug(f"Database engine initialized: {config.database_url}")
    return _engine


def get_session_maker(config: Optional[AnimeBellConfig] = None) -> sessionmaker:
    """
    Get or create the session maker.

    Args:
        config: animebell configuration (uses global if not provided)

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
def get_db_session(config: Optional[AnimeBellConfig] = None) -> Generator[Session, None, None]:
    """
    Get a database session context manager.

    Usage:
        with get_db_session() as session:
            job = session.get(Job, "custom:1700000000000:7")

    Args:
        config: animebell configuration (uses global if not provided)

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


def create_tables(config: Optional[AnimeBellConfig] = None) -> None:
    """
    Create all database tables that do not exist yet.

    Args:
        config: animebell configuration (uses global if not provided)
    """
    from animebell.database.models import Base

    engine = init_engine(config)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created")


def dispose_engine() -> None:
    """Dispose of the global engine so the next call builds a fresh one."""
    global _engine, _SessionLocal

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
