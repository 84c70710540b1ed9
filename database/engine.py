"""
Database Persistence Layer - Core Engine.

============================================================
RESPONSIBILITY
============================================================
Creates the SQLAlchemy engine and hands out sessions.

- One engine per process, built from DATABASE_URL
- One session per unit of work (HTTP request, CLI run)
- Commit/rollback at explicit transaction boundaries

============================================================
"""

import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from storage.models.base import Base

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./database_storage.db"

_IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite+pysqlite://")


# =============================================================
# CUSTOM EXCEPTIONS
# =============================================================

class DatabasePersistenceError(Exception):
    """Base class for engine level database failures."""


class DatabaseConnectionError(DatabasePersistenceError):
    """Raised when the database cannot be reached."""


class DatabaseInitializationError(DatabasePersistenceError):
    """Raised when the schema cannot be created."""


# =============================================================
# ENGINE
# =============================================================

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


def get_database_url() -> str:
    """DATABASE_URL, or a local SQLite file for development."""
    url = os.getenv("DATABASE_URL")
    if not url:
        url = DEFAULT_DATABASE_URL
        logger.warning(f"DATABASE_URL not set, using default: {url}")
    return url


def create_database_engine(
    database_url: Optional[str] = None,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
) -> Engine:
    """
    Create the SQLAlchemy engine.

    Server databases get a sized, pre-pinged connection pool.
    SQLite may be used from several threads; an in-memory
    SQLite database is kept on one shared connection.

    Args:
        database_url: Explicit URL, defaults to DATABASE_URL
        pool_size: Connections kept in the pool
        max_overflow: Connections allowed beyond pool_size
        pool_timeout: Seconds to wait for a free connection
        pool_recycle: Recycle connections after N seconds
        echo: Log SQL statements
    """
    url = database_url or get_database_url()
    logger.info(f"Creating database engine for: {url.split('@')[-1]}")

    kwargs: Dict[str, Any] = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in _IN_MEMORY_SQLITE_URLS:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True,
        )
    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = create_database_engine()
    return _engine


def get_session_factory() -> sessionmaker:
    """
    Session factory bound to the process engine.

    Objects stay readable after commit (expire_on_commit=False)
    so services can render records they just wrote or deleted.
    """
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _SessionFactory


# =============================================================
# SESSION MANAGEMENT
# =============================================================

def get_session() -> Session:
    """New session. The caller commits and closes it."""
    return get_session_factory()()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """Session that is rolled back on error and always closed."""
    session = get_session()
    try:
        yield session
    except Exception as e:
        logger.error(f"Error in database session, rolling back: {e}")
        session.rollback()
        raise
    finally:
        session.close()


# =============================================================
# INITIALIZATION
# =============================================================

def verify_database_connection() -> bool:
    """
    Raises:
        DatabaseConnectionError: If SELECT 1 fails
    """
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except OperationalError as e:
        logger.error(f"Database connection failed: {e}")
        raise DatabaseConnectionError(f"Cannot connect to database: {e}") from e
    logger.info("Database connection verified")
    return True


def create_all_tables() -> None:
    """
    Create missing tables. Existing tables are left untouched.

    Raises:
        DatabaseInitializationError: If table creation fails
    """
    import storage.models  # noqa: F401  registers the mapped classes

    try:
        Base.metadata.create_all(bind=get_engine())
    except SQLAlchemyError as e:
        logger.error(f"Failed to create database tables: {e}")
        raise DatabaseInitializationError(f"Table creation failed: {e}") from e
    logger.info("Database tables ready")


def initialize_database() -> None:
    """Verify the connection, then create missing tables."""
    logger.info("Initializing database storage persistence layer")
    verify_database_connection()
    create_all_tables()
    logger.info("Database initialization complete")
