"""
Database Package.

Engine and session management for the form submission store.
Models live in storage.models; this package only connects.
"""

from .engine import (
    DEFAULT_DATABASE_URL,
    DatabaseConnectionError,
    DatabaseInitializationError,
    DatabasePersistenceError,
    create_all_tables,
    create_database_engine,
    get_database_url,
    get_db_session,
    get_engine,
    get_session,
    initialize_database,
)

__all__ = [
    "DEFAULT_DATABASE_URL",
    "DatabaseConnectionError",
    "DatabaseInitializationError",
    "DatabasePersistenceError",
    "create_all_tables",
    "create_database_engine",
    "get_database_url",
    "get_db_session",
    "get_engine",
    "get_session",
    "initialize_database",
]
