"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to persistent storage.
All database access MUST go through repository classes.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. Session Injection: Sessions are injected, not created internally
2. Explicit Methods: No generic 'execute', clear method names
3. Immutability: Submissions are append-only, deletion is physical
4. Exception Handling: All DB errors wrapped in repository exceptions

============================================================
USAGE
============================================================

    from sqlalchemy.orm import Session
    from storage.repositories import DatabaseStorageRepository

    def list_forms(session: Session):
        repo = DatabaseStorageRepository(session)
        return repo.list_distinct_identifiers()

============================================================
"""

from storage.repositories.base import BaseRepository
from storage.repositories.database_storage import (
    DatabaseStorageRepository,
    DateInterval,
    as_utc,
)
from storage.repositories.exceptions import (
    ConnectionError,
    IntegrityError,
    PersistenceFailure,
    QueryError,
    RecordNotFoundError,
    RepositoryException,
    TransactionError,
    ValidationError,
)

__all__ = [
    "BaseRepository",
    "DatabaseStorageRepository",
    "DateInterval",
    "as_utc",
    "RepositoryException",
    "ValidationError",
    "RecordNotFoundError",
    "PersistenceFailure",
    "ConnectionError",
    "IntegrityError",
    "QueryError",
    "TransactionError",
]
