"""
Repository Layer Exceptions.

============================================================
HIERARCHY
============================================================
RepositoryException
├── ValidationError        (rejected before persistence)
├── RecordNotFoundError    (unknown submission id)
└── PersistenceFailure     (the store rejected the operation)
    ├── ConnectionError
    ├── IntegrityError
    ├── QueryError
    └── TransactionError

An unknown storage identifier is NOT an error: reads return
empty results and bulk deletes return zero.

============================================================
"""

from typing import Any, Dict, Optional


class RepositoryException(Exception):
    """
    Base exception for all repository operations.

    Message format: "[<repository>] <operation>: <message>"
    """

    def __init__(
        self,
        message: str,
        repository_name: str,
        operation: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        self.message = message
        self.repository_name = repository_name
        self.operation = operation
        self.details = details or {}
        super().__init__(f"[{repository_name}] {operation}: {message}")


class ValidationError(RepositoryException):
    """
    A value was rejected before it reached the session.

    Raised for storage identifiers outside 1..256 characters,
    negative limit/offset and page numbers below 1.
    """

    def __init__(self, repository_name: str, operation: str, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(
            f"Invalid {field}: {reason}",
            repository_name,
            operation,
            {"field": field, "reason": reason},
        )


class RecordNotFoundError(RepositoryException):
    """No submission exists with the requested primary key."""

    def __init__(self, repository_name: str, record_id: Any, id_field: str = "id") -> None:
        self.record_id = record_id
        self.id_field = id_field
        super().__init__(
            f"No submission with {id_field}={record_id}",
            repository_name,
            "get",
            {id_field: str(record_id)},
        )


class PersistenceFailure(RepositoryException):
    """
    The underlying store failed.

    Wraps the SQLAlchemy error (kept as __cause__). Propagated
    to the caller, never retried.
    """

    kind = "Persistence failure"

    def __init__(self, repository_name: str, operation: str, original_error: str) -> None:
        self.original_error = original_error
        super().__init__(
            f"{self.kind}: {original_error}",
            repository_name,
            operation,
            {"original_error": original_error},
        )


class ConnectionError(PersistenceFailure):
    """Database unreachable, timed out or pool exhausted."""

    kind = "Database connection failed"


class IntegrityError(PersistenceFailure):
    """A constraint rejected the write."""

    kind = "Integrity constraint violated"


class QueryError(PersistenceFailure):
    """A statement failed to execute."""

    kind = "Query failed"


class TransactionError(PersistenceFailure):
    """Commit or rollback failed."""

    kind = "Transaction failed"
