"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Shared plumbing for repositories:
- Injected session, never created here
- SQLAlchemy errors wrapped into PersistenceFailure subclasses
- One logger per repository ("repository.<Name>")

============================================================
"""

import logging
from abc import ABC
from typing import Any, Dict, Generic, List, NoReturn, Optional, Type, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from storage.models.base import Base
from storage.repositories.exceptions import (
    ConnectionError,
    IntegrityError,
    QueryError,
    RecordNotFoundError,
    TransactionError,
)


T = TypeVar("T", bound=Base)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base class for repositories.

    Subclasses pass their model class and a name:

        class DatabaseStorageRepository(BaseRepository[DatabaseStorage]):
            def __init__(self, session: Session):
                super().__init__(session, DatabaseStorage, "DatabaseStorageRepository")
    """

    def __init__(self, session: Session, model_class: Type[T], repository_name: str) -> None:
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> Session:
        return self._session

    # =========================================================
    # ERROR WRAPPING
    # =========================================================

    def _handle_db_error(
        self,
        error: SQLAlchemyError,
        operation: str,
        context: Optional[Dict[str, Any]] = None
    ) -> NoReturn:
        """
        Log and re-raise a SQLAlchemy error as a repository exception.

        Raises:
            ConnectionError: For OperationalError
            IntegrityError: For constraint violations
            QueryError: For anything else
        """
        self._logger.error(
            f"Database error in {operation}: {error}",
            extra={"context": context or {}},
            exc_info=True
        )
        if isinstance(error, OperationalError):
            exc_class = ConnectionError
        elif isinstance(error, SQLAlchemyIntegrityError):
            exc_class = IntegrityError
        else:
            exc_class = QueryError
        raise exc_class(self._repository_name, operation, str(error)) from error

    # =========================================================
    # PROTECTED HELPERS
    # =========================================================

    def _add(self, entity: T) -> T:
        """Add an entity and flush so its defaults are populated."""
        try:
            self._session.add(entity)
            self._session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "add", {"entity": repr(entity)})
        self._logger.debug(f"Added {entity!r}")
        return entity

    def _delete(self, entity: T) -> None:
        try:
            self._session.delete(entity)
            self._session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "delete", {"entity": repr(entity)})
        self._logger.debug(f"Deleted {entity!r}")

    def _get_by_id(self, record_id: Any) -> Optional[T]:
        try:
            return self._session.get(self._model_class, record_id)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_by_id", {"id": str(record_id)})

    def _get_by_id_or_raise(self, record_id: Any) -> T:
        """
        Raises:
            RecordNotFoundError: If no row has this primary key
        """
        entity = self._get_by_id(record_id)
        if entity is None:
            raise RecordNotFoundError(self._repository_name, record_id)
        return entity

    def _count(self, *criteria: Any) -> int:
        """Number of rows matching all WHERE criteria."""
        stmt = select(func.count()).select_from(self._model_class)
        if criteria:
            stmt = stmt.where(*criteria)
        try:
            return self._session.execute(stmt).scalar() or 0
        except SQLAlchemyError as e:
            self._handle_db_error(e, "count")

    def _execute_query(self, stmt: Any, operation: str = "query") -> List[T]:
        try:
            return list(self._session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)

    # =========================================================
    # TRANSACTIONS
    # =========================================================

    def _commit(self) -> None:
        """
        Commit, rolling back on failure.

        Raises:
            TransactionError: If the commit fails
        """
        try:
            self._session.commit()
        except SQLAlchemyError as e:
            self._session.rollback()
            self._logger.error(f"Commit failed, rolled back: {e}")
            raise TransactionError(self._repository_name, "commit", str(e)) from e

    def _rollback(self) -> None:
        try:
            self._session.rollback()
        except SQLAlchemyError as e:
            self._logger.error(f"Rollback failed: {e}")
            raise TransactionError(self._repository_name, "rollback", str(e)) from e
