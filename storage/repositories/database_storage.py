"""
Database Storage Repository.

============================================================
PURPOSE
============================================================
The only gateway to stored form submissions. Lists storage
identifiers, pages through submissions, and deletes them
singly or in bulk.

============================================================
DATA LIFECYCLE
============================================================
- Append-only from the submission side (no update method)
- Physical deletion, optionally cascading to the binary
  resources referenced by the deleted submissions
- Bulk deletion commits batch by batch; it is NOT atomic
  across batches, an interrupted run leaves a partial delete

============================================================
"""

from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import String, cast, delete, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storage.models.database_storage import DatabaseStorage, IDENTIFIER_MAX_LENGTH
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import ValidationError
from storage.resources import LocalResourceStore, ResourceReference


DateInterval = Tuple[Optional[datetime], Optional[datetime]]

DEFAULT_BATCH_SIZE = 500


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class DatabaseStorageRepository(BaseRepository[DatabaseStorage]):
    """
    Repository for stored form submissions.

    ============================================================
    SCOPE
    ============================================================
    Manages DatabaseStorage records. The resource store is only
    needed when deletions cascade to attached files.

    ============================================================
    NOT FOUND HANDLING
    ============================================================
    Unknown storage identifiers yield empty lists and zero
    counts, never exceptions.

    ============================================================
    """

    def __init__(
        self,
        session: Session,
        resource_store: Optional[LocalResourceStore] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        super().__init__(session, DatabaseStorage, "DatabaseStorageRepository")
        self._resource_store = resource_store
        self._batch_size = max(1, batch_size)

    # =========================================================
    # VALIDATION
    # =========================================================

    def validate_identifier(self, identifier: str, operation: str = "add") -> None:
        if identifier is None or not str(identifier).strip():
            raise ValidationError(
                repository_name=self._repository_name,
                operation=operation,
                field="identifier",
                reason="must not be empty"
            )
        if len(identifier) > IDENTIFIER_MAX_LENGTH:
            raise ValidationError(
                repository_name=self._repository_name,
                operation=operation,
                field="identifier",
                reason=f"must be at most {IDENTIFIER_MAX_LENGTH} characters, got {len(identifier)}"
            )

    def _validate_window(self, limit: int, offset: int) -> None:
        for name, value in (("limit", limit), ("offset", offset)):
            if value < 0:
                raise ValidationError(
                    repository_name=self._repository_name,
                    operation="find_page",
                    field=name,
                    reason=f"must be non-negative, got {value}"
                )

    # =========================================================
    # CREATE OPERATIONS
    # =========================================================

    def add(self, record: DatabaseStorage) -> DatabaseStorage:
        """
        Add a new submission. The caller commits.

        Raises:
            ValidationError: If the storage identifier is invalid
        """
        self.validate_identifier(record.identifier)
        record.timestamp = as_utc(record.timestamp)
        entity = self._add(record)
        self._logger.info(
            f"Stored submission {entity.id} for identifier '{entity.identifier}' "
            f"with {len(entity.raw_properties)} properties"
        )
        return entity

    def commit(self) -> None:
        self._commit()

    def rollback(self) -> None:
        self._rollback()

    # =========================================================
    # READ OPERATIONS
    # =========================================================

    def list_distinct_identifiers(self) -> List[str]:
        """All storage identifiers currently in use, sorted."""
        stmt = (
            select(DatabaseStorage.identifier)
            .distinct()
            .order_by(DatabaseStorage.identifier)
        )
        try:
            return list(self._session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "list_distinct_identifiers")

    def count_by_identifier(self, identifier: str) -> int:
        return self._count(DatabaseStorage.identifier == identifier)

    def _ordered_by_identifier(self, identifier: str):
        return (
            select(DatabaseStorage)
            .where(DatabaseStorage.identifier == identifier)
            .order_by(desc(DatabaseStorage.timestamp), DatabaseStorage.id)
        )

    def find_page(self, identifier: str, limit: int, offset: int) -> List[DatabaseStorage]:
        """
        One window of submissions, most recent first.

        An offset past the end yields an empty list.

        Raises:
            ValidationError: If limit or offset is negative
        """
        self._validate_window(limit, offset)
        stmt = self._ordered_by_identifier(identifier).limit(limit).offset(offset)
        return self._execute_query(stmt, "find_page")

    def find_all(self, identifier: str) -> List[DatabaseStorage]:
        """All submissions of an identifier, most recent first."""
        return self._execute_query(self._ordered_by_identifier(identifier), "find_all")

    def iter_all(self, identifier: str, batch_size: Optional[int] = None) -> Iterator[DatabaseStorage]:
        """
        Stream all submissions of an identifier in batches.

        Keeps at most one batch of ORM objects buffered at a time.
        """
        stmt = self._ordered_by_identifier(identifier).execution_options(
            yield_per=batch_size or self._batch_size
        )
        try:
            for record in self._session.execute(stmt).scalars():
                yield record
        except SQLAlchemyError as e:
            self._handle_db_error(e, "iter_all", {"identifier": identifier})

    def get_by_id(self, record_id: UUID) -> Optional[DatabaseStorage]:
        return self._get_by_id(record_id)

    def get_by_id_or_raise(self, record_id: UUID) -> DatabaseStorage:
        return self._get_by_id_or_raise(record_id)

    # =========================================================
    # DELETE OPERATIONS
    # =========================================================

    def delete_one(self, record: DatabaseStorage, cascade_resources: bool = False) -> None:
        """
        Delete a single submission and commit.

        Attached resource files are removed only after the commit
        succeeded.
        """
        resources = list(record.resources()) if cascade_resources else []
        record_id = record.id
        self._delete(record)
        self._commit()
        self._logger.info(f"Deleted submission {record_id}")
        if resources:
            self._remove_resources(resources)

    def delete_by_identifier(
        self,
        identifier: str,
        date_interval: Optional[DateInterval] = None,
        cascade_resources: bool = False,
    ) -> int:
        """
        Delete all submissions of an identifier, optionally only
        those with from <= timestamp <= to.

        Either bound of the interval may be None (open ended).

        Returns:
            Number of submissions removed
        """
        criteria = [DatabaseStorage.identifier == identifier]
        if date_interval is not None:
            start, end = date_interval
            if start is not None:
                criteria.append(DatabaseStorage.timestamp >= as_utc(start))
            if end is not None:
                criteria.append(DatabaseStorage.timestamp <= as_utc(end))
        removed = self._delete_in_batches(criteria, cascade_resources)
        self._logger.info(
            f"Deleted {removed} submissions for identifier '{identifier}'"
            + (f" in interval {date_interval}" if date_interval is not None else "")
        )
        return removed

    def delete_older_than(
        self,
        identifier: str,
        max_age: timedelta,
        cascade_resources: bool = False,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Retention cleanup: delete submissions older than max_age.

        Returns:
            Number of submissions removed
        """
        threshold = as_utc(now or datetime.now(timezone.utc)) - max_age
        criteria = [
            DatabaseStorage.identifier == identifier,
            DatabaseStorage.timestamp < threshold,
        ]
        removed = self._delete_in_batches(criteria, cascade_resources)
        self._logger.info(
            f"Retention cleanup removed {removed} submissions for identifier "
            f"'{identifier}' older than {threshold.isoformat()}"
        )
        return removed

    def _delete_in_batches(self, criteria: Sequence, cascade_resources: bool) -> int:
        removed = 0
        while True:
            stmt = select(DatabaseStorage).where(*criteria).limit(self._batch_size)
            batch = self._execute_query(stmt, "select_batch")
            if not batch:
                break

            resources: List[ResourceReference] = []
            if cascade_resources:
                for record in batch:
                    resources.extend(record.resources())

            ids = [record.id for record in batch]
            try:
                self._session.execute(
                    delete(DatabaseStorage).where(DatabaseStorage.id.in_(ids))
                )
            except SQLAlchemyError as e:
                self._handle_db_error(e, "delete_batch", {"batch_size": len(ids)})
            self._commit()
            removed += len(ids)
            self._logger.debug(f"Deleted batch of {len(ids)} submissions")

            if resources:
                self._remove_resources(resources)
        return removed

    # =========================================================
    # RESOURCE CASCADE
    # =========================================================

    def _resource_in_use(self, sha1: str) -> bool:
        return self._count(cast(DatabaseStorage.raw_properties, String).contains(sha1)) > 0

    def _remove_resources(self, resources: Sequence[ResourceReference]) -> int:
        """Remove files no longer referenced by any remaining submission."""
        if self._resource_store is None:
            self._logger.warning(
                f"Cannot remove {len(resources)} attached resources: no resource store configured"
            )
            return 0
        removed = 0
        seen = set()
        for reference in resources:
            if reference.sha1 in seen:
                continue
            seen.add(reference.sha1)
            if self._resource_in_use(reference.sha1):
                self._logger.debug(f"Resource {reference.sha1} still referenced, kept")
                continue
            if self._resource_store.delete(reference):
                removed += 1
        return removed
