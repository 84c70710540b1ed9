"""
Database Storage Finisher.

Invoked by the form runtime once a form has been completed.
Stores the submitted values as a new DatabaseStorage record
and reports the record id back to the form state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, MutableMapping, Optional
from uuid import UUID

from database_storage.config import DatabaseStorageConfig, IgnoreRules
from storage.models.database_storage import DatabaseStorage
from storage.repositories.database_storage import DatabaseStorageRepository
from storage.repositories.exceptions import PersistenceFailure
from storage.resources import LocalResourceStore, ResourceReference, UploadedResource

logger = logging.getLogger(__name__)

UNDEFINED_IDENTIFIER = "__undefined__"
FORM_STATE_KEY = "databaseStorageIdentifier"


@dataclass(frozen=True)
class FinisherResult:
    record_id: UUID
    identifier: str
    stored_fields: int


class DatabaseStorageFinisher:
    """
    Writes one completed form submission.

    Uploaded files are moved into the resource store and kept
    as references; fields matching the finisher ignore rules
    are dropped.
    """

    def __init__(
        self,
        repository: DatabaseStorageRepository,
        resource_store: Optional[LocalResourceStore] = None,
        ignore_rules: Optional[IgnoreRules] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repository = repository
        self._resource_store = resource_store
        self._ignore_rules = ignore_rules or DatabaseStorageConfig().finisher_ignore
        self._clock = clock

    def _convert(self, key: str, value: Any, created: List[ResourceReference]) -> Any:
        if isinstance(value, UploadedResource):
            if self._resource_store is None:
                raise ValueError(f"Field '{key}' holds an upload but no resource store is configured")
            reference, is_new = self._resource_store.store(value)
            if is_new:
                created.append(reference)
            return reference
        return value

    def _discard(self, created: List[ResourceReference]) -> None:
        """Remove files written for a submission that was not stored."""
        for reference in created:
            self._resource_store.delete(reference)
        if created:
            logger.warning(f"Discarded {len(created)} uploaded resources of a failed submission")

    def execute(
        self,
        form_values: MutableMapping[str, Any],
        storage_identifier: Optional[str] = None,
    ) -> FinisherResult:
        """
        Persist form_values and commit.

        form_values is updated in place with the id of the new
        record under "databaseStorageIdentifier".

        Raises:
            ValidationError: If the storage identifier is too long
            PersistenceFailure: If the store rejects the write. The
                transaction is rolled back and files written for
                this submission are removed again.
        """
        identifier = storage_identifier if storage_identifier and storage_identifier.strip() else UNDEFINED_IDENTIFIER
        self._repository.validate_identifier(identifier)

        properties: Dict[str, Any] = {}
        created: List[ResourceReference] = []
        for key, value in form_values.items():
            if self._ignore_rules.is_ignored(key):
                continue
            properties[key] = self._convert(key, value, created)

        record = DatabaseStorage.create(identifier, properties, timestamp=self._clock())
        try:
            self._repository.add(record)
            self._repository.commit()
        except PersistenceFailure:
            self._repository.rollback()
            self._discard(created)
            raise

        form_values[FORM_STATE_KEY] = str(record.id)
        resources = sum(1 for v in properties.values() if isinstance(v, ResourceReference))
        logger.info(
            f"Form submission stored: identifier='{identifier}' id={record.id} "
            f"fields={len(properties)} resources={resources}"
        )
        return FinisherResult(record_id=record.id, identifier=identifier, stored_fields=len(properties))
