"""
Database Storage ORM Model.

============================================================
PURPOSE
============================================================
One row per form submission. The submitted values are kept
as a schemaless property bag, so records under the same
storage identifier may carry different keys.

============================================================
DATA LIFECYCLE
============================================================
- Created: by the submission finisher only
- Mutability: IMMUTABLE (no update path)
- Deletion: physical, single or bulk, optionally cascading
  to attached binary resources

============================================================
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Mapping, Optional

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base
from storage.properties import decode_properties, encode_properties, iter_resources
from storage.resources import ResourceReference


IDENTIFIER_MAX_LENGTH = 256


class DatabaseStorage(Base):
    """
    A stored form submission.

    ============================================================
    COLUMNS
    ============================================================
    - id: Surrogate key, handed back to the form runtime
    - identifier: Storage identifier grouping submissions of
      one form (1..256 chars)
    - properties: Ordered field name -> value mapping (JSON)
    - timestamp: Submission time (UTC)

    ============================================================
    """

    __tablename__ = "database_storage"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier of the stored submission"
    )

    identifier: Mapped[str] = mapped_column(
        String(IDENTIFIER_MAX_LENGTH),
        nullable=False,
        comment="Storage identifier the submission belongs to"
    )

    raw_properties: Mapped[Dict[str, Any]] = mapped_column(
        "properties",
        JSON,
        nullable=False,
        default=dict,
        comment="Submitted form values, JSON encoded"
    )

    timestamp: Mapped[datetime] = mapped_column(
        nullable=False,
        comment="Submission timestamp (UTC)"
    )

    __table_args__ = (
        Index("idx_database_storage_identifier", "identifier"),
        Index("idx_database_storage_identifier_timestamp", "identifier", "timestamp"),
    )

    @classmethod
    def create(
        cls,
        identifier: str,
        properties: Mapping[str, Any],
        timestamp: Optional[datetime] = None,
    ) -> "DatabaseStorage":
        """Build a new, not yet persisted record."""
        record = cls(
            identifier=identifier,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        record.raw_properties = encode_properties(properties)
        return record

    @property
    def properties(self) -> Dict[str, Any]:
        """Decoded property bag (resource references restored)."""
        return decode_properties(self.raw_properties)

    def resources(self) -> Iterator[ResourceReference]:
        """All binary resources referenced by this submission."""
        for value in self.properties.values():
            yield from iter_resources(value)

    def __repr__(self) -> str:
        return f"<DatabaseStorage id={self.id} identifier={self.identifier!r} timestamp={self.timestamp}>"
