"""
Database Storage Service.

============================================================
RESPONSIBILITY
============================================================
Orchestrates the administrative actions on stored form
submissions:

- index: list storage identifiers
- show: one page of submissions with pagination metadata
- delete / delete_all: remove submissions
- export: build a spreadsheet download

============================================================
DESIGN
============================================================
A service instance holds no request state of its own. It is
built per request from an injected repository and the
configuration; the label resolver is built per call.

============================================================
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from database_storage.config import DatabaseStorageConfig
from database_storage.exceptions import ExportError
from database_storage.export import (
    build_grid,
    download_headers,
    export_filename,
    get_export_format,
)
from database_storage.labels import FieldLabelResolver
from storage.repositories.database_storage import DatabaseStorageRepository, DateInterval
from storage.repositories.exceptions import ValidationError

logger = logging.getLogger(__name__)


# =============================================================
# RESULT TYPES
# =============================================================

@dataclass(frozen=True)
class PageLink:
    page_number: int
    is_current: bool
    is_first: bool
    is_last: bool


@dataclass
class ShowEntry:
    id: UUID
    timestamp: datetime
    values: Dict[str, Any]


@dataclass
class ShowResult:
    identifier: str
    titles: List[str]
    entries: List[ShowEntry]
    datetime_format: str
    total_entries_count: int
    current_page: int
    items_per_page: int
    number_of_pages: int
    pages: List[PageLink] = field(default_factory=list)


@dataclass
class ExportFile:
    content: bytes
    media_type: str
    filename: str
    headers: Dict[str, str]
    row_count: int


def build_pages(current_page: int, number_of_pages: int) -> List[PageLink]:
    """Pagination links for pages 1..number_of_pages."""
    return [
        PageLink(
            page_number=page,
            is_current=page == current_page,
            is_first=page == 1,
            is_last=page == number_of_pages,
        )
        for page in range(1, number_of_pages + 1)
    ]


# =============================================================
# SERVICE
# =============================================================

class DatabaseStorageService:
    """Listing, deletion and export of stored form submissions."""

    def __init__(self, repository: DatabaseStorageRepository, config: DatabaseStorageConfig):
        self.repository = repository
        self.config = config

    def _resolver(self) -> FieldLabelResolver:
        return FieldLabelResolver(self.config.export_ignore, self.config.datetime_format)

    # ---------------------------------------------------------
    # LISTING
    # ---------------------------------------------------------

    def index(self) -> List[str]:
        return self.repository.list_distinct_identifiers()

    def show(self, identifier: str, page: int = 1, page_size: Optional[int] = None) -> Optional[ShowResult]:
        """
        One page of submissions for an identifier.

        Returns None when the page is empty: unknown identifier
        or a page number past the last page. Callers redirect
        to the index in that case.

        Raises:
            ValidationError: If page or page_size is below 1
        """
        items_per_page = page_size if page_size is not None else self.config.items_per_page
        if page < 1 or items_per_page < 1:
            raise ValidationError(
                repository_name="DatabaseStorageService",
                operation="show",
                field="page" if page < 1 else "page_size",
                reason="must be >= 1",
            )

        offset = (page - 1) * items_per_page
        total = self.repository.count_by_identifier(identifier)
        records = self.repository.find_page(identifier, items_per_page, offset)
        if not records:
            logger.debug(f"Empty page {page} for identifier '{identifier}'")
            return None

        resolver = self._resolver()
        titles = resolver.resolve_labels(records)
        entries = [
            ShowEntry(id=record.id, timestamp=record.timestamp, values=resolver.row_for(record, titles))
            for record in records
        ]

        number_of_pages = math.ceil(total / items_per_page)
        return ShowResult(
            identifier=identifier,
            titles=titles,
            entries=entries,
            datetime_format=self.config.datetime_format,
            total_entries_count=total,
            current_page=page,
            items_per_page=items_per_page,
            number_of_pages=number_of_pages,
            pages=build_pages(page, number_of_pages),
        )

    # ---------------------------------------------------------
    # DELETION
    # ---------------------------------------------------------

    def delete(self, record_id: UUID, remove_attached_resources: bool = False) -> str:
        """
        Delete one submission.

        Returns:
            The storage identifier the submission belonged to

        Raises:
            RecordNotFoundError: If no submission has this id
        """
        record = self.repository.get_by_id_or_raise(record_id)
        identifier = record.identifier
        self.repository.delete_one(record, cascade_resources=remove_attached_resources)
        return identifier

    def delete_all(
        self,
        identifier: str,
        remove_attached_resources: bool = False,
        date_interval: Optional[DateInterval] = None,
    ) -> int:
        return self.repository.delete_by_identifier(
            identifier,
            date_interval=date_interval,
            cascade_resources=remove_attached_resources,
        )

    # ---------------------------------------------------------
    # EXPORT
    # ---------------------------------------------------------

    def export(self, identifier: str, export_format: str = "xlsx", include_datetime: bool = False) -> ExportFile:
        """
        Build a spreadsheet of all submissions of an identifier.

        The whole file is assembled in memory.

        Raises:
            UnsupportedFormatError: Before any database access
            ExportError: If the writer fails
        """
        fmt = get_export_format(export_format)
        resolver = self._resolver()
        batch_size = self.config.export_batch_size

        labels = resolver.resolve_labels(self.repository.iter_all(identifier, batch_size))
        grid = build_grid(
            self.repository.iter_all(identifier, batch_size),
            resolver,
            labels,
            include_datetime=include_datetime,
            datetime_format=self.config.datetime_format,
        )

        try:
            content = fmt.writer(grid, self.config.export_metadata())
        except Exception as e:
            logger.error(f"Export writer '{fmt.name}' failed for identifier '{identifier}': {e}", exc_info=True)
            raise ExportError(str(e), fmt.name, identifier) from e

        filename = export_filename(identifier, fmt)
        logger.info(
            f"Exported {len(grid) - 1} submissions of identifier '{identifier}' "
            f"as {fmt.name} ({len(content)} bytes)"
        )
        return ExportFile(
            content=content,
            media_type=fmt.media_type,
            filename=filename,
            headers=download_headers(filename),
            row_count=len(grid) - 1,
        )
