"""
Database Storage Package.

Stores form submissions and lets administrators browse,
delete and export them.

Modules:
- config: Configuration and field ignore rules
- labels: Column resolution and cell rendering
- finisher: Writes a completed form submission
- export: Tabular writers (xls, xlsx, ods, csv, html)
- service: Listing, deletion and export orchestration
- router: FastAPI endpoints
- cli: Maintenance commands

Usage:
    from database_storage.finisher import DatabaseStorageFinisher
    from database_storage.router import router as database_storage_router
"""

from database_storage.config import DatabaseStorageConfig, IgnoreRules, CleanupRule
from database_storage.exceptions import (
    DatabaseStorageError,
    ExportError,
    UnsupportedFormatError,
)
from database_storage.labels import FieldLabelResolver
from database_storage.finisher import DatabaseStorageFinisher, FinisherResult
from database_storage.export import EXPORT_FORMATS, ExportFormat, get_export_format
from database_storage.service import DatabaseStorageService, ExportFile, PageLink, ShowResult

__all__ = [
    # Config
    "DatabaseStorageConfig",
    "IgnoreRules",
    "CleanupRule",
    # Exceptions
    "DatabaseStorageError",
    "ExportError",
    "UnsupportedFormatError",
    # Components
    "FieldLabelResolver",
    "DatabaseStorageFinisher",
    "FinisherResult",
    "EXPORT_FORMATS",
    "ExportFormat",
    "get_export_format",
    "DatabaseStorageService",
    "ExportFile",
    "PageLink",
    "ShowResult",
]
