"""
Database Storage Exceptions.

Errors of the listing/export layer. Persistence errors are
defined in storage.repositories.exceptions.
"""

from typing import Any, Iterable, Optional


class DatabaseStorageError(Exception):
    """Base exception for listing and export errors."""

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class UnsupportedFormatError(DatabaseStorageError):
    """No tabular writer is registered for the requested format."""

    def __init__(self, requested: str, supported: Iterable[str]) -> None:
        self.requested = requested
        self.supported = sorted(supported)
        super().__init__(
            f"No writer available for type {requested}.",
            {"requested": requested, "supported": self.supported},
        )


class ExportError(DatabaseStorageError):
    """A tabular writer failed to produce the export file."""

    def __init__(self, message: str, export_format: str, identifier: str) -> None:
        super().__init__(message, {"format": export_format, "identifier": identifier})
        self.export_format = export_format
        self.identifier = identifier
