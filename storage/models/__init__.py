"""
Storage Models Package.

ORM models for the form submission store.

- base: Declarative base
- database_storage: DatabaseStorage (one row per submission)
"""

from storage.models.base import Base
from storage.models.database_storage import DatabaseStorage, IDENTIFIER_MAX_LENGTH

__all__ = [
    "Base",
    "DatabaseStorage",
    "IDENTIFIER_MAX_LENGTH",
]
