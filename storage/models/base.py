"""
Base ORM Model.

============================================================
PURPOSE
============================================================
Provides the declarative base used by all ORM models of the
database storage package.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models

============================================================
"""

from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.
    
    All timestamps are stored timezone-aware.
    Property bags use the generic JSON type, never JSONB, which
    does not keep key order.
    """
    
    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }
