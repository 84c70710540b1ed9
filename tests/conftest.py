"""
Shared fixtures for the database storage tests.

Every test gets a fresh in-memory SQLite database.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest
from sqlalchemy.orm import sessionmaker

from database.engine import create_database_engine
from database_storage.config import DatabaseStorageConfig
from storage.models.base import Base
from storage.models.database_storage import DatabaseStorage
from storage.repositories.database_storage import DatabaseStorageRepository
from storage.resources import LocalResourceStore


BASE_TIME = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_database_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = factory()
    yield session
    session.close()


@pytest.fixture
def resource_store(tmp_path):
    return LocalResourceStore(tmp_path / "resources", base_url="https://example.org/resources")


@pytest.fixture
def config(tmp_path):
    return DatabaseStorageConfig(
        items_per_page=10,
        resource_path=tmp_path / "resources",
        resource_base_url="https://example.org/resources",
        export_batch_size=2,
    )


@pytest.fixture
def repository(session, resource_store):
    return DatabaseStorageRepository(session, resource_store, batch_size=2)


@pytest.fixture
def add_record(repository):
    """Store a submission whose timestamp is BASE_TIME + minutes."""

    def _add(identifier: str, properties: Dict[str, Any], minutes: int = 0,
             timestamp: Optional[datetime] = None) -> DatabaseStorage:
        record = DatabaseStorage.create(
            identifier,
            properties,
            timestamp=timestamp or BASE_TIME + timedelta(minutes=minutes),
        )
        repository.add(record)
        repository.commit()
        return record

    return _add
