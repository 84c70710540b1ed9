"""
Tests for engine creation and session management.
"""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.pool import StaticPool

from database import engine as engine_module
from database.engine import (
    DEFAULT_DATABASE_URL,
    create_database_engine,
    get_database_url,
    get_db_session,
    initialize_database,
)
from storage.models.database_storage import DatabaseStorage


@pytest.fixture
def process_engine(monkeypatch):
    engine = create_database_engine("sqlite://")
    monkeypatch.setattr(engine_module, "_engine", engine)
    monkeypatch.setattr(engine_module, "_SessionFactory", None)
    yield engine
    engine.dispose()


class TestEngine:
    """Engine construction."""

    def test_database_url_from_env(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/forms")
        assert get_database_url() == "postgresql://u:p@db/forms"

    def test_database_url_default(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert get_database_url() == DEFAULT_DATABASE_URL

    def test_in_memory_sqlite_shares_connection(self):
        engine = create_database_engine("sqlite://")
        assert isinstance(engine.pool, StaticPool)
        engine.dispose()


class TestSessions:
    """Initialization and session scopes."""

    def test_initialize_creates_table(self, process_engine):
        initialize_database()
        assert "database_storage" in inspect(process_engine).get_table_names()

    def test_db_session_commit_visible_in_next_session(self, process_engine):
        initialize_database()

        with get_db_session() as session:
            session.add(DatabaseStorage.create("contact", {"a": 1}))
            session.commit()

        with get_db_session() as session:
            assert session.execute(text("SELECT COUNT(*) FROM database_storage")).scalar() == 1

    def test_db_session_rolls_back_on_error(self, process_engine):
        initialize_database()

        with pytest.raises(RuntimeError):
            with get_db_session() as session:
                session.add(DatabaseStorage.create("contact", {"a": 1}))
                session.flush()
                raise RuntimeError("aborted")

        with get_db_session() as session:
            assert session.execute(text("SELECT COUNT(*) FROM database_storage")).scalar() == 0
