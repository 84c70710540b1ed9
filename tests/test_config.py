"""
Tests for configuration loading and validation.
"""

from datetime import timedelta
from pathlib import Path

import pytest

from database_storage.config import (
    DEFAULT_FINISHER_IGNORE,
    CleanupRule,
    DatabaseStorageConfig,
    parse_cleanup_rules,
)


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.setattr("database_storage.config.load_dotenv", lambda: None)
    for name in (
        "DATABASE_STORAGE_ITEMS_PER_PAGE",
        "DATABASE_STORAGE_DATETIME_FORMAT",
        "DATABASE_STORAGE_FINISHER_IGNORE",
        "DATABASE_STORAGE_FINISHER_ALLOW",
        "DATABASE_STORAGE_EXPORT_IGNORE",
        "DATABASE_STORAGE_EXPORT_ALLOW",
        "DATABASE_STORAGE_RESOURCE_PATH",
        "DATABASE_STORAGE_RESOURCE_BASE_URL",
        "DATABASE_STORAGE_EXPORT_BATCH_SIZE",
        "DATABASE_STORAGE_CLEANUP",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestFromEnv:
    """Loading configuration from the environment."""

    def test_defaults(self, clean_env):
        config = DatabaseStorageConfig.from_env()

        assert config.items_per_page == 10
        assert config.datetime_format == "%Y-%m-%d %H:%M:%S"
        assert config.finisher_ignore == DEFAULT_FINISHER_IGNORE
        assert config.resource_base_url is None
        assert config.cleanup_rules == []
        assert config.validate() == []

    def test_overrides(self, clean_env):
        clean_env.setenv("DATABASE_STORAGE_ITEMS_PER_PAGE", "25")
        clean_env.setenv("DATABASE_STORAGE_EXPORT_IGNORE", "__*, secret")
        clean_env.setenv("DATABASE_STORAGE_EXPORT_ALLOW", "__visible")
        clean_env.setenv("DATABASE_STORAGE_RESOURCE_PATH", "/srv/resources")
        clean_env.setenv("DATABASE_STORAGE_CLEANUP", "contact:180:true,news:30")

        config = DatabaseStorageConfig.from_env()

        assert config.items_per_page == 25
        assert config.export_ignore.deny == ("__*", "secret")
        assert config.export_ignore.is_ignored("secret")
        assert not config.export_ignore.is_ignored("__visible")
        assert config.resource_path == Path("/srv/resources")
        assert config.cleanup_rules == [
            CleanupRule("contact", timedelta(days=180), True),
            CleanupRule("news", timedelta(days=30), False),
        ]

    def test_empty_ignore_list_disables_default(self, clean_env):
        clean_env.setenv("DATABASE_STORAGE_FINISHER_IGNORE", "")
        config = DatabaseStorageConfig.from_env()
        assert not config.finisher_ignore.is_ignored("__state")


class TestValidate:
    """Configuration validation."""

    def test_invalid_values_reported(self):
        config = DatabaseStorageConfig(items_per_page=0, export_batch_size=0, datetime_format=" ")
        errors = config.validate()
        assert len(errors) == 3

    def test_export_metadata(self):
        config = DatabaseStorageConfig(creator="Acme", title="T", subject="S")
        assert config.export_metadata() == {"creator": "Acme", "title": "T", "subject": "S"}


class TestCleanupRules:
    """Parsing DATABASE_STORAGE_CLEANUP."""

    def test_empty(self):
        assert parse_cleanup_rules(None) == []
        assert parse_cleanup_rules("") == []

    def test_cascade_flag(self):
        (rule,) = parse_cleanup_rules("jobs:7:yes")
        assert rule.remove_attached_resources is True

    @pytest.mark.parametrize("value", ["contact", ":30", "contact:abc", "a:1:2:3"])
    def test_malformed(self, value):
        with pytest.raises(ValueError):
            parse_cleanup_rules(value)
