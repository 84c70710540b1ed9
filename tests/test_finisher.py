"""
Tests for the Database Storage Finisher.
"""

from unittest.mock import MagicMock

import pytest

from database_storage.config import IgnoreRules
from database_storage.finisher import (
    FORM_STATE_KEY,
    UNDEFINED_IDENTIFIER,
    DatabaseStorageFinisher,
)
from storage.repositories.exceptions import QueryError, ValidationError
from storage.resources import LocalResourceStore, ResourceReference, UploadedResource

from conftest import BASE_TIME


@pytest.fixture
def finisher(repository, resource_store):
    return DatabaseStorageFinisher(repository, resource_store, clock=lambda: BASE_TIME)


class TestDatabaseStorageFinisher:
    """Storing completed form submissions."""

    def test_stores_submission(self, finisher, repository):
        form_values = {"name": "Jo", "email": "jo@example.org"}

        result = finisher.execute(form_values, "contact")

        assert result.identifier == "contact"
        assert result.stored_fields == 2
        records = repository.find_page("contact", limit=10, offset=0)
        assert len(records) == 1
        assert records[0].properties == {"name": "Jo", "email": "jo@example.org"}

    def test_record_id_written_back(self, finisher):
        form_values = {"name": "Jo"}

        result = finisher.execute(form_values, "contact")

        assert form_values[FORM_STATE_KEY] == str(result.record_id)

    @pytest.mark.parametrize("identifier", [None, "", "   "])
    def test_missing_identifier_uses_placeholder(self, finisher, repository, identifier):
        result = finisher.execute({"name": "Jo"}, identifier)

        assert result.identifier == UNDEFINED_IDENTIFIER
        assert repository.count_by_identifier(UNDEFINED_IDENTIFIER) == 1

    def test_ignored_fields_not_stored(self, finisher, repository):
        finisher.execute({"name": "Jo", "__state": "x", "--honeypot": "", FORM_STATE_KEY: "old"}, "contact")

        record = repository.find_all("contact")[0]
        assert list(record.properties) == ["name"]

    def test_custom_ignore_rules(self, repository, resource_store):
        finisher = DatabaseStorageFinisher(
            repository, resource_store, ignore_rules=IgnoreRules(deny=("secret*",))
        )
        finisher.execute({"name": "Jo", "secret_token": "t", "__kept": 1}, "contact")

        record = repository.find_all("contact")[0]
        assert list(record.properties) == ["name", "__kept"]

    def test_upload_stored_as_reference(self, finisher, repository, resource_store):
        upload = UploadedResource("cv.pdf", b"%PDF-1.4 content", "application/pdf")

        finisher.execute({"name": "Jo", "cv": upload}, "jobs")

        record = repository.find_page("jobs", limit=1, offset=0)[0]
        reference = record.properties["cv"]
        assert isinstance(reference, ResourceReference)
        assert reference.filename == "cv.pdf"
        assert reference.media_type == "application/pdf"
        assert reference.uri == f"https://example.org/resources/{reference.sha1}/cv.pdf"
        assert (resource_store.root / reference.sha1[:2] / reference.sha1).read_bytes() == b"%PDF-1.4 content"

    def test_upload_without_store_rejected(self, repository):
        finisher = DatabaseStorageFinisher(repository)

        with pytest.raises(ValueError):
            finisher.execute({"cv": UploadedResource("cv.pdf", b"x")}, "jobs")
        assert repository.count_by_identifier("jobs") == 0

    def test_identifier_too_long_persists_nothing(self, finisher, repository, resource_store):
        identifier = "x" * 257
        upload = UploadedResource("cv.pdf", b"never stored")

        with pytest.raises(ValidationError):
            finisher.execute({"cv": upload}, identifier)

        assert repository.list_distinct_identifiers() == []
        assert not any(resource_store.root.rglob("*"))

    def test_uses_clock_for_timestamp(self, finisher, repository):
        finisher.execute({"name": "Jo"}, "contact")

        # Removing everything up to BASE_TIME catches the record.
        assert repository.delete_by_identifier("contact", date_interval=(None, BASE_TIME)) == 1

    def test_persistence_failure_rolls_back(self):
        repository = MagicMock()
        repository.commit.side_effect = QueryError("DatabaseStorageRepository", "commit", "disk I/O error")
        finisher = DatabaseStorageFinisher(repository)
        form_values = {"name": "Jo"}

        with pytest.raises(QueryError):
            finisher.execute(form_values, "contact")

        repository.rollback.assert_called_once()
        assert FORM_STATE_KEY not in form_values

    def test_persistence_failure_discards_new_uploads(self, tmp_path):
        repository = MagicMock()
        repository.commit.side_effect = QueryError("DatabaseStorageRepository", "commit", "disk I/O error")
        resource_store = LocalResourceStore(tmp_path)
        finisher = DatabaseStorageFinisher(repository, resource_store)

        with pytest.raises(QueryError):
            finisher.execute({"cv": UploadedResource("cv.pdf", b"data")}, "jobs")

        assert not any(p.is_file() for p in tmp_path.rglob("*"))

    def test_persistence_failure_keeps_existing_uploads(self, tmp_path):
        repository = MagicMock()
        repository.commit.side_effect = QueryError("DatabaseStorageRepository", "commit", "disk I/O error")
        resource_store = LocalResourceStore(tmp_path)
        existing, _ = resource_store.store(UploadedResource("old.pdf", b"shared"))
        finisher = DatabaseStorageFinisher(repository, resource_store)

        with pytest.raises(QueryError):
            finisher.execute(
                {"cv": UploadedResource("cv.pdf", b"shared"), "photo": UploadedResource("me.png", b"new")},
                "jobs",
            )

        assert resource_store.exists(existing)
        assert [p.name for p in tmp_path.rglob("*") if p.is_file()] == [existing.sha1]
