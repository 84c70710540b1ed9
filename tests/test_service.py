"""
Tests for the Database Storage Service.
"""

import io
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from openpyxl import load_workbook

from database_storage.exceptions import ExportError, UnsupportedFormatError
from database_storage.export import DATETIME_LABEL, EXPORT_FORMATS, ExportFormat
from database_storage.service import DatabaseStorageService, build_pages
from storage.repositories.exceptions import RecordNotFoundError, ValidationError
from storage.resources import UploadedResource


@pytest.fixture
def service(repository, config):
    return DatabaseStorageService(repository, config)


# =============================================================
# TEST: Listing
# =============================================================

class TestShow:
    """Paged listing of submissions."""

    def test_index(self, service, add_record):
        add_record("b-form", {"x": 1})
        add_record("a-form", {"x": 1})
        assert service.index() == ["a-form", "b-form"]

    def test_show_first_page(self, service, add_record):
        for i in range(25):
            add_record("contact", {"i": i, "name": f"n{i}"}, minutes=i)

        result = service.show("contact", page=1)

        assert result.total_entries_count == 25
        assert result.number_of_pages == 3
        assert result.current_page == 1
        assert result.items_per_page == 10
        assert result.titles == ["i", "name"]
        assert len(result.entries) == 10
        assert result.entries[0].values == {"i": 24, "name": "n24"}

    def test_show_last_page(self, service, add_record):
        for i in range(25):
            add_record("contact", {"i": i}, minutes=i)

        result = service.show("contact", page=3)

        assert [e.values["i"] for e in result.entries] == [4, 3, 2, 1, 0]
        assert result.pages[-1].is_current

    def test_show_count_independent_of_page(self, service, add_record):
        for i in range(7):
            add_record("contact", {"i": i}, minutes=i)

        counts = {service.show("contact", page=p, page_size=3).total_entries_count for p in (1, 2, 3)}
        assert counts == {7}

    def test_show_titles_only_from_page(self, service, add_record):
        add_record("contact", {"old": 1}, minutes=0)
        add_record("contact", {"new": 1}, minutes=1)

        result = service.show("contact", page=1, page_size=1)

        assert result.titles == ["new"]

    def test_show_hides_ignored_fields(self, service, add_record):
        add_record("contact", {"__internal": "x", "name": "Jo"})
        assert service.show("contact").titles == ["name"]

    def test_show_empty_page_returns_none(self, service, add_record):
        add_record("contact", {"i": 1})
        assert service.show("contact", page=2) is None
        assert service.show("unknown") is None

    @pytest.mark.parametrize("page,page_size", [(0, None), (-1, None), (1, 0)])
    def test_show_invalid_window(self, service, page, page_size):
        with pytest.raises(ValidationError):
            service.show("contact", page=page, page_size=page_size)


class TestBuildPages:
    """Pagination link flags."""

    def test_flags(self):
        pages = build_pages(2, 3)

        assert [p.page_number for p in pages] == [1, 2, 3]
        assert [p.is_current for p in pages] == [False, True, False]
        assert pages[0].is_first and not pages[1].is_first
        assert pages[2].is_last and not pages[1].is_last

    def test_single_page_is_first_and_last(self):
        (page,) = build_pages(1, 1)
        assert page.is_first and page.is_last and page.is_current

    def test_no_pages(self):
        assert build_pages(1, 0) == []


# =============================================================
# TEST: Deletion
# =============================================================

class TestDelete:
    """Removing submissions through the service."""

    def test_delete_returns_identifier(self, service, repository, add_record):
        record = add_record("contact", {"i": 1})

        assert service.delete(record.id) == "contact"
        assert repository.count_by_identifier("contact") == 0

    def test_delete_unknown(self, service):
        with pytest.raises(RecordNotFoundError):
            service.delete(uuid4())

    def test_delete_all_with_resources(self, service, repository, resource_store, add_record):
        reference, _ = resource_store.store(UploadedResource("a.txt", b"a"))
        add_record("jobs", {"file": reference})
        add_record("jobs", {"file": None}, minutes=1)

        assert service.delete_all("jobs", remove_attached_resources=True) == 2
        assert not resource_store.exists(reference)


# =============================================================
# TEST: Export
# =============================================================

class TestExport:
    """Building export files."""

    def test_export_xlsx(self, service, add_record):
        for i in range(5):
            add_record("contact", {"i": i}, minutes=i)
        add_record("contact", {"i": 5, "extra": "x"}, minutes=5)

        export = service.export("contact", "xlsx")

        assert export.filename == "Database-Storage-contact.xlsx"
        assert export.media_type == EXPORT_FORMATS["xlsx"].media_type
        assert export.row_count == 6
        sheet = load_workbook(io.BytesIO(export.content)).active
        assert [c.value for c in sheet[1]] == ["i", "extra"]
        assert sheet.max_row == 7

    def test_export_with_datetime(self, service, add_record):
        add_record("contact", {"i": 1})

        export = service.export("contact", "csv", include_datetime=True)

        header = export.content.decode("utf-8").splitlines()[0]
        assert header == f"i,{DATETIME_LABEL}"
        assert "2024-03-01 12:00:00" in export.content.decode("utf-8")

    def test_export_unknown_identifier_header_only(self, service):
        export = service.export("unknown", "csv")
        assert export.row_count == 0

    def test_export_headers(self, service, add_record):
        add_record("contact", {"i": 1})
        export = service.export("contact", "ods")
        assert export.headers["Content-Disposition"] == 'attachment; filename="Database-Storage-contact.ods"'

    def test_unsupported_format_checked_before_database(self, config):
        repository = MagicMock()
        service = DatabaseStorageService(repository, config)

        with pytest.raises(UnsupportedFormatError):
            service.export("contact", "bogus")

        repository.iter_all.assert_not_called()
        repository.find_all.assert_not_called()

    def test_writer_failure_becomes_export_error(self, service, add_record, monkeypatch):
        add_record("contact", {"i": 1})

        def broken_writer(grid, metadata):
            raise RuntimeError("disk full")

        monkeypatch.setitem(
            EXPORT_FORMATS, "csv", ExportFormat("csv", "csv", "text/csv", broken_writer)
        )

        with pytest.raises(ExportError) as exc_info:
            service.export("contact", "csv")
        assert exc_info.value.export_format == "csv"
        assert exc_info.value.identifier == "contact"
