"""
FastAPI Router for Database Storage Endpoints.

Provides the administrative API for stored form submissions:
- List storage identifiers
- Page through submissions
- Delete one or all submissions
- Export submissions as a spreadsheet download
"""

from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.orm import Session

from database.engine import get_session
from database_storage.config import DatabaseStorageConfig
from database_storage.exceptions import ExportError, UnsupportedFormatError
from database_storage.schemas import (
    DeleteAllResponse,
    EntryResponse,
    IdentifierListResponse,
    PageLinkResponse,
    ShowResponse,
)
from database_storage.service import DatabaseStorageService
from storage.repositories.database_storage import DatabaseStorageRepository, as_utc
from storage.repositories.exceptions import (
    PersistenceFailure,
    RecordNotFoundError,
    ValidationError,
)
from storage.resources import LocalResourceStore

router = APIRouter(prefix="/database-storage", tags=["Database Storage"])

ENTRY_REMOVED = "The entry has been removed."
ENTRIES_REMOVED = "All entries have been removed."


# =============================================================
# HELPER: Dependencies
# =============================================================

def get_db():
    db = get_session()
    try:
        yield db
    finally:
        db.close()


@lru_cache(maxsize=1)
def get_config() -> DatabaseStorageConfig:
    return DatabaseStorageConfig.from_env()


def get_resource_store(config: DatabaseStorageConfig = Depends(get_config)) -> LocalResourceStore:
    return LocalResourceStore(config.resource_path, config.resource_base_url)


def get_storage_service(
    db: Session = Depends(get_db),
    config: DatabaseStorageConfig = Depends(get_config),
    resource_store: LocalResourceStore = Depends(get_resource_store),
) -> DatabaseStorageService:
    repository = DatabaseStorageRepository(db, resource_store, config.export_batch_size)
    return DatabaseStorageService(repository, config)


def _persistence_error(e: PersistenceFailure) -> HTTPException:
    return HTTPException(status_code=500, detail=str(e))


# =============================================================
# LISTING ENDPOINTS
# =============================================================

@router.get("/", response_model=IdentifierListResponse, name="database_storage_index")
def index(service: DatabaseStorageService = Depends(get_storage_service)):
    """List all storage identifiers with stored submissions."""
    try:
        return IdentifierListResponse(identifiers=service.index())
    except PersistenceFailure as e:
        raise _persistence_error(e)


@router.get("/{identifier}", response_model=ShowResponse, name="database_storage_show")
def show(
    request: Request,
    identifier: str,
    page: int = Query(1, description="Page number, starting at 1"),
    notice: Optional[str] = Query(None, description="Acknowledgment of a previous action"),
    service: DatabaseStorageService = Depends(get_storage_service),
):
    """
    One page of submissions, most recent first.

    An empty page (unknown identifier, or a page past the last
    one) redirects to the identifier index.
    """
    try:
        result = service.show(identifier, page)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PersistenceFailure as e:
        raise _persistence_error(e)

    if result is None:
        return RedirectResponse(
            url=str(request.url_for("database_storage_index")),
            status_code=status.HTTP_303_SEE_OTHER,
        )

    return ShowResponse(
        identifier=result.identifier,
        titles=result.titles,
        entries=[
            EntryResponse(
                id=entry.id,
                timestamp=as_utc(entry.timestamp),
                formatted_timestamp=as_utc(entry.timestamp).strftime(result.datetime_format),
                values=entry.values,
            )
            for entry in result.entries
        ],
        datetime_format=result.datetime_format,
        total_entries_count=result.total_entries_count,
        current_page=result.current_page,
        items_per_page=result.items_per_page,
        number_of_pages=result.number_of_pages,
        pages=[PageLinkResponse.model_validate(p) for p in result.pages],
        notice=notice,
    )


# =============================================================
# DELETION ENDPOINTS
# =============================================================

@router.post("/entry/{entry_id}/delete", name="database_storage_delete")
def delete_entry(
    request: Request,
    entry_id: UUID,
    remove_attached_resources: bool = Query(False),
    service: DatabaseStorageService = Depends(get_storage_service),
):
    """Delete one submission and go back to its listing."""
    try:
        identifier = service.delete(entry_id, remove_attached_resources)
    except RecordNotFoundError:
        raise HTTPException(status_code=404, detail=f"Entry {entry_id} not found")
    except PersistenceFailure as e:
        raise _persistence_error(e)

    url = request.url_for("database_storage_show", identifier=identifier)
    return RedirectResponse(
        url=str(url.include_query_params(notice=ENTRY_REMOVED)),
        status_code=status.HTTP_303_SEE_OTHER,
    )


@router.post("/{identifier}/delete-all", response_model=DeleteAllResponse, name="database_storage_delete_all")
def delete_all(
    request: Request,
    identifier: str,
    redirect: bool = Query(False, description="Redirect to the index afterwards"),
    remove_attached_resources: bool = Query(False),
    service: DatabaseStorageService = Depends(get_storage_service),
):
    """Delete every submission of a storage identifier."""
    try:
        count = service.delete_all(identifier, remove_attached_resources)
    except PersistenceFailure as e:
        raise _persistence_error(e)

    if redirect:
        url = request.url_for("database_storage_index")
        return RedirectResponse(
            url=str(url.include_query_params(notice=ENTRIES_REMOVED)),
            status_code=status.HTTP_303_SEE_OTHER,
        )
    return DeleteAllResponse(identifier=identifier, count=count, message=ENTRIES_REMOVED)


# =============================================================
# EXPORT ENDPOINT
# =============================================================

@router.get("/{identifier}/export", name="database_storage_export")
def export(
    identifier: str,
    export_format: str = Query("xlsx", alias="format", description="xls, xlsx, ods, csv or html"),
    include_datetime: bool = Query(False, description="Append a DateTime column"),
    service: DatabaseStorageService = Depends(get_storage_service),
):
    """Download all submissions of an identifier as a spreadsheet."""
    try:
        export_file = service.export(identifier, export_format, include_datetime)
    except UnsupportedFormatError as e:
        raise HTTPException(status_code=400, detail=e.to_dict())
    except ExportError as e:
        raise HTTPException(status_code=500, detail=e.to_dict())
    except PersistenceFailure as e:
        raise _persistence_error(e)

    return Response(
        content=export_file.content,
        media_type=export_file.media_type,
        headers=export_file.headers,
    )
