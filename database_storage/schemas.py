"""
Pydantic Schemas for the Database Storage API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# =============================================================
# LISTING
# =============================================================

class IdentifierListResponse(BaseModel):
    """Storage identifiers currently in use."""
    identifiers: List[str]


class PageLinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    page_number: int
    is_current: bool
    is_first: bool
    is_last: bool


class EntryResponse(BaseModel):
    """One stored submission, rendered for display."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    timestamp: datetime
    formatted_timestamp: str = Field(..., description="Timestamp formatted with the configured pattern")
    values: Dict[str, Any]


class ShowResponse(BaseModel):
    identifier: str
    titles: List[str]
    entries: List[EntryResponse]
    datetime_format: str
    total_entries_count: int
    current_page: int
    items_per_page: int
    number_of_pages: int
    pages: List[PageLinkResponse]
    notice: Optional[str] = None


# =============================================================
# DELETION
# =============================================================

class DeleteAllResponse(BaseModel):
    identifier: str
    count: int
    message: str

