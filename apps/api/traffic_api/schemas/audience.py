"""Pydantic schemas for manual audiences."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class ManualAudienceCreate(BaseModel):
    """Admin upload of a contact list as a manual audience."""
    name: str = Field(..., min_length=1, max_length=255)
    # A list of contacts, or an object holding one under contacts/Data/data/records
    data: Any
    request_id: UUID | None = None


class ManualAudienceCreated(BaseModel):
    success: bool = True
    audience_id: str
    request_id: UUID
    total_records: int


class ClearContactsRequest(BaseModel):
    audience_id: str = Field(..., min_length=1)


class ClearContactsResponse(BaseModel):
    success: bool = True
    deleted: int


class AudienceContactsPage(BaseModel):
    """One page of an audience's flattened contacts."""
    id: str
    name: str
    total_records: int
    contacts: list[dict[str, Any]]
    page: int
    total_pages: int
    created_at: datetime
    uploaded_at: str | None = None
    is_manual: bool = True


class AudienceCountsResponse(BaseModel):
    counts: dict[str, int]


class DeleteAudienceResponse(BaseModel):
    success: bool = True
    deleted_contacts: int
