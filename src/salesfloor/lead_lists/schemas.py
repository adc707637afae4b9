"""
Pydantic schemas for lead lists.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class LeadListCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    prospect_ids: list[UUID] = Field(default_factory=list)


class LeadListUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    prospect_ids: list[UUID] | None = Field(
        default=None,
        description="When present, replaces the list members",
    )


class ProspectIdsRequest(BaseModel):
    prospect_ids: list[UUID] = Field(..., min_length=1)


class ShareRequest(BaseModel):
    user_id: UUID
    can_view: bool = True
    can_edit: bool = False


class LeadListResponse(BaseModel):
    id: UUID
    name: str
    description: str | None
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime
    prospect_ids: list[UUID]
    prospect_count: int
    is_owner: bool
    can_view: bool
    can_edit: bool


class LeadListSummary(BaseModel):
    id: UUID
    name: str
    description: str | None
    created_by: UUID | None
    created_at: datetime
    prospect_count: int
    is_owner: bool
    can_view: bool
    can_edit: bool


class MembershipChangeResponse(BaseModel):
    list_id: UUID
    changed: int


class ShareResponse(BaseModel):
    id: UUID
    list_id: UUID
    user_id: UUID
    can_view: bool
    can_edit: bool
    shared_by: UUID | None
    created_at: datetime
    user_email: str | None = None
    user_name: str | None = None
