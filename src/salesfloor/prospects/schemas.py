"""
Pydantic schemas for prospect management.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from salesfloor.prospects.models import ProspectStatus


class ProspectBase(BaseModel):
    """Base prospect schema with common fields."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    company: str | None = Field(default=None, max_length=255)
    title: str | None = Field(default=None, max_length=255)
    phone: str = Field(
        ...,
        max_length=50,
        description="Phone number in E.164 format",
    )
    email: EmailStr | None = Field(default=None)
    timezone: str | None = Field(default=None, max_length=50)
    notes: str | None = None


class ProspectCreate(ProspectBase):
    status: ProspectStatus = ProspectStatus.NEW


class ProspectUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    company: str | None = Field(default=None, max_length=255)
    title: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    email: EmailStr | None = None
    status: ProspectStatus | None = None
    timezone: str | None = Field(default=None, max_length=50)
    notes: str | None = None


class ProspectResponse(ProspectBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str | None = None
    status: ProspectStatus
    last_call_at: datetime | None
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime


class ProspectListResponse(BaseModel):
    items: list[ProspectResponse]
    total: int
    page: int
    page_size: int
    pages: int


class StatusChangeRequest(BaseModel):
    status: ProspectStatus
    reason: str | None = Field(default=None, max_length=1000)


class StatusChangeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    prospect_id: UUID
    old_status: str | None
    new_status: str
    changed_by: UUID | None
    reason: str | None
    created_at: datetime


class AssignLeadRequest(BaseModel):
    assigned_to: UUID
    expires_at: datetime | None = None


class LeadAssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    prospect_id: UUID
    assigned_to: UUID
    assigned_by: UUID | None
    assigned_at: datetime
    expires_at: datetime | None
    is_active: bool
