"""
Pydantic schemas for call lifecycle endpoints.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from salesfloor.calls.models import CallDirection, CallState


class AdmissionResponse(BaseModel):
    """Answer to "may this prospect be dialed now?"."""

    allowed: bool
    reason: str | None = None
    last_call_at: datetime | None = None
    retry_after_seconds: int | None = None


class StartCallRequest(BaseModel):
    """Agent-dialed call start."""

    phone_number: str | None = Field(
        default=None,
        max_length=50,
        description="Number being dialed; defaults to the prospect's phone",
    )
    from_number: str | None = Field(
        default=None,
        max_length=50,
        description="Caller ID presented to the prospect",
    )


class PlaceCallRequest(BaseModel):
    """Provider-dialed call start."""

    phone_number: str | None = Field(default=None, max_length=50)
    from_number: str | None = Field(
        default=None,
        max_length=50,
        description="Overrides the provider's configured from number",
    )


class EndCallRequest(BaseModel):
    call_attempt_id: UUID
    outcome: str = Field(..., min_length=1, max_length=100)
    duration_seconds: int = Field(default=0, ge=0)
    notes: str | None = None
    recording_ref: str | None = Field(default=None, max_length=500)


class CallAttemptResponse(BaseModel):
    """Call attempt as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    prospect_id: UUID
    caller_id: UUID
    phone_number: str
    from_number: str | None
    direction: CallDirection
    state: CallState
    started_at: datetime
    connected_at: datetime | None
    ended_at: datetime | None
    outcome: str | None
    duration_seconds: int
    notes: str | None
    recording_ref: str | None
    provider: str | None
    provider_call_id: str | None


class ActiveCallResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    call_attempt_id: UUID
    prospect_id: UUID
    prospect_name: str
    phone_number: str
    caller_id: UUID
    caller_name: str | None
    state: CallState
    started_at: datetime
    connected_at: datetime | None


class ActiveCallListResponse(BaseModel):
    items: list[ActiveCallResponse]
    total: int


class CallAttemptListResponse(BaseModel):
    items: list[CallAttemptResponse]
    total: int


class VoicemailDropRequest(BaseModel):
    call_attempt_id: UUID
    voicemail_ref: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Identifier of the prerecorded voicemail that was played",
    )


class VoicemailDropResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    call_attempt_id: UUID
    prospect_id: UUID
    dropped_by: UUID | None
    voicemail_ref: str
    dropped_at: datetime
