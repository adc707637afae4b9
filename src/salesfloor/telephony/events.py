"""
Domain event models for telephony call events.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CallEventType(str, Enum):
    """Types of call events from telephony provider."""

    INITIATED = "call.initiated"
    RINGING = "call.ringing"
    ANSWERED = "call.answered"
    COMPLETED = "call.completed"
    FAILED = "call.failed"
    NO_ANSWER = "call.no_answer"
    BUSY = "call.busy"
    RECORDING_SAVED = "call.recording_saved"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_EVENTS


_TERMINAL_EVENTS = frozenset(
    {
        CallEventType.COMPLETED,
        CallEventType.FAILED,
        CallEventType.NO_ANSWER,
        CallEventType.BUSY,
    }
)

# Outcome recorded on the call attempt when a terminal event carries none.
DEFAULT_OUTCOMES: dict[CallEventType, str] = {
    CallEventType.COMPLETED: "completed",
    CallEventType.FAILED: "failed",
    CallEventType.NO_ANSWER: "no_answer",
    CallEventType.BUSY: "busy",
}


class CallEvent(BaseModel):
    """Domain model for a telephony call event.

    Parsed from provider-specific webhook payloads into a
    normalized domain representation.
    """

    model_config = ConfigDict(frozen=True)

    event_type: CallEventType = Field(
        ...,
        description="Type of call event",
    )
    provider: str = Field(
        ...,
        description="Provider that emitted the event",
    )
    provider_call_id: str = Field(
        ...,
        description="Provider's unique call identifier",
    )
    call_attempt_id: UUID | None = Field(
        default=None,
        description="Call attempt UUID echoed back from call metadata",
    )
    prospect_id: UUID | None = Field(
        default=None,
        description="Prospect UUID echoed back from call metadata",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Event timestamp",
    )
    duration_seconds: int | None = Field(
        default=None,
        description="Call duration in seconds (for ended calls)",
    )
    outcome: str | None = Field(
        default=None,
        description="Outcome derived from the provider hangup cause",
    )
    recording_url: str | None = Field(
        default=None,
        description="Recording location (recording events only)",
    )
    error_code: str | None = Field(default=None)
    raw_status: str | None = Field(
        default=None,
        description="Raw status from provider",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event metadata",
    )

    def resolved_outcome(self) -> str:
        return self.outcome or DEFAULT_OUTCOMES.get(self.event_type, "completed")
