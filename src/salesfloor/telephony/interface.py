"""
Telephony provider interface definition.

Vendors (Twilio, Telnyx) sit behind ``TelephonyProvider``; the call
lifecycle only ever talks to this interface.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID

from salesfloor.telephony.events import CallEvent


class CallStatus(str, Enum):
    """Call status values reported at initiation time."""

    QUEUED = "queued"
    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CallInitiationRequest:
    """Request to initiate an outbound call."""

    to: str
    from_number: str
    callback_url: str
    call_attempt_id: UUID
    prospect_id: UUID
    record: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)

    def callback_metadata(self) -> dict[str, str]:
        """Identifiers echoed back by the provider on every webhook."""
        return {
            "call_attempt_id": str(self.call_attempt_id),
            "prospect_id": str(self.prospect_id),
            **{k: str(v) for k, v in self.metadata.items()},
        }


@dataclass(frozen=True)
class CallInitiationResponse:
    """Response from call initiation."""

    provider_call_id: str
    status: CallStatus
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw_response: dict[str, Any] = field(default_factory=dict)


class TelephonyProviderError(Exception):
    """Base exception for telephony provider errors."""

    code = "TELEPHONY_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.provider_response = provider_response or {}


class CallInitiationError(TelephonyProviderError):
    """Error during call initiation."""


class WebhookParseError(TelephonyProviderError):
    """Error parsing webhook event."""


class TelephonyProvider(ABC):
    """Abstract interface for telephony providers."""

    name: str = "unknown"

    @abstractmethod
    async def initiate_call(
        self,
        request: CallInitiationRequest,
    ) -> CallInitiationResponse:
        """Initiate an outbound call.

        Raises:
            CallInitiationError: If the provider rejects the call or is unreachable.
        """
        ...

    @abstractmethod
    def parse_webhook_event(
        self,
        payload: dict[str, Any],
    ) -> CallEvent:
        """Parse a webhook payload from the provider.

        Raises:
            WebhookParseError: If required fields are missing.
        """
        ...

    @abstractmethod
    def validate_webhook_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        url: str,
    ) -> bool:
        """Validate webhook signature for authenticity."""
        ...

    async def close(self) -> None:
        """Release HTTP resources, if any."""
        return None
