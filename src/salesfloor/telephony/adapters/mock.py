"""
In-memory telephony provider for development and tests.
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID, uuid4

from salesfloor.telephony.events import CallEvent, CallEventType
from salesfloor.telephony.interface import (
    CallInitiationError,
    CallInitiationRequest,
    CallInitiationResponse,
    CallStatus,
    TelephonyProvider,
    WebhookParseError,
)


class MockTelephonyProvider(TelephonyProvider):
    """Records requests instead of dialing.

    Webhook payloads use the domain shape directly:
    ``{"event_type": "call.answered", "provider_call_id": "...", ...}``.
    """

    name = "mock"

    def __init__(self, fail_with: str | None = None) -> None:
        self.fail_with = fail_with
        self.requests: list[CallInitiationRequest] = []

    async def initiate_call(self, request: CallInitiationRequest) -> CallInitiationResponse:
        self.requests.append(request)
        if self.fail_with is not None:
            raise CallInitiationError(self.fail_with, error_code="mock_failure")
        return CallInitiationResponse(
            provider_call_id=f"mock-{uuid4().hex}",
            status=CallStatus.QUEUED,
        )

    def parse_webhook_event(self, payload: dict[str, Any]) -> CallEvent:
        try:
            event_type = CallEventType(payload["event_type"])
            provider_call_id = str(payload["provider_call_id"])
            attempt_id = payload.get("call_attempt_id")
            attempt_uuid = UUID(attempt_id) if attempt_id else None
        except (KeyError, ValueError) as e:
            raise WebhookParseError(f"Invalid mock webhook payload: {e}") from e

        return CallEvent(
            event_type=event_type,
            provider=self.name,
            provider_call_id=provider_call_id,
            call_attempt_id=attempt_uuid,
            duration_seconds=payload.get("duration_seconds"),
            outcome=payload.get("outcome"),
            recording_url=payload.get("recording_url"),
        )

    def validate_webhook_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        url: str,
    ) -> bool:
        return True
