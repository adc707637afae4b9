"""
Telnyx Call Control telephony provider adapter.
"""

import base64
import binascii
import json
import time
from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from salesfloor.shared.logging import get_logger
from salesfloor.telephony.events import CallEvent, CallEventType
from salesfloor.telephony.interface import (
    CallInitiationError,
    CallInitiationRequest,
    CallInitiationResponse,
    CallStatus,
    TelephonyProvider,
    WebhookParseError,
)

logger = get_logger(__name__)

TELNYX_EVENT_MAP: dict[str, CallEventType] = {
    "call.initiated": CallEventType.INITIATED,
    "call.answered": CallEventType.ANSWERED,
    "call.bridged": CallEventType.ANSWERED,
    "call.hangup": CallEventType.COMPLETED,
    "call.recording.saved": CallEventType.RECORDING_SAVED,
}

# Hangup cause -> outcome recorded on the call attempt
HANGUP_CAUSE_OUTCOMES: dict[str, str] = {
    "normal_clearing": "customer_hangup",
    "originator_cancel": "agent_hangup",
    "user_busy": "busy",
    "no_user_response": "no_answer",
    "no_answer": "no_answer",
    "call_rejected": "call_rejected",
    "invalid_number_format": "invalid_number",
    "unallocated_number": "invalid_number",
    "destination_out_of_order": "failed",
    "network_out_of_order": "network_error",
    "recovery_on_timer_expire": "timeout",
    "normal_temporary_failure": "failed",
}

_OUTCOME_EVENTS: dict[str, CallEventType] = {
    "busy": CallEventType.BUSY,
    "no_answer": CallEventType.NO_ANSWER,
    "call_rejected": CallEventType.FAILED,
    "invalid_number": CallEventType.FAILED,
    "failed": CallEventType.FAILED,
    "network_error": CallEventType.FAILED,
    "timeout": CallEventType.FAILED,
}

SIGNATURE_HEADER = "telnyx-signature-ed25519"
TIMESTAMP_HEADER = "telnyx-timestamp"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def encode_client_state(data: dict[str, str]) -> str:
    return base64.b64encode(json.dumps(data).encode("utf-8")).decode("ascii")


def decode_client_state(value: str | None) -> dict[str, Any]:
    if not value:
        return {}
    try:
        decoded = json.loads(base64.b64decode(value).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError):
        logger.warning("Undecodable Telnyx client_state", extra={"client_state": value})
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _parse_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError as e:
        raise WebhookParseError(f"Invalid UUID in client_state: {value}") from e


class TelnyxAdapter(TelephonyProvider):
    """Telnyx Call Control adapter.

    Call attempt identifiers travel in ``client_state`` (base64 JSON), which
    Telnyx echoes back on every webhook for the call.
    """

    name = "telnyx"

    def __init__(
        self,
        api_key: str,
        connection_id: str,
        public_key: str = "",
        base_url: str = "https://api.telnyx.com",
        timeout: float = 30.0,
        signature_tolerance_seconds: int = 300,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._connection_id = connection_id
        self._public_key = public_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._tolerance = signature_tolerance_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def initiate_call(
        self,
        request: CallInitiationRequest,
    ) -> CallInitiationResponse:
        """Dial through ``POST /v2/calls``.

        Raises:
            CallInitiationError: If the API rejects the call or is unreachable.
        """
        client = await self._get_client()
        body: dict[str, Any] = {
            "connection_id": self._connection_id,
            "to": request.to,
            "from": request.from_number,
            "webhook_url": request.callback_url,
            "webhook_url_method": "POST",
            "client_state": encode_client_state(request.callback_metadata()),
        }
        if request.record:
            body.update(
                {
                    "record": "record-from-answer",
                    "record_format": "mp3",
                    "record_channels": "dual",
                }
            )

        logger.info(
            "Initiating Telnyx call",
            extra={
                "call_attempt_id": str(request.call_attempt_id),
                "prospect_id": str(request.prospect_id),
            },
        )

        try:
            response = await client.post("/v2/calls", json=body)
            response.raise_for_status()
            data = response.json().get("data", {})
        except httpx.HTTPStatusError as e:
            try:
                error_data = e.response.json()
            except ValueError:
                error_data = {"body": e.response.text}
            errors = error_data.get("errors") or [{}]

            logger.error(
                "Telnyx call initiation failed",
                extra={
                    "call_attempt_id": str(request.call_attempt_id),
                    "status_code": e.response.status_code,
                    "error": error_data,
                },
            )
            raise CallInitiationError(
                message=f"Telnyx API error: {e.response.status_code}",
                error_code=str(errors[0].get("code", "unknown")),
                provider_response=error_data,
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "Telnyx request failed",
                extra={"call_attempt_id": str(request.call_attempt_id), "error": str(e)},
            )
            raise CallInitiationError(message=f"Telnyx request failed: {e}") from e

        call_control_id = data.get("call_control_id")
        if not call_control_id:
            raise CallInitiationError(
                message="Telnyx response missing call_control_id",
                provider_response=data,
            )

        return CallInitiationResponse(
            provider_call_id=call_control_id,
            status=CallStatus.INITIATED,
            raw_response=data,
        )

    def parse_webhook_event(
        self,
        payload: dict[str, Any],
    ) -> CallEvent:
        """Parse a Telnyx webhook envelope into a CallEvent.

        Raises:
            WebhookParseError: On a malformed envelope or an event type that
                has no lifecycle meaning.
        """
        data = payload.get("data") or {}
        event_name = data.get("event_type")
        body = data.get("payload") or {}
        provider_call_id = body.get("call_control_id")
        if not event_name or not provider_call_id:
            raise WebhookParseError("Missing event_type or call_control_id in webhook payload")

        event_type = TELNYX_EVENT_MAP.get(event_name)
        if event_type is None:
            raise WebhookParseError(
                f"Unsupported Telnyx event type: {event_name}",
                error_code="unsupported_event",
            )

        state = decode_client_state(body.get("client_state"))
        occurred_at = _parse_time(data.get("occurred_at"))

        outcome = None
        duration_seconds = None
        if event_name == "call.hangup":
            cause = body.get("hangup_cause")
            outcome = HANGUP_CAUSE_OUTCOMES.get(cause or "", "unknown")
            event_type = _OUTCOME_EVENTS.get(outcome, CallEventType.COMPLETED)
            started = _parse_time(body.get("start_time"))
            ended = _parse_time(body.get("end_time"))
            if started and ended:
                duration_seconds = max(int((ended - started).total_seconds()), 0)

        recording_url = None
        if event_type == CallEventType.RECORDING_SAVED:
            urls = body.get("recording_urls") or body.get("public_recording_urls") or {}
            recording_url = urls.get("mp3") or urls.get("wav")

        extra: dict[str, Any] = {
            "call_attempt_id": _parse_uuid(state.get("call_attempt_id")),
            "prospect_id": _parse_uuid(state.get("prospect_id")),
        }
        if occurred_at is not None:
            extra["timestamp"] = occurred_at

        return CallEvent(
            event_type=event_type,
            provider=self.name,
            provider_call_id=provider_call_id,
            duration_seconds=duration_seconds,
            outcome=outcome,
            recording_url=recording_url,
            raw_status=event_name,
            metadata={
                "hangup_cause": body.get("hangup_cause"),
                "hangup_source": body.get("hangup_source"),
                "recording_id": body.get("recording_id"),
            },
            **extra,
        )

    def validate_webhook_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        url: str,
    ) -> bool:
        """Verify the Ed25519 signature over ``"{timestamp}|{body}"``."""
        signature = _header(headers, SIGNATURE_HEADER)
        timestamp = _header(headers, TIMESTAMP_HEADER)
        if not signature or not timestamp or not self._public_key:
            return False

        try:
            if abs(time.time() - int(timestamp)) > self._tolerance:
                logger.warning("Stale Telnyx webhook timestamp", extra={"timestamp": timestamp})
                return False
            key = Ed25519PublicKey.from_public_bytes(base64.b64decode(self._public_key))
            key.verify(base64.b64decode(signature), timestamp.encode("utf-8") + b"|" + body)
        except (InvalidSignature, ValueError, binascii.Error):
            return False
        return True
