"""
Twilio telephony provider adapter.
"""

import base64
import hashlib
import hmac
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl, urlencode
from uuid import UUID

import httpx

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

# Mapping from Twilio status to our domain event types
TWILIO_STATUS_MAP: dict[str, CallEventType] = {
    "queued": CallEventType.INITIATED,
    "initiated": CallEventType.INITIATED,
    "ringing": CallEventType.RINGING,
    "in-progress": CallEventType.ANSWERED,
    "answered": CallEventType.ANSWERED,
    "completed": CallEventType.COMPLETED,
    "busy": CallEventType.BUSY,
    "no-answer": CallEventType.NO_ANSWER,
    "failed": CallEventType.FAILED,
    "canceled": CallEventType.FAILED,
}

TWILIO_OUTCOME_MAP: dict[str, str] = {
    "completed": "completed",
    "busy": "busy",
    "no-answer": "no_answer",
    "failed": "failed",
    "canceled": "canceled",
}

SIGNATURE_HEADER = "X-Twilio-Signature"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _parse_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError as e:
        raise WebhookParseError(f"Invalid UUID in callback metadata: {value}") from e


class TwilioAdapter(TelephonyProvider):
    """Twilio telephony provider adapter.

    Places calls through the REST API and understands status and recording
    callbacks. Call attempt identifiers travel in the callback query string.
    """

    name = "twilio"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        base_url: str = "https://api.twilio.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Twilio adapter.

        Args:
            account_sid: Twilio account SID.
            auth_token: Twilio auth token.
            base_url: Twilio API base URL.
            timeout: HTTP request timeout in seconds.
            transport: Optional httpx transport override.
        """
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                auth=(self._account_sid, self._auth_token),
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def initiate_call(
        self,
        request: CallInitiationRequest,
    ) -> CallInitiationResponse:
        """Initiate an outbound call via Twilio.

        Args:
            request: Call initiation request.

        Returns:
            Response with provider call ID.

        Raises:
            CallInitiationError: If call initiation fails.
        """
        client = await self._get_client()
        url = f"{self._base_url}/2010-04-01/Accounts/{self._account_sid}/Calls.json"
        callback = f"{request.callback_url}?{urlencode(request.callback_metadata())}"

        form_data: dict[str, Any] = {
            "To": request.to,
            "From": request.from_number,
            "StatusCallback": callback,
            "StatusCallbackMethod": "POST",
            "StatusCallbackEvent": ["initiated", "ringing", "answered", "completed"],
        }
        if request.record:
            form_data["Record"] = "true"
            form_data["RecordingStatusCallback"] = callback
            form_data["RecordingStatusCallbackEvent"] = "completed"

        logger.info(
            "Initiating Twilio call",
            extra={
                "call_attempt_id": str(request.call_attempt_id),
                "prospect_id": str(request.prospect_id),
            },
        )

        try:
            response = await client.post(url, data=form_data)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            try:
                error_data = e.response.json()
            except ValueError:
                error_data = {"body": e.response.text}

            logger.error(
                "Twilio call initiation failed",
                extra={
                    "call_attempt_id": str(request.call_attempt_id),
                    "status_code": e.response.status_code,
                    "error": error_data,
                },
            )
            raise CallInitiationError(
                message=f"Twilio API error: {e.response.status_code}",
                error_code=str(error_data.get("code", "unknown")),
                provider_response=error_data,
            ) from e
        except httpx.RequestError as e:
            logger.error(
                "Twilio request failed",
                extra={"call_attempt_id": str(request.call_attempt_id), "error": str(e)},
            )
            raise CallInitiationError(message=f"Twilio request failed: {e}") from e

        try:
            status = CallStatus(str(data.get("status", "queued")).replace("-", "_"))
        except ValueError:
            status = CallStatus.QUEUED

        return CallInitiationResponse(
            provider_call_id=data["sid"],
            status=status,
            raw_response=data,
        )

    def parse_webhook_event(
        self,
        payload: dict[str, Any],
    ) -> CallEvent:
        """Parse a Twilio status or recording callback into a CallEvent.

        Args:
            payload: Callback form data merged with its query parameters.

        Raises:
            WebhookParseError: If required fields are missing.
        """
        provider_call_id = payload.get("CallSid")
        if not provider_call_id:
            raise WebhookParseError("Missing CallSid in webhook payload")

        call_attempt_id = _parse_uuid(payload.get("call_attempt_id"))
        prospect_id = _parse_uuid(payload.get("prospect_id"))

        if payload.get("RecordingUrl"):
            return CallEvent(
                event_type=CallEventType.RECORDING_SAVED,
                provider=self.name,
                provider_call_id=provider_call_id,
                call_attempt_id=call_attempt_id,
                prospect_id=prospect_id,
                recording_url=payload["RecordingUrl"],
                raw_status=payload.get("RecordingStatus"),
                metadata={"recording_sid": payload.get("RecordingSid")},
            )

        call_status = str(payload.get("CallStatus", "")).lower()
        event_type = TWILIO_STATUS_MAP.get(call_status)
        if event_type is None:
            logger.warning(
                "Unknown Twilio call status",
                extra={"status": call_status, "call_sid": provider_call_id},
            )
            event_type = CallEventType.FAILED

        duration_str = payload.get("CallDuration")
        try:
            duration_seconds = int(duration_str) if duration_str else None
        except ValueError:
            duration_seconds = None

        return CallEvent(
            event_type=event_type,
            provider=self.name,
            provider_call_id=provider_call_id,
            call_attempt_id=call_attempt_id,
            prospect_id=prospect_id,
            timestamp=datetime.now(timezone.utc),
            duration_seconds=duration_seconds,
            outcome=TWILIO_OUTCOME_MAP.get(call_status) if event_type.is_terminal else None,
            error_code=payload.get("ErrorCode"),
            raw_status=call_status,
            metadata={
                "from": payload.get("From"),
                "to": payload.get("To"),
                "direction": payload.get("Direction"),
                "answered_by": payload.get("AnsweredBy"),
            },
        )

    def validate_webhook_signature(
        self,
        body: bytes,
        headers: Mapping[str, str],
        url: str,
    ) -> bool:
        """Validate the ``X-Twilio-Signature`` header.

        Twilio signs the full callback URL followed by the POST parameters
        sorted by name, using HMAC-SHA1 keyed with the auth token.
        """
        signature = _header(headers, SIGNATURE_HEADER)
        if not signature or not url:
            return False

        try:
            params = parse_qsl(body.decode("utf-8"), keep_blank_values=True)
        except UnicodeDecodeError:
            return False

        signature_string = url + "".join(key + value for key, value in sorted(params))
        expected = hmac.new(
            self._auth_token.encode("utf-8"),
            signature_string.encode("utf-8"),
            hashlib.sha1,
        ).digest()
        expected_b64 = base64.b64encode(expected).decode("utf-8")
        return hmac.compare_digest(expected_b64, signature)
