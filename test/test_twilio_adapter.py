"""Tests for the Twilio telephony adapter."""

import base64
import hashlib
import hmac
from urllib.parse import parse_qs, urlencode, urlsplit
from uuid import uuid4

import httpx
import pytest

from salesfloor.telephony.adapters.twilio import TwilioAdapter
from salesfloor.telephony.events import CallEventType
from salesfloor.telephony.interface import (
    CallInitiationError,
    CallInitiationRequest,
    CallStatus,
    WebhookParseError,
)

AUTH_TOKEN = "test_auth_token_12345"
CALLBACK = "https://hooks.example.com/webhooks/telephony/twilio/events"


@pytest.fixture
def call_request() -> CallInitiationRequest:
    return CallInitiationRequest(
        to="+14155551234",
        from_number="+14155550000",
        callback_url=CALLBACK,
        call_attempt_id=uuid4(),
        prospect_id=uuid4(),
    )


def _adapter(handler=None) -> TwilioAdapter:
    transport = httpx.MockTransport(handler) if handler else None
    return TwilioAdapter(
        account_sid="AC_TEST_ACCOUNT_SID",
        auth_token=AUTH_TOKEN,
        transport=transport,
    )


def _sign(url: str, params: dict[str, str]) -> str:
    data = url + "".join(k + v for k, v in sorted(params.items()))
    digest = hmac.new(AUTH_TOKEN.encode(), data.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


class TestInitiateCall:
    @pytest.mark.asyncio
    async def test_success(self, call_request) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "CA123", "status": "queued"})

        adapter = _adapter(handler)
        response = await adapter.initiate_call(call_request)
        await adapter.close()

        assert response.provider_call_id == "CA123"
        assert response.status == CallStatus.QUEUED
        assert seen["url"].endswith("/2010-04-01/Accounts/AC_TEST_ACCOUNT_SID/Calls.json")
        form = seen["form"]
        assert form["To"] == ["+14155551234"]
        assert form["Record"] == ["true"]
        callback_query = parse_qs(urlsplit(form["StatusCallback"][0]).query)
        assert callback_query["call_attempt_id"] == [str(call_request.call_attempt_id)]
        assert callback_query["prospect_id"] == [str(call_request.prospect_id)]

    @pytest.mark.asyncio
    async def test_api_error(self, call_request) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"code": 21211, "message": "Invalid 'To' Phone Number"})

        with pytest.raises(CallInitiationError) as exc_info:
            await _adapter(handler).initiate_call(call_request)

        assert exc_info.value.error_code == "21211"
        assert "400" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_network_error(self, call_request) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(CallInitiationError):
            await _adapter(handler).initiate_call(call_request)


class TestParseWebhookEvent:
    def test_status_callbacks(self) -> None:
        adapter = _adapter()
        attempt_id = uuid4()

        for status, expected in [
            ("ringing", CallEventType.RINGING),
            ("in-progress", CallEventType.ANSWERED),
            ("completed", CallEventType.COMPLETED),
            ("busy", CallEventType.BUSY),
            ("no-answer", CallEventType.NO_ANSWER),
            ("canceled", CallEventType.FAILED),
        ]:
            event = adapter.parse_webhook_event(
                {"CallSid": "CA1", "CallStatus": status, "call_attempt_id": str(attempt_id)}
            )
            assert event.event_type == expected
            assert event.call_attempt_id == attempt_id

    def test_completed_carries_duration_and_outcome(self) -> None:
        event = _adapter().parse_webhook_event(
            {"CallSid": "CA1", "CallStatus": "no-answer", "CallDuration": "0"}
        )

        assert event.outcome == "no_answer"
        assert event.duration_seconds == 0

    def test_recording_callback(self) -> None:
        event = _adapter().parse_webhook_event(
            {
                "CallSid": "CA1",
                "RecordingUrl": "https://api.twilio.com/recordings/RE1",
                "RecordingStatus": "completed",
            }
        )

        assert event.event_type == CallEventType.RECORDING_SAVED
        assert event.recording_url == "https://api.twilio.com/recordings/RE1"

    def test_missing_call_sid(self) -> None:
        with pytest.raises(WebhookParseError):
            _adapter().parse_webhook_event({"CallStatus": "completed"})

    def test_bad_attempt_id(self) -> None:
        with pytest.raises(WebhookParseError):
            _adapter().parse_webhook_event({"CallSid": "CA1", "call_attempt_id": "nope"})


class TestSignature:
    def test_valid_signature(self) -> None:
        params = {"CallSid": "CA1", "CallStatus": "completed"}
        url = f"{CALLBACK}?call_attempt_id=abc"

        assert _adapter().validate_webhook_signature(
            urlencode(params).encode(), {"X-Twilio-Signature": _sign(url, params)}, url
        )

    def test_header_lookup_is_case_insensitive(self) -> None:
        params = {"CallSid": "CA1"}

        assert _adapter().validate_webhook_signature(
            urlencode(params).encode(), {"x-twilio-signature": _sign(CALLBACK, params)}, CALLBACK
        )

    def test_tampered_body(self) -> None:
        params = {"CallSid": "CA1", "CallStatus": "completed"}
        signature = _sign(CALLBACK, params)
        tampered = urlencode({**params, "CallStatus": "busy"}).encode()

        assert not _adapter().validate_webhook_signature(
            tampered, {"X-Twilio-Signature": signature}, CALLBACK
        )

    def test_missing_header(self) -> None:
        assert not _adapter().validate_webhook_signature(b"CallSid=CA1", {}, CALLBACK)
