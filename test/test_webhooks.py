"""
Tests for telephony webhook handling: event application and the HTTP route.
"""
from __future__ import annotations

from uuid import uuid4

import pytest

from salesfloor.calls.lifecycle import CallLifecycleManager
from salesfloor.calls.models import CallState
from salesfloor.calls.repository import CallAttemptRepository
from salesfloor.telephony.adapters.mock import MockTelephonyProvider
from salesfloor.telephony.events import CallEvent, CallEventType
from salesfloor.telephony.interface import WebhookParseError
from salesfloor.telephony.webhooks.handler import HandlingResult, WebhookHandler


async def _placed_attempt(db_session, prospect, caller_id):
    return await CallLifecycleManager(db_session, cooldown_seconds=60).place_call(
        prospect.id,
        caller_id,
        provider=MockTelephonyProvider(),
        callback_url="https://hooks.example.com/webhooks/telephony/mock/events",
        from_number="+15557654321",
    )


def _event(event_type: CallEventType, provider_call_id: str, **kwargs) -> CallEvent:
    return CallEvent(event_type=event_type, provider="mock", provider_call_id=provider_call_id, **kwargs)


class TestWebhookHandler:
    @pytest.mark.asyncio
    async def test_answered_then_completed(self, db_session, prospect, users) -> None:
        attempt = await _placed_attempt(db_session, prospect, users["agent"].id)
        handler = WebhookHandler(db_session)

        result = await handler.handle_event(_event(CallEventType.ANSWERED, attempt.provider_call_id))
        assert result == HandlingResult.PROCESSED

        result = await handler.handle_event(_event(CallEventType.ANSWERED, attempt.provider_call_id))
        assert result == HandlingResult.DUPLICATE

        result = await handler.handle_event(
            _event(CallEventType.COMPLETED, attempt.provider_call_id, duration_seconds=42)
        )
        assert result == HandlingResult.PROCESSED

        stored = await CallAttemptRepository(db_session).get_by_id(attempt.id)
        assert stored.state == CallState.ENDED
        assert stored.outcome == "completed"
        assert stored.duration_seconds == 42
        assert stored.connected_at is not None

    @pytest.mark.asyncio
    async def test_replayed_terminal_event_is_duplicate(self, db_session, prospect, users) -> None:
        attempt = await _placed_attempt(db_session, prospect, users["agent"].id)
        handler = WebhookHandler(db_session)
        event = _event(CallEventType.BUSY, attempt.provider_call_id)

        assert await handler.handle_event(event) == HandlingResult.PROCESSED
        assert await handler.handle_event(event) == HandlingResult.DUPLICATE

        stored = await CallAttemptRepository(db_session).get_by_id(attempt.id)
        assert stored.outcome == "busy"

    @pytest.mark.asyncio
    async def test_answered_after_end_is_ignored(self, db_session, prospect, users) -> None:
        attempt = await _placed_attempt(db_session, prospect, users["agent"].id)
        handler = WebhookHandler(db_session)
        await handler.handle_event(_event(CallEventType.NO_ANSWER, attempt.provider_call_id))

        result = await handler.handle_event(_event(CallEventType.ANSWERED, attempt.provider_call_id))

        assert result == HandlingResult.IGNORED

    @pytest.mark.asyncio
    async def test_recording_attached(self, db_session, prospect, users) -> None:
        attempt = await _placed_attempt(db_session, prospect, users["agent"].id)

        result = await WebhookHandler(db_session).handle_event(
            _event(
                CallEventType.RECORDING_SAVED,
                attempt.provider_call_id,
                recording_url="https://cdn.example.com/r.mp3",
            )
        )

        assert result == HandlingResult.PROCESSED
        stored = await CallAttemptRepository(db_session).get_by_id(attempt.id)
        assert stored.recording_ref == "https://cdn.example.com/r.mp3"
        assert stored.state == CallState.REQUESTED

    @pytest.mark.asyncio
    async def test_falls_back_to_attempt_id(self, db_session, prospect, users) -> None:
        manager = CallLifecycleManager(db_session, cooldown_seconds=60)
        attempt = await manager.start_call(prospect.id, users["agent"].id, state=CallState.REQUESTED)
        await db_session.commit()

        result = await WebhookHandler(db_session).handle_event(
            _event(CallEventType.ANSWERED, "late-sid", call_attempt_id=attempt.id)
        )

        assert result == HandlingResult.PROCESSED
        stored = await CallAttemptRepository(db_session).get_by_provider_call_id("late-sid")
        assert stored is not None
        assert stored.id == attempt.id

    @pytest.mark.asyncio
    async def test_unknown_call(self, db_session) -> None:
        result = await WebhookHandler(db_session).handle_event(
            _event(CallEventType.COMPLETED, "nobody", call_attempt_id=uuid4())
        )

        assert result == HandlingResult.NOT_FOUND

    @pytest.mark.asyncio
    async def test_non_lifecycle_event_ignored(self, db_session, prospect, users) -> None:
        attempt = await _placed_attempt(db_session, prospect, users["agent"].id)

        result = await WebhookHandler(db_session).handle_event(
            _event(CallEventType.RINGING, attempt.provider_call_id)
        )

        assert result == HandlingResult.IGNORED


class TestWebhookRouter:
    @pytest.mark.asyncio
    async def test_mock_event_ends_call(self, async_client, session_factory, prospect, users) -> None:
        async with session_factory() as session:
            attempt = await _placed_attempt(session, prospect, users["agent"].id)

        response = await async_client.post(
            "/webhooks/telephony/mock/events",
            json={
                "event_type": "call.completed",
                "provider_call_id": attempt.provider_call_id,
                "duration_seconds": 12,
            },
        )

        assert response.status_code == 200
        assert response.json() == {"status": "processed"}

        async with session_factory() as session:
            stored = await CallAttemptRepository(session).get_by_id(attempt.id)
        assert stored.state == CallState.ENDED
        assert stored.duration_seconds == 12

    @pytest.mark.asyncio
    async def test_unknown_provider_is_404(self, async_client) -> None:
        response = await async_client.post("/webhooks/telephony/twilio/events", json={})

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "UNKNOWN_PROVIDER"

    @pytest.mark.asyncio
    async def test_invalid_payload_is_400(self, async_client) -> None:
        response = await async_client.post(
            "/webhooks/telephony/mock/events", json={"event_type": "call.exploded"}
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_PAYLOAD"

    @pytest.mark.asyncio
    async def test_non_json_body_is_400(self, async_client) -> None:
        response = await async_client.post(
            "/webhooks/telephony/mock/events",
            content=b"not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_undecodable_form_body_is_400(self, async_client) -> None:
        response = await async_client.post(
            "/webhooks/telephony/mock/events",
            content=b"CallSid=\xff\xfe",
            headers={"content-type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_PAYLOAD"

    @pytest.mark.asyncio
    async def test_bad_signature_is_403(self, async_client, telephony_config, mock_provider, monkeypatch) -> None:
        telephony_config.verify_signatures = True
        monkeypatch.setattr(mock_provider, "validate_webhook_signature", lambda body, headers, url: False)

        response = await async_client.post(
            "/webhooks/telephony/mock/events",
            json={"event_type": "call.completed", "provider_call_id": "x"},
        )

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "INVALID_SIGNATURE"

    @pytest.mark.asyncio
    async def test_form_body_merges_query(self, async_client, mock_provider, monkeypatch) -> None:
        seen = {}

        def parse(payload):
            seen.update(payload)
            return _event(CallEventType.RINGING, "CA1")

        monkeypatch.setattr(mock_provider, "parse_webhook_event", parse)

        response = await async_client.post(
            "/webhooks/telephony/mock/events?call_attempt_id=abc",
            content=b"CallSid=CA1&CallStatus=ringing",
            headers={"content-type": "application/x-www-form-urlencoded"},
        )

        assert response.status_code == 200
        assert response.json() == {"status": "not_found"}
        assert seen == {"call_attempt_id": "abc", "CallSid": "CA1", "CallStatus": "ringing"}


class TestCallEvent:
    def test_terminal_events(self) -> None:
        assert CallEventType.BUSY.is_terminal
        assert not CallEventType.ANSWERED.is_terminal
        assert not CallEventType.RECORDING_SAVED.is_terminal

    def test_resolved_outcome_defaults_by_event(self) -> None:
        assert _event(CallEventType.NO_ANSWER, "x").resolved_outcome() == "no_answer"
        assert _event(CallEventType.COMPLETED, "x", outcome="customer_hangup").resolved_outcome() == "customer_hangup"

    def test_mock_payload_requires_call_id(self) -> None:
        with pytest.raises(WebhookParseError):
            MockTelephonyProvider().parse_webhook_event({"event_type": "call.completed"})
