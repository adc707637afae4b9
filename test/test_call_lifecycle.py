"""
Tests for CallLifecycleManager: admission, transitions and concurrency.
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from conftest import FakeClock
from salesfloor.calls.lifecycle import (
    REASON_COOLDOWN,
    REASON_IN_PROGRESS,
    CallLifecycleManager,
)
from salesfloor.calls.models import CallState
from salesfloor.calls.repository import CallAttemptRepository
from salesfloor.prospects.repository import ProspectRepository
from salesfloor.shared.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TransientStorageError,
)
from salesfloor.telephony.adapters.mock import MockTelephonyProvider
from salesfloor.telephony.interface import CallInitiationError

COOLDOWN = 60


def _manager(session, clock: FakeClock) -> CallLifecycleManager:
    return CallLifecycleManager(session, cooldown_seconds=COOLDOWN, clock=clock)


class TestCanCall:
    @pytest.mark.asyncio
    async def test_fresh_prospect_is_allowed(self, db_session, prospect, users, clock) -> None:
        admission = await _manager(db_session, clock).can_call(prospect.id)

        assert admission.allowed is True
        assert admission.reason is None
        assert admission.last_call_at is None

    @pytest.mark.asyncio
    async def test_unknown_prospect_raises_not_found(self, db_session, clock) -> None:
        with pytest.raises(NotFoundError):
            await _manager(db_session, clock).can_call(uuid4())

    @pytest.mark.asyncio
    async def test_open_call_blocks_with_reason(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        await manager.start_call(prospect.id, users["agent"].id)
        await db_session.commit()

        admission = await manager.can_call(prospect.id)

        assert admission.allowed is False
        assert admission.reason == REASON_IN_PROGRESS
        assert admission.retry_after_seconds is None

    @pytest.mark.asyncio
    async def test_can_call_has_no_side_effects(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        for _ in range(3):
            await manager.can_call(prospect.id)

        attempts = await CallAttemptRepository(db_session).list_for_prospect(prospect.id)
        assert list(attempts) == []


class TestCooldown:
    @pytest.mark.asyncio
    async def test_blocked_until_window_elapses(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id)
        await manager.end_call(prospect.id, attempt.id, outcome="no-answer")
        await db_session.commit()

        clock.advance(COOLDOWN - 0.5)
        admission = await manager.can_call(prospect.id)
        assert admission.allowed is False
        assert admission.reason == REASON_COOLDOWN
        assert admission.retry_after_seconds == 1

        clock.advance(0.5)
        admission = await manager.can_call(prospect.id)
        assert admission.allowed is True
        assert admission.last_call_at is not None

    @pytest.mark.asyncio
    async def test_start_call_during_cooldown_conflicts(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id)
        await manager.end_call(prospect.id, attempt.id, outcome="completed", duration_seconds=30)
        await db_session.commit()

        clock.advance(10)
        with pytest.raises(ConflictError) as exc_info:
            await manager.start_call(prospect.id, users["agent2"].id)

        assert exc_info.value.details["reason"] == REASON_COOLDOWN
        assert exc_info.value.details["retry_after_seconds"] == COOLDOWN - 10

    @pytest.mark.asyncio
    async def test_zero_cooldown_allows_immediate_redial(self, db_session, prospect, users, clock) -> None:
        manager = CallLifecycleManager(db_session, cooldown_seconds=0, clock=clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id)
        await manager.end_call(prospect.id, attempt.id, outcome="completed")
        await db_session.commit()

        assert (await manager.can_call(prospect.id)).allowed is True


class TestStartCall:
    @pytest.mark.asyncio
    async def test_duplicate_scenario(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)

        attempt = await manager.start_call(
            prospect.id,
            users["agent"].id,
            phone_number="+15551234567",
            from_number="+15557654321",
        )
        await db_session.commit()
        assert attempt.state == CallState.IN_PROGRESS
        assert attempt.prospect_id == prospect.id
        assert attempt.from_number == "+15557654321"

        with pytest.raises(ConflictError) as exc_info:
            await manager.start_call(prospect.id, users["agent2"].id)
        assert exc_info.value.message == "Prospect already has an active call"
        assert exc_info.value.details["reason"] == REASON_IN_PROGRESS

        ended = await manager.end_call(prospect.id, attempt.id, outcome="no-answer", duration_seconds=0)
        await db_session.commit()
        assert ended.state == CallState.ENDED
        assert ended.outcome == "no-answer"

        clock.advance(COOLDOWN)
        assert (await manager.can_call(prospect.id)).allowed is True

    @pytest.mark.asyncio
    async def test_defaults_phone_number_to_prospect(self, db_session, prospect, users, clock) -> None:
        attempt = await _manager(db_session, clock).start_call(prospect.id, users["agent"].id)

        assert attempt.phone_number == prospect.phone
        assert attempt.started_at is not None
        assert attempt.connected_at is not None

    @pytest.mark.asyncio
    async def test_unknown_prospect_raises_not_found(self, db_session, users, clock) -> None:
        with pytest.raises(NotFoundError):
            await _manager(db_session, clock).start_call(uuid4(), users["agent"].id)

    @pytest.mark.asyncio
    async def test_cannot_start_in_ended_state(self, db_session, prospect, users, clock) -> None:
        with pytest.raises(InvalidStateError):
            await _manager(db_session, clock).start_call(
                prospect.id, users["agent"].id, state=CallState.ENDED
            )

    @pytest.mark.asyncio
    async def test_other_prospects_are_independent(self, db_session, make_prospect, users, clock) -> None:
        first = await make_prospect()
        second = await make_prospect()
        manager = _manager(db_session, clock)

        await manager.start_call(first.id, users["agent"].id)
        await manager.start_call(second.id, users["agent"].id)
        await db_session.commit()

        assert len(await manager.active_calls()) == 2

    @pytest.mark.asyncio
    async def test_unique_index_violation_maps_to_conflict(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        await manager.start_call(prospect.id, users["agent"].id)
        await db_session.commit()

        # Simulate a racer that slipped past the admission check.
        with patch.object(CallAttemptRepository, "find_open", AsyncMock(return_value=None)):
            with pytest.raises(ConflictError) as exc_info:
                await manager.start_call(prospect.id, users["agent2"].id)

        assert exc_info.value.details["reason"] == REASON_IN_PROGRESS
        active = await manager.active_calls()
        assert [call.caller_id for call in active] == [users["agent"].id]

    @pytest.mark.asyncio
    async def test_concurrent_start_calls_admit_exactly_one(
        self, session_factory, prospect, users, clock
    ) -> None:
        callers = [users["agent"].id, users["agent2"].id, users["manager"].id, users["admin"].id] * 2

        async def _attempt(caller_id):
            async with session_factory() as session:
                manager = _manager(session, clock)
                try:
                    attempt = await manager.start_call(prospect.id, caller_id)
                    await session.commit()
                    return attempt
                except ConflictError:
                    return None

        results = await asyncio.gather(*(_attempt(caller) for caller in callers))

        admitted = [r for r in results if r is not None]
        assert len(admitted) == 1

        async with session_factory() as session:
            open_attempts = [
                a for a in await CallAttemptRepository(session).list_for_prospect(prospect.id)
                if a.is_open
            ]
        assert len(open_attempts) == 1
        assert open_attempts[0].id == admitted[0].id


class TestEndCall:
    @pytest.mark.asyncio
    async def test_records_outcome_and_last_call(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id)
        clock.advance(45)

        ended = await manager.end_call(
            prospect.id,
            attempt.id,
            outcome="interested",
            duration_seconds=45,
            notes="Call back next week",
            recording_ref="s3://recordings/abc.mp3",
        )
        await db_session.commit()

        assert ended.state == CallState.ENDED
        assert ended.duration_seconds == 45
        assert ended.notes == "Call back next week"
        assert ended.recording_ref == "s3://recordings/abc.mp3"
        assert ended.ended_at is not None

        refreshed = await ProspectRepository(db_session).get_by_id(prospect.id)
        assert refreshed.last_call_at is not None

    @pytest.mark.asyncio
    async def test_double_end_raises_invalid_state(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id)
        await manager.end_call(prospect.id, attempt.id, outcome="completed")
        await db_session.commit()

        with pytest.raises(InvalidStateError):
            await manager.end_call(prospect.id, attempt.id, outcome="completed")

    @pytest.mark.asyncio
    async def test_unknown_attempt_raises_not_found(self, db_session, prospect, clock) -> None:
        with pytest.raises(NotFoundError):
            await _manager(db_session, clock).end_call(prospect.id, uuid4(), outcome="completed")

    @pytest.mark.asyncio
    async def test_attempt_of_other_prospect_raises_not_found(
        self, db_session, make_prospect, users, clock
    ) -> None:
        first = await make_prospect()
        second = await make_prospect()
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(first.id, users["agent"].id)
        await db_session.commit()

        with pytest.raises(NotFoundError):
            await manager.end_call(second.id, attempt.id, outcome="completed")

    @pytest.mark.asyncio
    async def test_lost_race_on_update_raises_invalid_state(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id)
        await db_session.commit()

        with patch.object(CallAttemptRepository, "mark_ended", AsyncMock(return_value=False)):
            with pytest.raises(InvalidStateError):
                await manager.end_call(prospect.id, attempt.id, outcome="completed")


class TestActiveCalls:
    @pytest.mark.asyncio
    async def test_matches_can_call(self, db_session, make_prospect, users, clock) -> None:
        prospects = [await make_prospect() for _ in range(3)]
        manager = _manager(db_session, clock)

        first = await manager.start_call(prospects[0].id, users["agent"].id)
        await manager.start_call(prospects[1].id, users["agent2"].id)
        await manager.end_call(prospects[0].id, first.id, outcome="completed")
        await db_session.commit()

        active = await manager.active_calls()
        active_ids = {call.prospect_id for call in active}
        assert active_ids == {prospects[1].id}

        for p in prospects:
            admission = await manager.can_call(p.id)
            assert (admission.reason == REASON_IN_PROGRESS) == (p.id in active_ids)

    @pytest.mark.asyncio
    async def test_includes_display_data(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        await manager.start_call(prospect.id, users["agent"].id)
        await db_session.commit()

        [call] = await manager.active_calls()

        assert call.prospect_name == "Jane Doe"
        assert call.caller_name == "Alex Agent"
        assert call.phone_number == "+15551234567"
        assert call.state == CallState.IN_PROGRESS
        assert call.started_at.tzinfo is not None


class TestMarkConnected:
    @pytest.mark.asyncio
    async def test_requested_moves_to_in_progress(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id, state=CallState.REQUESTED)
        assert attempt.connected_at is None

        clock.advance(5)
        connected = await manager.mark_connected(attempt.id)

        assert connected.state == CallState.IN_PROGRESS
        assert connected.connected_at is not None

    @pytest.mark.asyncio
    async def test_requested_counts_as_open(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        await manager.start_call(prospect.id, users["agent"].id, state=CallState.REQUESTED)
        await db_session.commit()

        admission = await manager.can_call(prospect.id)
        assert admission.reason == REASON_IN_PROGRESS

    @pytest.mark.asyncio
    async def test_ended_attempt_cannot_connect(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id, state=CallState.REQUESTED)
        await manager.end_call(prospect.id, attempt.id, outcome="no_answer")

        with pytest.raises(InvalidStateError):
            await manager.mark_connected(attempt.id)


class TestVoicemailDrop:
    @pytest.mark.asyncio
    async def test_drop_is_logged_and_call_stays_open(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id)

        drop = await manager.record_voicemail_drop(
            prospect.id, attempt.id, dropped_by=users["agent"].id, voicemail_ref="intro-v2"
        )

        assert drop.call_attempt_id == attempt.id
        assert drop.voicemail_ref == "intro-v2"
        assert [d.id for d in await manager.voicemail_drops(prospect.id)] == [drop.id]
        assert (await manager.can_call(prospect.id)).reason == REASON_IN_PROGRESS

    @pytest.mark.asyncio
    async def test_drop_on_ended_call_is_invalid(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(prospect.id, users["agent"].id)
        await manager.end_call(prospect.id, attempt.id, outcome="voicemail")

        with pytest.raises(InvalidStateError):
            await manager.record_voicemail_drop(
                prospect.id, attempt.id, dropped_by=users["agent"].id, voicemail_ref="intro-v2"
            )

    @pytest.mark.asyncio
    async def test_drop_on_other_prospects_call(self, db_session, make_prospect, users, clock) -> None:
        first = await make_prospect()
        second = await make_prospect()
        manager = _manager(db_session, clock)
        attempt = await manager.start_call(first.id, users["agent"].id)

        with pytest.raises(NotFoundError):
            await manager.record_voicemail_drop(
                second.id, attempt.id, dropped_by=users["agent"].id, voicemail_ref="intro-v2"
            )

    @pytest.mark.asyncio
    async def test_drops_for_unknown_prospect(self, db_session, clock) -> None:
        with pytest.raises(NotFoundError):
            await _manager(db_session, clock).voicemail_drops(uuid4())


class TestPlaceCall:
    @pytest.mark.asyncio
    async def test_success_stores_provider_call(self, db_session, prospect, users, clock) -> None:
        provider = MockTelephonyProvider()
        attempt = await _manager(db_session, clock).place_call(
            prospect.id,
            users["agent"].id,
            provider=provider,
            callback_url="https://hooks.example.com/webhooks/telephony/mock/events",
            from_number="+15557654321",
        )

        assert attempt.state == CallState.REQUESTED
        assert attempt.provider == "mock"
        assert attempt.provider_call_id.startswith("mock-")
        [request] = provider.requests
        assert request.to == prospect.phone
        assert request.call_attempt_id == attempt.id

    @pytest.mark.asyncio
    async def test_provider_failure_ends_attempt(self, db_session, prospect, users, clock) -> None:
        provider = MockTelephonyProvider(fail_with="carrier rejected")
        manager = _manager(db_session, clock)

        with pytest.raises(CallInitiationError):
            await manager.place_call(
                prospect.id,
                users["agent"].id,
                provider=provider,
                callback_url="https://hooks.example.com/cb",
                from_number="+15557654321",
            )

        [attempt] = await CallAttemptRepository(db_session).list_for_prospect(prospect.id)
        assert attempt.state == CallState.ENDED
        assert attempt.outcome == "failed"
        assert attempt.notes == "carrier rejected"
        assert (await manager.can_call(prospect.id)).reason == REASON_COOLDOWN


class TestStorageErrors:
    @pytest.mark.asyncio
    async def test_driver_failure_becomes_transient_error(self, db_session, prospect, users, clock) -> None:
        failure = OperationalError("SELECT ...", {}, Exception("database is locked"))

        with patch.object(CallAttemptRepository, "find_open", AsyncMock(side_effect=failure)):
            with pytest.raises(TransientStorageError) as exc_info:
                await _manager(db_session, clock).start_call(prospect.id, users["agent"].id)

        assert "database is locked" not in exc_info.value.message
        assert exc_info.value.details == {"operation": "start_call"}

    @pytest.mark.asyncio
    async def test_integrity_errors_are_not_wrapped(self, db_session, prospect, users, clock) -> None:
        failure = IntegrityError("INSERT ...", {}, Exception("constraint"))

        with patch.object(CallAttemptRepository, "latest_ended", AsyncMock(side_effect=failure)):
            with pytest.raises(IntegrityError):
                await _manager(db_session, clock).can_call(prospect.id)

    @pytest.mark.asyncio
    async def test_commit_failure_becomes_transient_error(self, db_session, prospect, users, clock) -> None:
        manager = _manager(db_session, clock)
        await manager.start_call(prospect.id, users["agent"].id)
        failure = OperationalError("COMMIT", {}, Exception("could not serialize access"))

        with patch.object(db_session, "commit", AsyncMock(side_effect=failure)):
            with pytest.raises(TransientStorageError) as exc_info:
                await manager.commit()

        assert exc_info.value.details == {"operation": "commit"}
        assert await manager.active_calls() == []
