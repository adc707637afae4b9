"""
Webhook event handler for processing telephony events.
"""

from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.calls.lifecycle import CallLifecycleManager
from salesfloor.calls.models import CallAttempt, CallState
from salesfloor.calls.repository import CallAttemptRepository
from salesfloor.shared.exceptions import InvalidStateError
from salesfloor.shared.logging import get_logger
from salesfloor.telephony.events import CallEvent, CallEventType

logger = get_logger(__name__)


class HandlingResult(str, Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    NOT_FOUND = "not_found"


class WebhookHandler:
    """Applies provider call events to call attempts.

    ``answered`` connects a requested attempt, terminal events end it and
    ``recording_saved`` attaches the recording. Replays of a terminal event
    for an already-ended attempt are acknowledged and skipped.
    """

    def __init__(
        self,
        session: AsyncSession,
        manager: CallLifecycleManager | None = None,
    ) -> None:
        """Initialize webhook handler.

        Args:
            session: Async database session.
            manager: Lifecycle manager; one bound to ``session`` by default.
        """
        self._session = session
        self._calls = CallAttemptRepository(session)
        self._manager = manager or CallLifecycleManager(session)

    async def handle_event(self, event: CallEvent) -> HandlingResult:
        """Handle a telephony call event and commit its effect.

        Args:
            event: Parsed CallEvent from webhook.

        Returns:
            What was done with the event.
        """
        attempt = await self._resolve_attempt(event)
        if attempt is None:
            logger.warning(
                "CallAttempt not found for event",
                extra={
                    "provider": event.provider,
                    "provider_call_id": event.provider_call_id,
                    "event_type": event.event_type.value,
                },
            )
            return HandlingResult.NOT_FOUND

        logger.info(
            "Processing telephony event",
            extra={
                "call_attempt_id": str(attempt.id),
                "event_type": event.event_type.value,
                "provider_call_id": event.provider_call_id,
            },
        )

        match event.event_type:
            case CallEventType.ANSWERED:
                result = await self._handle_answered(attempt)
            case CallEventType.RECORDING_SAVED:
                result = await self._handle_recording(attempt, event)
            case (
                CallEventType.COMPLETED
                | CallEventType.FAILED
                | CallEventType.NO_ANSWER
                | CallEventType.BUSY
            ):
                result = await self._handle_terminal(attempt, event)
            case _:
                result = HandlingResult.IGNORED

        if result == HandlingResult.PROCESSED:
            await self._manager.commit()
        return result

    async def _resolve_attempt(self, event: CallEvent) -> CallAttempt | None:
        attempt = await self._calls.get_by_provider_call_id(event.provider_call_id)
        if attempt is not None or event.call_attempt_id is None:
            return attempt

        # Callbacks can beat the commit that stores the provider call id.
        attempt = await self._calls.get_by_id(event.call_attempt_id)
        if attempt is not None and attempt.provider_call_id is None:
            await self._calls.set_provider_call(attempt.id, event.provider, event.provider_call_id)
        return attempt

    async def _handle_answered(self, attempt: CallAttempt) -> HandlingResult:
        if not attempt.is_open:
            return HandlingResult.IGNORED
        if attempt.state == CallState.IN_PROGRESS:
            return HandlingResult.DUPLICATE
        await self._manager.mark_connected(attempt.id)
        return HandlingResult.PROCESSED

    async def _handle_recording(self, attempt: CallAttempt, event: CallEvent) -> HandlingResult:
        if not event.recording_url:
            return HandlingResult.IGNORED
        await self._calls.set_recording(attempt.id, event.recording_url)
        return HandlingResult.PROCESSED

    async def _handle_terminal(self, attempt: CallAttempt, event: CallEvent) -> HandlingResult:
        if not attempt.is_open:
            logger.info(
                "Terminal event for ended call skipped",
                extra={"call_attempt_id": str(attempt.id), "event_type": event.event_type.value},
            )
            return HandlingResult.DUPLICATE
        try:
            await self._manager.end_call(
                attempt.prospect_id,
                attempt.id,
                outcome=event.resolved_outcome(),
                duration_seconds=event.duration_seconds or 0,
                recording_ref=event.recording_url,
            )
        except InvalidStateError:
            return HandlingResult.DUPLICATE
        return HandlingResult.PROCESSED
