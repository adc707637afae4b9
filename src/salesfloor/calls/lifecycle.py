"""
Call lifecycle manager.

Owns admission control (one open call per prospect, cooldown after a call
ends) and every state transition of a call attempt:

    requested -> in_progress -> ended
    requested -> ended

Agent-dialed calls start directly in ``in_progress``. Provider-dialed calls
start in ``requested`` and move on when the provider reports an answer.
"""

import math
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.calls.models import CallAttempt, CallDirection, CallState, VoicemailDrop
from salesfloor.calls.repository import CallAttemptRepository
from salesfloor.config import get_settings
from salesfloor.prospects.repository import ProspectRepository
from salesfloor.shared.clock import Clock, as_utc, utcnow
from salesfloor.shared.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TransientStorageError,
)
from salesfloor.shared.logging import get_logger
from salesfloor.telephony.interface import (
    CallInitiationRequest,
    TelephonyProvider,
    TelephonyProviderError,
)

logger = get_logger(__name__)

REASON_IN_PROGRESS = "already in progress"
REASON_COOLDOWN = "cooldown"

_CONFLICT_MESSAGES = {
    REASON_IN_PROGRESS: "Prospect already has an active call",
    REASON_COOLDOWN: "Prospect was called too recently",
}


@dataclass(frozen=True)
class Admission:
    """Result of an admission check."""

    allowed: bool
    reason: str | None = None
    last_call_at: datetime | None = None
    retry_after_seconds: int | None = None


@dataclass(frozen=True)
class ActiveCall:
    """An open call attempt with display data."""

    call_attempt_id: UUID
    prospect_id: UUID
    prospect_name: str
    phone_number: str
    caller_id: UUID
    caller_name: str | None
    state: CallState
    started_at: datetime
    connected_at: datetime | None


class CallLifecycleManager:
    """Admission control and state transitions for call attempts.

    All work happens on the caller's session. ``start_call`` and ``end_call``
    flush but leave the commit to the caller, so an aborted request leaves
    nothing behind.
    """

    def __init__(
        self,
        session: AsyncSession,
        cooldown_seconds: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            session: Async database session.
            cooldown_seconds: Minimum gap after a call ends before the same
                prospect may be dialed again. Defaults to settings.
            clock: Returns the current aware UTC time.
        """
        if cooldown_seconds is None:
            cooldown_seconds = get_settings().call_cooldown_seconds
        self._session = session
        self._calls = CallAttemptRepository(session)
        self._prospects = ProspectRepository(session)
        self._cooldown = timedelta(seconds=cooldown_seconds)
        self._clock = clock or utcnow

    @property
    def cooldown_seconds(self) -> int:
        return int(self._cooldown.total_seconds())

    async def can_call(self, prospect_id: UUID, caller_id: UUID | None = None) -> Admission:
        """Check whether a prospect may be dialed right now. Read-only.

        Raises:
            NotFoundError: If the prospect does not exist.
        """
        async with self._storage_errors("can_call", prospect_id=prospect_id):
            prospect = await self._prospects.get_by_id(prospect_id)
            if prospect is None:
                raise NotFoundError(
                    message="Prospect not found",
                    details={"prospect_id": str(prospect_id)},
                )
            return await self._admission(prospect_id, self._clock())

    async def start_call(
        self,
        prospect_id: UUID,
        caller_id: UUID,
        phone_number: str | None = None,
        from_number: str | None = None,
        *,
        state: CallState = CallState.IN_PROGRESS,
        direction: CallDirection = CallDirection.OUTBOUND,
    ) -> CallAttempt:
        """Admit and record a new call attempt atomically.

        The prospect row is locked before the admission check so two agents
        cannot both pass it. The partial unique index on open attempts
        rejects anything that slips past.

        Raises:
            NotFoundError: If the prospect does not exist.
            ConflictError: If the prospect has an open call or is cooling down.
        """
        if state == CallState.ENDED:
            raise InvalidStateError(message="A call cannot start in the ended state")

        async with self._storage_errors("start_call", prospect_id=prospect_id):
            now = self._clock()
            prospect = await self._prospects.get_for_update(prospect_id)
            if prospect is None:
                raise NotFoundError(
                    message="Prospect not found",
                    details={"prospect_id": str(prospect_id)},
                )

            admission = await self._admission(prospect_id, now)
            if not admission.allowed:
                logger.info(
                    "Call admission refused",
                    extra={
                        "prospect_id": str(prospect_id),
                        "caller_id": str(caller_id),
                        "reason": admission.reason,
                    },
                )
                raise self._conflict(prospect_id, admission)

            attempt = CallAttempt(
                prospect_id=prospect_id,
                caller_id=caller_id,
                phone_number=phone_number or prospect.phone,
                from_number=from_number,
                direction=direction,
                state=state,
                started_at=now,
                connected_at=now if state == CallState.IN_PROGRESS else None,
            )
            try:
                attempt = await self._calls.insert(attempt)
            except IntegrityError:
                await self._session.rollback()
                logger.info(
                    "Open call already recorded for prospect",
                    extra={"prospect_id": str(prospect_id), "caller_id": str(caller_id)},
                )
                raise self._conflict(prospect_id, Admission(False, REASON_IN_PROGRESS))

        logger.info(
            "Call started",
            extra={
                "call_attempt_id": str(attempt.id),
                "prospect_id": str(prospect_id),
                "caller_id": str(caller_id),
                "state": attempt.state.value,
            },
        )
        return attempt

    async def end_call(
        self,
        prospect_id: UUID,
        call_attempt_id: UUID,
        outcome: str,
        duration_seconds: int = 0,
        notes: str | None = None,
        recording_ref: str | None = None,
    ) -> CallAttempt:
        """Close an open call attempt.

        Not idempotent: ending an attempt twice raises on the second call.

        Raises:
            NotFoundError: If the attempt is missing or belongs to another prospect.
            InvalidStateError: If the attempt has already ended.
        """
        async with self._storage_errors("end_call", prospect_id=prospect_id):
            attempt = await self._calls.get_by_id(call_attempt_id)
            if attempt is None or attempt.prospect_id != prospect_id:
                raise NotFoundError(
                    message="Call attempt not found",
                    details={
                        "prospect_id": str(prospect_id),
                        "call_attempt_id": str(call_attempt_id),
                    },
                )
            if not attempt.is_open:
                raise self._already_ended(call_attempt_id)

            now = self._clock()
            transitioned = await self._calls.mark_ended(
                call_attempt_id,
                ended_at=now,
                outcome=outcome,
                duration_seconds=duration_seconds,
                notes=notes,
                recording_ref=recording_ref,
            )
            if not transitioned:
                raise self._already_ended(call_attempt_id)

            await self._prospects.set_last_call_at(prospect_id, now)
            attempt = await self._calls.get_by_id(call_attempt_id)

        logger.info(
            "Call ended",
            extra={
                "call_attempt_id": str(call_attempt_id),
                "prospect_id": str(prospect_id),
                "outcome": outcome,
                "duration_seconds": duration_seconds,
            },
        )
        return attempt

    async def mark_connected(self, call_attempt_id: UUID) -> CallAttempt:
        """Record that the provider reports the call as answered.

        No-op for attempts already in progress.

        Raises:
            NotFoundError: If the attempt does not exist.
            InvalidStateError: If the attempt has already ended.
        """
        async with self._storage_errors("mark_connected", call_attempt_id=call_attempt_id):
            attempt = await self._calls.get_by_id(call_attempt_id)
            if attempt is None:
                raise NotFoundError(
                    message="Call attempt not found",
                    details={"call_attempt_id": str(call_attempt_id)},
                )
            if not attempt.is_open:
                raise self._already_ended(call_attempt_id)
            if attempt.state == CallState.IN_PROGRESS:
                return attempt

            await self._calls.mark_connected(call_attempt_id, self._clock())
            attempt = await self._calls.get_by_id(call_attempt_id)

        logger.info(
            "Call connected",
            extra={"call_attempt_id": str(call_attempt_id)},
        )
        return attempt

    async def record_voicemail_drop(
        self,
        prospect_id: UUID,
        call_attempt_id: UUID,
        dropped_by: UUID,
        voicemail_ref: str,
    ) -> VoicemailDrop:
        """Log a voicemail played into an open call attempt.

        The attempt stays open; the caller still ends it with ``end_call``.

        Raises:
            NotFoundError: If the attempt is missing or belongs to another prospect.
            InvalidStateError: If the attempt has already ended.
        """
        async with self._storage_errors("record_voicemail_drop", prospect_id=prospect_id):
            attempt = await self._calls.get_by_id(call_attempt_id)
            if attempt is None or attempt.prospect_id != prospect_id:
                raise NotFoundError(
                    message="Call attempt not found",
                    details={
                        "prospect_id": str(prospect_id),
                        "call_attempt_id": str(call_attempt_id),
                    },
                )
            if not attempt.is_open:
                raise self._already_ended(call_attempt_id)

            drop = await self._calls.add_voicemail_drop(
                VoicemailDrop(
                    call_attempt_id=call_attempt_id,
                    prospect_id=prospect_id,
                    dropped_by=dropped_by,
                    voicemail_ref=voicemail_ref,
                    dropped_at=self._clock(),
                )
            )

        logger.info(
            "Voicemail dropped",
            extra={
                "call_attempt_id": str(call_attempt_id),
                "prospect_id": str(prospect_id),
                "voicemail_ref": voicemail_ref,
            },
        )
        return drop

    async def voicemail_drops(self, prospect_id: UUID) -> list[VoicemailDrop]:
        async with self._storage_errors("voicemail_drops", prospect_id=prospect_id):
            if await self._prospects.get_by_id(prospect_id) is None:
                raise NotFoundError(
                    message="Prospect not found",
                    details={"prospect_id": str(prospect_id)},
                )
            return list(await self._calls.list_voicemail_drops(prospect_id))

    async def active_calls(self) -> list[ActiveCall]:
        """Every open attempt, newest first. Computed on each call."""
        async with self._storage_errors("active_calls"):
            rows = await self._calls.list_active()

        active: list[ActiveCall] = []
        for row in rows:
            caller_name = " ".join(
                part for part in (row.caller_first_name, row.caller_last_name) if part
            ) or row.caller_email
            active.append(
                ActiveCall(
                    call_attempt_id=row.attempt.id,
                    prospect_id=row.attempt.prospect_id,
                    prospect_name=f"{row.prospect_first_name} {row.prospect_last_name}".strip(),
                    phone_number=row.attempt.phone_number or row.prospect_phone,
                    caller_id=row.attempt.caller_id,
                    caller_name=caller_name,
                    state=row.attempt.state,
                    started_at=as_utc(row.attempt.started_at),
                    connected_at=as_utc(row.attempt.connected_at),
                )
            )
        return active

    async def place_call(
        self,
        prospect_id: UUID,
        caller_id: UUID,
        provider: TelephonyProvider,
        callback_url: str,
        from_number: str,
        phone_number: str | None = None,
    ) -> CallAttempt:
        """Have the telephony provider dial the prospect.

        The attempt is committed in ``requested`` before the provider is
        contacted, so no lock is held across the HTTP call. If the provider
        refuses, the attempt is ended with outcome ``failed``.

        Raises:
            ConflictError: If admission fails.
            TelephonyProviderError: If the provider refuses the call.
        """
        attempt = await self.start_call(
            prospect_id,
            caller_id,
            phone_number=phone_number,
            from_number=from_number,
            state=CallState.REQUESTED,
        )
        attempt_id = attempt.id
        to_number = attempt.phone_number
        async with self._storage_errors("place_call", prospect_id=prospect_id):
            await self._session.commit()

        request = CallInitiationRequest(
            to=to_number,
            from_number=from_number,
            callback_url=callback_url,
            call_attempt_id=attempt_id,
            prospect_id=prospect_id,
        )
        try:
            response = await provider.initiate_call(request)
        except TelephonyProviderError as e:
            logger.warning(
                "Provider refused call",
                extra={
                    "call_attempt_id": str(attempt_id),
                    "provider": provider.name,
                    "error": e.message,
                    "error_code": e.error_code,
                },
            )
            await self.end_call(prospect_id, attempt_id, outcome="failed", notes=e.message)
            async with self._storage_errors("place_call", prospect_id=prospect_id):
                await self._session.commit()
            raise

        async with self._storage_errors("place_call", prospect_id=prospect_id):
            await self._calls.set_provider_call(attempt_id, provider.name, response.provider_call_id)
            await self._session.commit()
            attempt = await self._calls.get_by_id(attempt_id)

        logger.info(
            "Call placed with provider",
            extra={
                "call_attempt_id": str(attempt_id),
                "provider": provider.name,
                "provider_call_id": response.provider_call_id,
            },
        )
        return attempt

    async def commit(self) -> None:
        """Commit the session, mapping driver failures like the operations do."""
        async with self._storage_errors("commit"):
            await self._session.commit()

    async def _admission(self, prospect_id: UUID, now: datetime) -> Admission:
        open_attempt = await self._calls.find_open(prospect_id)
        if open_attempt is not None:
            return Admission(
                allowed=False,
                reason=REASON_IN_PROGRESS,
                last_call_at=as_utc(open_attempt.started_at),
            )

        last = await self._calls.latest_ended(prospect_id)
        if last is None or last.ended_at is None:
            return Admission(allowed=True)

        ended_at = as_utc(last.ended_at)
        available_at = ended_at + self._cooldown
        if now < available_at:
            return Admission(
                allowed=False,
                reason=REASON_COOLDOWN,
                last_call_at=ended_at,
                retry_after_seconds=math.ceil((available_at - now).total_seconds()),
            )
        return Admission(allowed=True, last_call_at=ended_at)

    @staticmethod
    def _conflict(prospect_id: UUID, admission: Admission) -> ConflictError:
        details: dict = {"prospect_id": str(prospect_id), "reason": admission.reason}
        if admission.retry_after_seconds is not None:
            details["retry_after_seconds"] = admission.retry_after_seconds
        return ConflictError(
            message=_CONFLICT_MESSAGES.get(admission.reason, "Prospect cannot be called"),
            details=details,
        )

    @staticmethod
    def _already_ended(call_attempt_id: UUID) -> InvalidStateError:
        return InvalidStateError(
            message="Call attempt has already ended",
            details={"call_attempt_id": str(call_attempt_id)},
        )

    @asynccontextmanager
    async def _storage_errors(self, operation: str, **context: object) -> AsyncIterator[None]:
        """Translate driver failures into TransientStorageError.

        Integrity violations are left to the caller; the raw driver text is
        logged and never returned.
        """
        try:
            yield
        except IntegrityError:
            raise
        except DBAPIError as e:
            logger.error(
                "Storage failure during call lifecycle operation",
                extra={
                    "operation": operation,
                    "error": str(e.orig) if e.orig is not None else str(e),
                    **{k: str(v) for k, v in context.items()},
                },
            )
            await self._session.rollback()
            raise TransientStorageError(
                message="Call storage is temporarily unavailable, retry the request",
                details={"operation": operation},
            ) from e
