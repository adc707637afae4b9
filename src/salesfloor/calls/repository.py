"""
Repository for call attempt database operations.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.auth.models import User
from salesfloor.calls.models import OPEN_STATES, CallAttempt, CallState, VoicemailDrop
from salesfloor.prospects.models import Prospect


@dataclass(frozen=True)
class ActiveCallRow:
    """An open attempt joined with prospect and caller display fields."""

    attempt: CallAttempt
    prospect_first_name: str
    prospect_last_name: str
    prospect_phone: str
    caller_first_name: str | None
    caller_last_name: str | None
    caller_email: str | None


class CallAttemptRepository:
    """Repository for call attempt database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def insert(self, attempt: CallAttempt) -> CallAttempt:
        """Insert a call attempt and flush it.

        Args:
            attempt: Transient CallAttempt instance.

        Returns:
            The persisted CallAttempt.

        Raises:
            sqlalchemy.exc.IntegrityError: If the prospect already has an
                open attempt.
        """
        self._session.add(attempt)
        await self._session.flush()
        await self._session.refresh(attempt)
        return attempt

    async def get_by_id(self, attempt_id: UUID) -> CallAttempt | None:
        """Get call attempt by ID, reloading any cached copy."""
        stmt = (
            select(CallAttempt)
            .where(CallAttempt.id == attempt_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_provider_call_id(self, provider_call_id: str) -> CallAttempt | None:
        """Get call attempt by provider call identifier (e.g., Twilio CallSid)."""
        stmt = (
            select(CallAttempt)
            .where(CallAttempt.provider_call_id == provider_call_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_open(self, prospect_id: UUID) -> CallAttempt | None:
        stmt = (
            select(CallAttempt)
            .where(
                CallAttempt.prospect_id == prospect_id,
                CallAttempt.state.in_(OPEN_STATES),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def latest_ended(self, prospect_id: UUID) -> CallAttempt | None:
        stmt = (
            select(CallAttempt)
            .where(
                CallAttempt.prospect_id == prospect_id,
                CallAttempt.state == CallState.ENDED,
            )
            .order_by(CallAttempt.ended_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_ended(
        self,
        attempt_id: UUID,
        ended_at: datetime,
        outcome: str,
        duration_seconds: int = 0,
        notes: str | None = None,
        recording_ref: str | None = None,
    ) -> bool:
        """Conditionally transition an attempt to ``ended``.

        The ``state <> 'ended'`` guard makes the transition single-shot even
        when two requests race on the same attempt.

        Returns:
            True if a row was transitioned, False if it was already ended.
        """
        values: dict = {
            "state": CallState.ENDED,
            "ended_at": ended_at,
            "outcome": outcome,
            "duration_seconds": duration_seconds,
            "notes": notes,
        }
        if recording_ref is not None:
            values["recording_ref"] = recording_ref

        stmt = (
            update(CallAttempt)
            .where(
                CallAttempt.id == attempt_id,
                CallAttempt.state != CallState.ENDED,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_connected(self, attempt_id: UUID, connected_at: datetime) -> bool:
        """Transition ``requested`` to ``in_progress``.

        Returns:
            True if a row was transitioned.
        """
        stmt = (
            update(CallAttempt)
            .where(
                CallAttempt.id == attempt_id,
                CallAttempt.state == CallState.REQUESTED,
            )
            .values(state=CallState.IN_PROGRESS, connected_at=connected_at)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def set_provider_call(
        self,
        attempt_id: UUID,
        provider: str,
        provider_call_id: str,
    ) -> None:
        stmt = (
            update(CallAttempt)
            .where(CallAttempt.id == attempt_id)
            .values(provider=provider, provider_call_id=provider_call_id)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def set_recording(self, attempt_id: UUID, recording_ref: str) -> None:
        stmt = (
            update(CallAttempt)
            .where(CallAttempt.id == attempt_id)
            .values(recording_ref=recording_ref)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def list_active(self) -> Sequence[ActiveCallRow]:
        """List open attempts, newest first, with prospect and caller names."""
        stmt = (
            select(
                CallAttempt,
                Prospect.first_name,
                Prospect.last_name,
                Prospect.phone,
                User.first_name,
                User.last_name,
                User.email,
            )
            .join(Prospect, Prospect.id == CallAttempt.prospect_id)
            .outerjoin(User, User.id == CallAttempt.caller_id)
            .where(CallAttempt.state.in_(OPEN_STATES))
            .order_by(CallAttempt.started_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [
            ActiveCallRow(
                attempt=row[0],
                prospect_first_name=row[1],
                prospect_last_name=row[2],
                prospect_phone=row[3],
                caller_first_name=row[4],
                caller_last_name=row[5],
                caller_email=row[6],
            )
            for row in result.all()
        ]

    async def list_for_prospect(
        self,
        prospect_id: UUID,
        limit: int = 100,
    ) -> Sequence[CallAttempt]:
        """Get call attempts for a prospect, newest first."""
        stmt = (
            select(CallAttempt)
            .where(CallAttempt.prospect_id == prospect_id)
            .order_by(CallAttempt.started_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_logs(
        self,
        caller_id: UUID | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[CallAttempt]:
        """Global call log, optionally restricted to one caller."""
        stmt = select(CallAttempt)
        if caller_id is not None:
            stmt = stmt.where(CallAttempt.caller_id == caller_id)
        stmt = stmt.order_by(CallAttempt.started_at.desc()).limit(limit).offset(offset).execution_options(
            populate_existing=True
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    # Voicemail drops

    async def add_voicemail_drop(self, drop: VoicemailDrop) -> VoicemailDrop:
        self._session.add(drop)
        await self._session.flush()
        await self._session.refresh(drop)
        return drop

    async def list_voicemail_drops(self, prospect_id: UUID) -> Sequence[VoicemailDrop]:
        stmt = (
            select(VoicemailDrop)
            .where(VoicemailDrop.prospect_id == prospect_id)
            .order_by(VoicemailDrop.dropped_at.desc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()
