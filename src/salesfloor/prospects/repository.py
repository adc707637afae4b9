"""
Repository for prospect, status log and lead assignment persistence.
"""

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.auth.models import User
from salesfloor.prospects.models import (
    LeadAssignment,
    Prospect,
    ProspectStatus,
    ProspectStatusLog,
)


class ProspectRepository:
    """Repository for prospect database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async database session.
        """
        self._session = session

    async def get_by_id(self, prospect_id: UUID) -> Prospect | None:
        stmt = select(Prospect).where(Prospect.id == prospect_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, prospect_id: UUID) -> Prospect | None:
        """Load a prospect holding its row lock until the transaction ends.

        SQLite does not render ``FOR UPDATE``; there the transaction already
        holds the database write lock.
        """
        stmt = select(Prospect).where(Prospect.id == prospect_id).with_for_update()
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_phone(self, phone: str) -> Prospect | None:
        stmt = select(Prospect).where(Prospect.phone == phone)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find(
        self,
        status: ProspectStatus | None = None,
        assigned_to: UUID | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[Prospect], int]:
        """List prospects with optional filters.

        Args:
            status: Only prospects in this status.
            assigned_to: Only prospects with an active assignment to this user.
            limit: Page size.
            offset: Rows to skip.

        Returns:
            Tuple of (prospects, total count before pagination).
        """
        stmt = select(Prospect)
        if status is not None:
            stmt = stmt.where(Prospect.status == status)
        if assigned_to is not None:
            stmt = stmt.join(
                LeadAssignment,
                (LeadAssignment.prospect_id == Prospect.id)
                & (LeadAssignment.assigned_to == assigned_to)
                & LeadAssignment.is_active.is_(True),
            )

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self._session.execute(count_stmt)).scalar_one()

        stmt = stmt.order_by(Prospect.created_at.desc(), Prospect.id).limit(limit).offset(offset)
        result = await self._session.execute(stmt)
        return result.scalars().all(), total

    async def add(self, prospect: Prospect) -> Prospect:
        self._session.add(prospect)
        await self._session.flush()
        await self._session.refresh(prospect)
        return prospect

    async def delete(self, prospect: Prospect) -> None:
        await self._session.delete(prospect)
        await self._session.flush()

    async def set_last_call_at(self, prospect_id: UUID, at: datetime) -> None:
        stmt = (
            update(Prospect)
            .where(Prospect.id == prospect_id)
            .values(last_call_at=at)
            .execution_options(synchronize_session="evaluate")
        )
        await self._session.execute(stmt)

    # Status log

    async def add_status_log(self, entry: ProspectStatusLog) -> ProspectStatusLog:
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def list_status_log(self, prospect_id: UUID) -> Sequence[ProspectStatusLog]:
        stmt = (
            select(ProspectStatusLog)
            .where(ProspectStatusLog.prospect_id == prospect_id)
            .order_by(ProspectStatusLog.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    # Lead assignments

    async def deactivate_assignments(self, prospect_id: UUID) -> None:
        stmt = (
            update(LeadAssignment)
            .where(
                LeadAssignment.prospect_id == prospect_id,
                LeadAssignment.is_active.is_(True),
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def get_assignment(self, prospect_id: UUID, assigned_to: UUID) -> LeadAssignment | None:
        stmt = select(LeadAssignment).where(
            LeadAssignment.prospect_id == prospect_id,
            LeadAssignment.assigned_to == assigned_to,
        ).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_active_assignment(self, prospect_id: UUID) -> LeadAssignment | None:
        stmt = (
            select(LeadAssignment)
            .where(
                LeadAssignment.prospect_id == prospect_id,
                LeadAssignment.is_active.is_(True),
            )
            .order_by(LeadAssignment.assigned_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def save_assignment(self, assignment: LeadAssignment) -> LeadAssignment:
        self._session.add(assignment)
        await self._session.flush()
        await self._session.refresh(assignment)
        return assignment

    async def user_exists(self, user_id: UUID) -> bool:
        result = await self._session.execute(select(User.id).where(User.id == user_id))
        return result.scalar_one_or_none() is not None
