"""
Repository for lead list persistence.
"""

from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.auth.models import User
from salesfloor.lead_lists.models import LeadList, LeadListMember, LeadListShare
from salesfloor.prospects.models import Prospect


class LeadListRepository:
    """Repository for lead list database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, lead_list: LeadList) -> LeadList:
        self._session.add(lead_list)
        await self._session.flush()
        await self._session.refresh(lead_list)
        return lead_list

    async def get_by_id(self, list_id: UUID) -> LeadList | None:
        stmt = select(LeadList).where(LeadList.id == list_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self) -> Sequence[LeadList]:
        stmt = select(LeadList).order_by(LeadList.created_at.desc())
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def list_visible_to(self, user_id: UUID) -> Sequence[LeadList]:
        """Lists the user owns or that are shared with view access."""
        shared = select(LeadListShare.list_id).where(
            LeadListShare.user_id == user_id,
            LeadListShare.can_view.is_(True),
        )
        stmt = (
            select(LeadList)
            .where(or_(LeadList.created_by == user_id, LeadList.id.in_(shared)))
            .order_by(LeadList.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return result.scalars().all()

    async def delete(self, lead_list: LeadList) -> None:
        await self._session.delete(lead_list)
        await self._session.flush()

    # Members

    async def member_ids(self, list_id: UUID) -> list[UUID]:
        stmt = (
            select(LeadListMember.prospect_id)
            .where(LeadListMember.list_id == list_id)
            .order_by(LeadListMember.added_at)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def existing_prospect_ids(self, prospect_ids: Iterable[UUID]) -> set[UUID]:
        ids = list(prospect_ids)
        if not ids:
            return set()
        stmt = select(Prospect.id).where(Prospect.id.in_(ids))
        result = await self._session.execute(stmt)
        return set(result.scalars().all())

    async def add_members(self, list_id: UUID, prospect_ids: Iterable[UUID]) -> int:
        """Add prospects not already on the list. Returns how many were added."""
        current = set(await self.member_ids(list_id))
        added = 0
        for prospect_id in prospect_ids:
            if prospect_id in current:
                continue
            self._session.add(LeadListMember(list_id=list_id, prospect_id=prospect_id))
            current.add(prospect_id)
            added += 1
        await self._session.flush()
        return added

    async def remove_members(self, list_id: UUID, prospect_ids: Iterable[UUID]) -> int:
        ids = list(prospect_ids)
        if not ids:
            return 0
        stmt = delete(LeadListMember).where(
            LeadListMember.list_id == list_id,
            LeadListMember.prospect_id.in_(ids),
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def clear_members(self, list_id: UUID) -> None:
        await self._session.execute(delete(LeadListMember).where(LeadListMember.list_id == list_id))

    async def member_counts(self, list_ids: Iterable[UUID]) -> dict[UUID, int]:
        ids = list(list_ids)
        if not ids:
            return {}
        stmt = (
            select(LeadListMember.list_id, func.count(LeadListMember.id))
            .where(LeadListMember.list_id.in_(ids))
            .group_by(LeadListMember.list_id)
        )
        result = await self._session.execute(stmt)
        return {list_id: count for list_id, count in result.all()}

    # Shares

    async def get_share(self, list_id: UUID, user_id: UUID) -> LeadListShare | None:
        stmt = select(LeadListShare).where(
            LeadListShare.list_id == list_id,
            LeadListShare.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def save_share(self, share: LeadListShare) -> LeadListShare:
        self._session.add(share)
        await self._session.flush()
        await self._session.refresh(share)
        return share

    async def delete_share(self, list_id: UUID, user_id: UUID) -> bool:
        stmt = delete(LeadListShare).where(
            LeadListShare.list_id == list_id,
            LeadListShare.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def list_shares(self, list_id: UUID) -> Sequence[tuple[LeadListShare, User]]:
        stmt = (
            select(LeadListShare, User)
            .join(User, User.id == LeadListShare.user_id)
            .where(LeadListShare.list_id == list_id)
            .order_by(LeadListShare.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [(share, user) for share, user in result.all()]

    async def user_exists(self, user_id: UUID) -> bool:
        result = await self._session.execute(select(User.id).where(User.id == user_id))
        return result.scalar_one_or_none() is not None
