"""
Lead list service with owner/share access rules.

Admins see and edit every list. Everyone else sees lists they created or
that were shared with ``can_view``; editing needs ownership or ``can_edit``.
Only the owner or an admin may delete a list or manage its shares.
"""

from dataclasses import dataclass
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.auth.middleware import CurrentUser
from salesfloor.auth.models import User
from salesfloor.lead_lists.models import LeadList, LeadListShare
from salesfloor.lead_lists.repository import LeadListRepository
from salesfloor.shared.exceptions import ForbiddenError, NotFoundError, ValidationError
from salesfloor.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ListAccess:
    can_view: bool
    can_edit: bool
    is_owner: bool


@dataclass(frozen=True)
class LeadListView:
    lead_list: LeadList
    prospect_ids: list[UUID]
    access: ListAccess


class LeadListService:
    """Service for lead list operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = LeadListRepository(session)

    async def create_list(
        self,
        user: CurrentUser,
        name: str,
        description: str | None = None,
        prospect_ids: Sequence[UUID] = (),
    ) -> LeadListView:
        await self._require_prospects(prospect_ids)
        lead_list = await self._repo.add(
            LeadList(name=name, description=description, created_by=user.id)
        )
        await self._repo.add_members(lead_list.id, prospect_ids)

        logger.info(
            "Lead list created",
            extra={
                "list_id": str(lead_list.id),
                "user_id": str(user.id),
                "prospect_count": len(set(prospect_ids)),
            },
        )
        return await self._view(lead_list, self._owner_access(user, lead_list))

    async def list_lists(self, user: CurrentUser) -> list[tuple[LeadList, ListAccess, int]]:
        """Lists visible to the user with their member counts."""
        if user.is_admin:
            lists = await self._repo.list_all()
        else:
            lists = await self._repo.list_visible_to(user.id)
        counts = await self._repo.member_counts(lst.id for lst in lists)

        visible = []
        for lead_list in lists:
            access = await self._access(user, lead_list)
            visible.append((lead_list, access, counts.get(lead_list.id, 0)))
        return visible

    async def get_list(self, list_id: UUID, user: CurrentUser) -> LeadListView:
        lead_list, access = await self._load(list_id, user)
        if not access.can_view:
            raise self._forbidden(list_id, "view")
        return await self._view(lead_list, access)

    async def update_list(
        self,
        list_id: UUID,
        user: CurrentUser,
        name: str | None = None,
        description: str | None = None,
        prospect_ids: Sequence[UUID] | None = None,
    ) -> LeadListView:
        """Update name/description; a given ``prospect_ids`` replaces the members."""
        lead_list, access = await self._load(list_id, user)
        if not access.can_edit:
            raise self._forbidden(list_id, "edit")

        if name is not None:
            lead_list.name = name
        if description is not None:
            lead_list.description = description
        if prospect_ids is not None:
            await self._require_prospects(prospect_ids)
            await self._repo.clear_members(list_id)
            await self._repo.add_members(list_id, prospect_ids)

        await self._session.flush()
        await self._session.refresh(lead_list)
        return await self._view(lead_list, access)

    async def delete_list(self, list_id: UUID, user: CurrentUser) -> None:
        lead_list, access = await self._load(list_id, user)
        if not (access.is_owner or user.is_admin):
            raise self._forbidden(list_id, "delete")
        await self._repo.delete(lead_list)
        logger.info("Lead list deleted", extra={"list_id": str(list_id), "user_id": str(user.id)})

    async def add_prospects(
        self,
        list_id: UUID,
        user: CurrentUser,
        prospect_ids: Sequence[UUID],
    ) -> int:
        _, access = await self._load(list_id, user)
        if not access.can_edit:
            raise self._forbidden(list_id, "edit")
        await self._require_prospects(prospect_ids)
        return await self._repo.add_members(list_id, prospect_ids)

    async def remove_prospects(
        self,
        list_id: UUID,
        user: CurrentUser,
        prospect_ids: Sequence[UUID],
    ) -> int:
        _, access = await self._load(list_id, user)
        if not access.can_edit:
            raise self._forbidden(list_id, "edit")
        return await self._repo.remove_members(list_id, prospect_ids)

    async def share_list(
        self,
        list_id: UUID,
        user: CurrentUser,
        target_user_id: UUID,
        can_view: bool = True,
        can_edit: bool = False,
    ) -> LeadListShare:
        """Grant or update another user's access (upsert on list and user)."""
        _, access = await self._load(list_id, user)
        if not (access.is_owner or user.is_admin):
            raise self._forbidden(list_id, "share")
        if not await self._repo.user_exists(target_user_id):
            raise NotFoundError(
                message="User not found",
                details={"user_id": str(target_user_id)},
            )

        share = await self._repo.get_share(list_id, target_user_id)
        if share is None:
            share = LeadListShare(list_id=list_id, user_id=target_user_id, shared_by=user.id)
        share.can_view = can_view or can_edit
        share.can_edit = can_edit
        share = await self._repo.save_share(share)

        logger.info(
            "Lead list shared",
            extra={
                "list_id": str(list_id),
                "user_id": str(user.id),
                "target_user_id": str(target_user_id),
                "can_edit": can_edit,
            },
        )
        return share

    async def unshare_list(self, list_id: UUID, user: CurrentUser, target_user_id: UUID) -> None:
        _, access = await self._load(list_id, user)
        if not (access.is_owner or user.is_admin):
            raise self._forbidden(list_id, "share")
        if not await self._repo.delete_share(list_id, target_user_id):
            raise NotFoundError(
                message="List is not shared with this user",
                details={"list_id": str(list_id), "user_id": str(target_user_id)},
            )

    async def list_shares(
        self,
        list_id: UUID,
        user: CurrentUser,
    ) -> Sequence[tuple[LeadListShare, User]]:
        _, access = await self._load(list_id, user)
        if not access.can_view:
            raise self._forbidden(list_id, "view")
        return await self._repo.list_shares(list_id)

    async def _load(self, list_id: UUID, user: CurrentUser) -> tuple[LeadList, ListAccess]:
        lead_list = await self._repo.get_by_id(list_id)
        if lead_list is None:
            raise NotFoundError(
                message="Lead list not found",
                details={"list_id": str(list_id)},
            )
        return lead_list, await self._access(user, lead_list)

    async def _access(self, user: CurrentUser, lead_list: LeadList) -> ListAccess:
        if lead_list.created_by == user.id or user.is_admin:
            return self._owner_access(user, lead_list)
        share = await self._repo.get_share(lead_list.id, user.id)
        if share is None:
            return ListAccess(can_view=False, can_edit=False, is_owner=False)
        return ListAccess(can_view=share.can_view, can_edit=share.can_edit, is_owner=False)

    @staticmethod
    def _owner_access(user: CurrentUser, lead_list: LeadList) -> ListAccess:
        return ListAccess(can_view=True, can_edit=True, is_owner=lead_list.created_by == user.id)

    async def _view(self, lead_list: LeadList, access: ListAccess) -> LeadListView:
        return LeadListView(
            lead_list=lead_list,
            prospect_ids=await self._repo.member_ids(lead_list.id),
            access=access,
        )

    async def _require_prospects(self, prospect_ids: Sequence[UUID]) -> None:
        wanted = set(prospect_ids)
        missing = wanted - await self._repo.existing_prospect_ids(wanted)
        if missing:
            raise ValidationError(
                message="Unknown prospect ids",
                details={"prospect_ids": sorted(str(p) for p in missing)},
            )

    @staticmethod
    def _forbidden(list_id: UUID, action: str) -> ForbiddenError:
        return ForbiddenError(
            message=f"Not allowed to {action} this lead list",
            details={"list_id": str(list_id)},
        )
