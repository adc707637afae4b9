"""
API router for lead lists.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.auth.middleware import CurrentUser
from salesfloor.auth.rbac import require_agent
from salesfloor.lead_lists.models import LeadListShare
from salesfloor.lead_lists.schemas import (
    LeadListCreate,
    LeadListResponse,
    LeadListSummary,
    LeadListUpdate,
    MembershipChangeResponse,
    ProspectIdsRequest,
    ShareRequest,
    ShareResponse,
)
from salesfloor.lead_lists.service import LeadListService, LeadListView
from salesfloor.shared.database import get_db_session

router = APIRouter(prefix="/api/lead-lists", tags=["lead-lists"])


def get_lead_list_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> LeadListService:
    """Dependency for lead list service."""
    return LeadListService(session=session)


def _to_response(view: LeadListView) -> LeadListResponse:
    lead_list = view.lead_list
    return LeadListResponse(
        id=lead_list.id,
        name=lead_list.name,
        description=lead_list.description,
        created_by=lead_list.created_by,
        created_at=lead_list.created_at,
        updated_at=lead_list.updated_at,
        prospect_ids=view.prospect_ids,
        prospect_count=len(view.prospect_ids),
        is_owner=view.access.is_owner,
        can_view=view.access.can_view,
        can_edit=view.access.can_edit,
    )


def _share_response(share: LeadListShare, email: str | None = None, name: str | None = None) -> ShareResponse:
    return ShareResponse(
        id=share.id,
        list_id=share.list_id,
        user_id=share.user_id,
        can_view=share.can_view,
        can_edit=share.can_edit,
        shared_by=share.shared_by,
        created_at=share.created_at,
        user_email=email,
        user_name=name,
    )


@router.get("", response_model=list[LeadListSummary])
async def list_lead_lists(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
) -> list[LeadListSummary]:
    return [
        LeadListSummary(
            id=lead_list.id,
            name=lead_list.name,
            description=lead_list.description,
            created_by=lead_list.created_by,
            created_at=lead_list.created_at,
            prospect_count=count,
            is_owner=access.is_owner,
            can_view=access.can_view,
            can_edit=access.can_edit,
        )
        for lead_list, access, count in await service.list_lists(current_user)
    ]


@router.post("", response_model=LeadListResponse, status_code=status.HTTP_201_CREATED)
async def create_lead_list(
    request: LeadListCreate,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> LeadListResponse:
    view = await service.create_list(
        current_user,
        name=request.name,
        description=request.description,
        prospect_ids=request.prospect_ids,
    )
    await session.commit()
    return _to_response(view)


@router.get("/{list_id}", response_model=LeadListResponse)
async def get_lead_list(
    list_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
) -> LeadListResponse:
    return _to_response(await service.get_list(list_id, current_user))


@router.patch("/{list_id}", response_model=LeadListResponse)
async def update_lead_list(
    list_id: UUID,
    request: LeadListUpdate,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> LeadListResponse:
    view = await service.update_list(
        list_id,
        current_user,
        name=request.name,
        description=request.description,
        prospect_ids=request.prospect_ids,
    )
    await session.commit()
    return _to_response(view)


@router.delete("/{list_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lead_list(
    list_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> Response:
    await service.delete_list(list_id, current_user)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{list_id}/prospects", response_model=MembershipChangeResponse)
async def add_prospects(
    list_id: UUID,
    request: ProspectIdsRequest,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> MembershipChangeResponse:
    added = await service.add_prospects(list_id, current_user, request.prospect_ids)
    await session.commit()
    return MembershipChangeResponse(list_id=list_id, changed=added)


@router.post("/{list_id}/prospects/remove", response_model=MembershipChangeResponse)
async def remove_prospects(
    list_id: UUID,
    request: ProspectIdsRequest,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> MembershipChangeResponse:
    removed = await service.remove_prospects(list_id, current_user, request.prospect_ids)
    await session.commit()
    return MembershipChangeResponse(list_id=list_id, changed=removed)


@router.get("/{list_id}/shares", response_model=list[ShareResponse])
async def list_shares(
    list_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
) -> list[ShareResponse]:
    return [
        _share_response(share, email=user.email, name=user.display_name)
        for share, user in await service.list_shares(list_id, current_user)
    ]


@router.post("/{list_id}/shares", response_model=ShareResponse)
async def share_lead_list(
    list_id: UUID,
    request: ShareRequest,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ShareResponse:
    share = await service.share_list(
        list_id,
        current_user,
        target_user_id=request.user_id,
        can_view=request.can_view,
        can_edit=request.can_edit,
    )
    await session.commit()
    return _share_response(share)


@router.delete("/{list_id}/shares/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unshare_lead_list(
    list_id: UUID,
    user_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[LeadListService, Depends(get_lead_list_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> Response:
    await service.unshare_list(list_id, current_user, user_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
