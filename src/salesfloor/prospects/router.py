"""
API router for prospect management.
"""

import math
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.auth.middleware import CurrentUser
from salesfloor.auth.rbac import require_admin, require_agent, require_manager
from salesfloor.config import get_settings
from salesfloor.prospects.models import ProspectStatus
from salesfloor.prospects.schemas import (
    AssignLeadRequest,
    LeadAssignmentResponse,
    ProspectCreate,
    ProspectListResponse,
    ProspectResponse,
    ProspectUpdate,
    StatusChangeRequest,
    StatusChangeResponse,
)
from salesfloor.prospects.service import ProspectService
from salesfloor.shared.database import get_db_session
from salesfloor.shared.exceptions import NotFoundError

router = APIRouter(prefix="/api/prospects", tags=["prospects"])


def get_prospect_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ProspectService:
    """Dependency for prospect service."""
    return ProspectService(session=session)


@router.get(
    "",
    response_model=ProspectListResponse,
    summary="List prospects",
)
async def list_prospects(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[ProspectService, Depends(get_prospect_service)],
    status_filter: Annotated[ProspectStatus | None, Query(alias="status")] = None,
    assigned_to: Annotated[UUID | None, Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int | None, Query(ge=1, le=500)] = None,
) -> ProspectListResponse:
    result = await service.list_prospects(
        status=status_filter,
        assigned_to=assigned_to,
        page=page,
        page_size=page_size or get_settings().default_page_size,
    )
    return ProspectListResponse(
        items=[ProspectResponse.model_validate(p) for p in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=math.ceil(result.total / result.page_size) if result.total else 0,
    )


@router.post(
    "",
    response_model=ProspectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a prospect",
)
async def create_prospect(
    request: ProspectCreate,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[ProspectService, Depends(get_prospect_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ProspectResponse:
    prospect = await service.create_prospect(request.model_dump(), created_by=current_user.id)
    await session.commit()
    return ProspectResponse.model_validate(prospect)


@router.get(
    "/{prospect_id}",
    response_model=ProspectResponse,
)
async def get_prospect(
    prospect_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[ProspectService, Depends(get_prospect_service)],
) -> ProspectResponse:
    return ProspectResponse.model_validate(await service.get_prospect(prospect_id))


@router.patch(
    "/{prospect_id}",
    response_model=ProspectResponse,
)
async def update_prospect(
    prospect_id: UUID,
    request: ProspectUpdate,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[ProspectService, Depends(get_prospect_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ProspectResponse:
    prospect = await service.update_prospect(
        prospect_id,
        request.model_dump(exclude_unset=True),
        changed_by=current_user.id,
    )
    await session.commit()
    return ProspectResponse.model_validate(prospect)


@router.delete(
    "/{prospect_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a prospect (admin only)",
)
async def delete_prospect(
    prospect_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_admin)],
    service: Annotated[ProspectService, Depends(get_prospect_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> Response:
    await service.delete_prospect(prospect_id)
    await session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{prospect_id}/status",
    response_model=ProspectResponse,
    summary="Change prospect status",
)
async def change_status(
    prospect_id: UUID,
    request: StatusChangeRequest,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[ProspectService, Depends(get_prospect_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ProspectResponse:
    prospect = await service.change_status(
        prospect_id,
        request.status,
        changed_by=current_user.id,
        reason=request.reason,
    )
    await session.commit()
    return ProspectResponse.model_validate(prospect)


@router.get(
    "/{prospect_id}/status-history",
    response_model=list[StatusChangeResponse],
)
async def status_history(
    prospect_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[ProspectService, Depends(get_prospect_service)],
) -> list[StatusChangeResponse]:
    entries = await service.status_history(prospect_id)
    return [StatusChangeResponse.model_validate(e) for e in entries]


@router.post(
    "/{prospect_id}/assign",
    response_model=LeadAssignmentResponse,
    summary="Assign a prospect to an agent",
)
async def assign_lead(
    prospect_id: UUID,
    request: AssignLeadRequest,
    current_user: Annotated[CurrentUser, Depends(require_manager)],
    service: Annotated[ProspectService, Depends(get_prospect_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> LeadAssignmentResponse:
    assignment = await service.assign_lead(
        prospect_id,
        assigned_to=request.assigned_to,
        assigned_by=current_user.id,
        expires_at=request.expires_at,
    )
    await session.commit()
    return LeadAssignmentResponse.model_validate(assignment)


@router.get(
    "/{prospect_id}/assignment",
    response_model=LeadAssignmentResponse,
)
async def get_assignment(
    prospect_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[ProspectService, Depends(get_prospect_service)],
) -> LeadAssignmentResponse:
    assignment = await service.get_active_assignment(prospect_id)
    if assignment is None:
        raise NotFoundError(
            message="Prospect has no active assignment",
            details={"prospect_id": str(prospect_id)},
        )
    return LeadAssignmentResponse.model_validate(assignment)
