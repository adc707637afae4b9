"""
API router for call lifecycle endpoints.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.auth.middleware import CurrentUser
from salesfloor.auth.rbac import Role, require_agent
from salesfloor.calls.lifecycle import CallLifecycleManager
from salesfloor.calls.repository import CallAttemptRepository
from salesfloor.calls.schemas import (
    ActiveCallListResponse,
    ActiveCallResponse,
    AdmissionResponse,
    CallAttemptListResponse,
    CallAttemptResponse,
    EndCallRequest,
    PlaceCallRequest,
    StartCallRequest,
    VoicemailDropRequest,
    VoicemailDropResponse,
)
from salesfloor.config import get_settings
from salesfloor.prospects.repository import ProspectRepository
from salesfloor.shared.database import get_db_session
from salesfloor.shared.exceptions import NotFoundError
from salesfloor.shared.logging import get_logger
from salesfloor.telephony.config import TelephonyConfig
from salesfloor.telephony.factory import get_telephony_config, get_telephony_provider
from salesfloor.telephony.interface import TelephonyProvider

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["calls"])


def get_lifecycle_manager(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> CallLifecycleManager:
    """Dependency for the call lifecycle manager."""
    return CallLifecycleManager(session=session)


@router.get(
    "/prospects/{prospect_id}/can-call",
    response_model=AdmissionResponse,
    summary="Check whether a prospect may be dialed",
)
async def can_call(
    prospect_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    manager: Annotated[CallLifecycleManager, Depends(get_lifecycle_manager)],
) -> AdmissionResponse:
    admission = await manager.can_call(prospect_id, current_user.id)
    return AdmissionResponse(
        allowed=admission.allowed,
        reason=admission.reason,
        last_call_at=admission.last_call_at,
        retry_after_seconds=admission.retry_after_seconds,
    )


@router.post(
    "/prospects/{prospect_id}/start-call",
    response_model=CallAttemptResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record the start of an agent-dialed call",
    description="Fails with 409 if the prospect already has an open call or is cooling down.",
)
async def start_call(
    prospect_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    manager: Annotated[CallLifecycleManager, Depends(get_lifecycle_manager)],
    request: StartCallRequest | None = None,
) -> CallAttemptResponse:
    request = request or StartCallRequest()
    attempt = await manager.start_call(
        prospect_id,
        current_user.id,
        phone_number=request.phone_number,
        from_number=request.from_number,
    )
    await manager.commit()
    return CallAttemptResponse.model_validate(attempt)


@router.post(
    "/prospects/{prospect_id}/place-call",
    response_model=CallAttemptResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Have the telephony provider dial the prospect",
)
async def place_call(
    prospect_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    manager: Annotated[CallLifecycleManager, Depends(get_lifecycle_manager)],
    provider: Annotated[TelephonyProvider, Depends(get_telephony_provider)],
    telephony_config: Annotated[TelephonyConfig, Depends(get_telephony_config)],
    request: PlaceCallRequest | None = None,
) -> CallAttemptResponse:
    request = request or PlaceCallRequest()
    attempt = await manager.place_call(
        prospect_id,
        current_user.id,
        provider=provider,
        callback_url=telephony_config.get_webhook_url(provider.name),
        from_number=request.from_number or telephony_config.default_from_number(),
        phone_number=request.phone_number,
    )
    return CallAttemptResponse.model_validate(attempt)


@router.post(
    "/prospects/{prospect_id}/end-call",
    response_model=CallAttemptResponse,
    summary="Record the end of a call",
    description="Fails with 404 for an unknown attempt and 409 if it has already ended.",
)
async def end_call(
    prospect_id: UUID,
    request: EndCallRequest,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    manager: Annotated[CallLifecycleManager, Depends(get_lifecycle_manager)],
) -> CallAttemptResponse:
    attempt = await manager.end_call(
        prospect_id,
        request.call_attempt_id,
        outcome=request.outcome,
        duration_seconds=request.duration_seconds,
        notes=request.notes,
        recording_ref=request.recording_ref,
    )
    await manager.commit()
    logger.info(
        "End call recorded",
        extra={"user_id": str(current_user.id), "call_attempt_id": str(attempt.id)},
    )
    return CallAttemptResponse.model_validate(attempt)


@router.post(
    "/prospects/{prospect_id}/voicemail-drops",
    response_model=VoicemailDropResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Log a voicemail dropped into an open call",
)
async def drop_voicemail(
    prospect_id: UUID,
    request: VoicemailDropRequest,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    manager: Annotated[CallLifecycleManager, Depends(get_lifecycle_manager)],
) -> VoicemailDropResponse:
    drop = await manager.record_voicemail_drop(
        prospect_id,
        request.call_attempt_id,
        dropped_by=current_user.id,
        voicemail_ref=request.voicemail_ref,
    )
    await manager.commit()
    return VoicemailDropResponse.model_validate(drop)


@router.get(
    "/prospects/{prospect_id}/voicemail-drops",
    response_model=list[VoicemailDropResponse],
)
async def list_voicemail_drops(
    prospect_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    manager: Annotated[CallLifecycleManager, Depends(get_lifecycle_manager)],
) -> list[VoicemailDropResponse]:
    drops = await manager.voicemail_drops(prospect_id)
    return [VoicemailDropResponse.model_validate(d) for d in drops]


@router.get(
    "/active-calls",
    response_model=ActiveCallListResponse,
    summary="List calls currently open",
)
async def active_calls(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    manager: Annotated[CallLifecycleManager, Depends(get_lifecycle_manager)],
) -> ActiveCallListResponse:
    calls = await manager.active_calls()
    return ActiveCallListResponse(
        items=[ActiveCallResponse.model_validate(call) for call in calls],
        total=len(calls),
    )


@router.get(
    "/prospects/{prospect_id}/call-history",
    response_model=CallAttemptListResponse,
    summary="List call attempts for a prospect",
)
async def call_history(
    prospect_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> CallAttemptListResponse:
    if await ProspectRepository(session).get_by_id(prospect_id) is None:
        raise NotFoundError(
            message="Prospect not found",
            details={"prospect_id": str(prospect_id)},
        )
    attempts = await CallAttemptRepository(session).list_for_prospect(prospect_id, limit=limit)
    return CallAttemptListResponse(
        items=[CallAttemptResponse.model_validate(a) for a in attempts],
        total=len(attempts),
    )


@router.get(
    "/calls",
    response_model=CallAttemptListResponse,
    summary="Call log",
    description="Agents see their own calls; managers and admins may filter by caller.",
)
async def call_log(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
    caller_id: Annotated[UUID | None, Query()] = None,
    limit: Annotated[int | None, Query(ge=1, le=1000)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> CallAttemptListResponse:
    if not Role.from_string(current_user.role).has_permission(Role.MANAGER):
        caller_id = current_user.id
    attempts = await CallAttemptRepository(session).list_logs(
        caller_id=caller_id,
        limit=limit or get_settings().call_log_limit,
        offset=offset,
    )
    return CallAttemptListResponse(
        items=[CallAttemptResponse.model_validate(a) for a in attempts],
        total=len(attempts),
    )
