"""
API router for messages.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.auth.middleware import CurrentUser
from salesfloor.auth.rbac import require_agent
from salesfloor.messages.repository import MessageFolder, MessageRow
from salesfloor.messages.schemas import MessageResponse, SendMessageRequest, UnreadCountResponse
from salesfloor.messages.service import MessageService
from salesfloor.shared.database import get_db_session

router = APIRouter(prefix="/api/messages", tags=["messages"])


def get_message_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> MessageService:
    """Dependency for message service."""
    return MessageService(session=session)


def _display_name(first: str | None, last: str | None, email: str) -> str:
    return " ".join(part for part in (first, last) if part) or email


def _to_response(row: MessageRow) -> MessageResponse:
    message = row.message
    return MessageResponse(
        id=message.id,
        sender_id=message.sender_id,
        sender_name=_display_name(row.sender_first_name, row.sender_last_name, row.sender_email),
        recipient_id=message.recipient_id,
        recipient_name=_display_name(
            row.recipient_first_name, row.recipient_last_name, row.recipient_email
        ),
        content=message.content,
        created_at=message.created_at,
        read_at=message.read_at,
        is_read=message.is_read,
    )


@router.post(
    "",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message to another user",
)
async def send_message(
    request: SendMessageRequest,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[MessageService, Depends(get_message_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> MessageResponse:
    row = await service.send_message(current_user, request.recipient_id, request.content)
    await session.commit()
    return _to_response(row)


@router.get(
    "",
    response_model=list[MessageResponse],
    summary="List messages sent or received by the current user",
)
async def list_messages(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[MessageService, Depends(get_message_service)],
    folder: Annotated[MessageFolder, Query()] = MessageFolder.ALL,
    unread_only: Annotated[bool, Query()] = False,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[MessageResponse]:
    rows = await service.list_messages(
        current_user,
        folder=folder,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    return [_to_response(row) for row in rows]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[MessageService, Depends(get_message_service)],
) -> UnreadCountResponse:
    return UnreadCountResponse(unread=await service.unread_count(current_user))


@router.patch(
    "/{message_id}/read",
    response_model=MessageResponse,
    summary="Mark a received message as read",
)
async def mark_read(
    message_id: UUID,
    current_user: Annotated[CurrentUser, Depends(require_agent)],
    service: Annotated[MessageService, Depends(get_message_service)],
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> MessageResponse:
    row = await service.mark_read(message_id, current_user)
    await session.commit()
    return _to_response(row)
