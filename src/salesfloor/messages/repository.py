"""
Repository for message persistence.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Sequence
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from salesfloor.auth.models import User
from salesfloor.messages.models import Message


class MessageFolder(str, Enum):
    ALL = "all"
    INBOX = "inbox"
    SENT = "sent"


@dataclass(frozen=True)
class MessageRow:
    """A message with sender and recipient display fields."""

    message: Message
    sender_first_name: str | None
    sender_last_name: str | None
    sender_email: str
    recipient_first_name: str | None
    recipient_last_name: str | None
    recipient_email: str


class MessageRepository:
    """Repository for message database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, message: Message) -> Message:
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def get_by_id(self, message_id: UUID) -> Message | None:
        stmt = (
            select(Message)
            .where(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_row(self, message_id: UUID) -> MessageRow | None:
        rows = await self._select_rows(Message.id == message_id, limit=1, offset=0)
        return rows[0] if rows else None

    async def list_for_user(
        self,
        user_id: UUID,
        folder: MessageFolder = MessageFolder.ALL,
        unread_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[MessageRow]:
        """Messages the user sent or received, newest first."""
        if folder == MessageFolder.INBOX:
            conditions = [Message.recipient_id == user_id]
        elif folder == MessageFolder.SENT:
            conditions = [Message.sender_id == user_id]
        else:
            conditions = [or_(Message.sender_id == user_id, Message.recipient_id == user_id)]
        if unread_only:
            conditions.append(Message.recipient_id == user_id)
            conditions.append(Message.read_at.is_(None))
        return await self._select_rows(*conditions, limit=limit, offset=offset)

    async def mark_read(self, message_id: UUID, read_at: datetime) -> bool:
        """Set read_at once. False when the message was already read."""
        stmt = (
            update(Message)
            .where(Message.id == message_id, Message.read_at.is_(None))
            .values(read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def unread_count(self, user_id: UUID) -> int:
        stmt = select(func.count(Message.id)).where(
            Message.recipient_id == user_id,
            Message.read_at.is_(None),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def get_user(self, user_id: UUID) -> User | None:
        result = await self._session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def _select_rows(self, *conditions, limit: int, offset: int) -> list[MessageRow]:
        sender = aliased(User)
        recipient = aliased(User)
        stmt = (
            select(
                Message,
                sender.first_name,
                sender.last_name,
                sender.email,
                recipient.first_name,
                recipient.last_name,
                recipient.email,
            )
            .join(sender, sender.id == Message.sender_id)
            .join(recipient, recipient.id == Message.recipient_id)
            .where(*conditions)
            .order_by(Message.created_at.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [
            MessageRow(
                message=row[0],
                sender_first_name=row[1],
                sender_last_name=row[2],
                sender_email=row[3],
                recipient_first_name=row[4],
                recipient_last_name=row[5],
                recipient_email=row[6],
            )
            for row in result.all()
        ]
