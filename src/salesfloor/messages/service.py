"""
Message service: send, list and mark read.

The sender is always the authenticated user. Only the recipient may mark a
message as read.
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from salesfloor.auth.middleware import CurrentUser
from salesfloor.messages.models import Message
from salesfloor.messages.repository import MessageFolder, MessageRepository, MessageRow
from salesfloor.shared.clock import utcnow
from salesfloor.shared.exceptions import ForbiddenError, NotFoundError, ValidationError
from salesfloor.shared.logging import get_logger

logger = get_logger(__name__)


class MessageService:
    """Service for message operations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = MessageRepository(session)

    async def send_message(self, sender: CurrentUser, recipient_id: UUID, content: str) -> MessageRow:
        """Store a message for an active recipient.

        Raises:
            ValidationError: If the content is blank.
            NotFoundError: If the recipient does not exist or is inactive.
        """
        content = content.strip()
        if not content:
            raise ValidationError(
                message="Message content must not be blank",
                details={"content": content},
            )

        recipient = await self._repo.get_user(recipient_id)
        if recipient is None or not recipient.is_active:
            raise NotFoundError(
                message="Recipient not found",
                details={"recipient_id": str(recipient_id)},
            )

        message = await self._repo.add(
            Message(
                sender_id=sender.id,
                recipient_id=recipient_id,
                content=content,
                created_at=utcnow(),
            )
        )
        logger.info(
            "Message sent",
            extra={
                "message_id": str(message.id),
                "sender_id": str(sender.id),
                "recipient_id": str(recipient_id),
            },
        )
        return await self._repo.get_row(message.id)

    async def list_messages(
        self,
        user: CurrentUser,
        folder: MessageFolder = MessageFolder.ALL,
        unread_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[MessageRow]:
        return await self._repo.list_for_user(
            user.id,
            folder=folder,
            unread_only=unread_only,
            limit=limit,
            offset=offset,
        )

    async def unread_count(self, user: CurrentUser) -> int:
        return await self._repo.unread_count(user.id)

    async def mark_read(self, message_id: UUID, user: CurrentUser) -> MessageRow:
        """Mark a received message as read. Reading it again keeps the first read_at."""
        message = await self._repo.get_by_id(message_id)
        if message is None:
            raise NotFoundError(
                message="Message not found",
                details={"message_id": str(message_id)},
            )
        if message.recipient_id != user.id:
            raise ForbiddenError(
                message="Only the recipient can mark a message as read",
                details={"message_id": str(message_id)},
            )

        if await self._repo.mark_read(message_id, utcnow()):
            logger.info(
                "Message read",
                extra={"message_id": str(message_id), "user_id": str(user.id)},
            )
        return await self._repo.get_row(message_id)
