"""
Pydantic schemas for messages.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):
    recipient_id: UUID
    content: str = Field(..., min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    id: UUID
    sender_id: UUID
    sender_name: str
    recipient_id: UUID
    recipient_name: str
    content: str
    created_at: datetime
    read_at: datetime | None
    is_read: bool


class UnreadCountResponse(BaseModel):
    unread: int
