"""
Tests for internal messages: sending, folders and read receipts.
"""
from __future__ import annotations

from uuid import uuid4

import pytest

from conftest import auth_headers
from salesfloor.auth.middleware import CurrentUser
from salesfloor.messages.repository import MessageFolder
from salesfloor.messages.service import MessageService
from salesfloor.shared.exceptions import ForbiddenError, NotFoundError, ValidationError


def _current(user) -> CurrentUser:
    return CurrentUser(id=user.id, email=user.email, role=user.role)


class TestMessageService:
    @pytest.mark.asyncio
    async def test_send_and_list_by_folder(self, db_session, users) -> None:
        service = MessageService(db_session)
        agent = _current(users["agent"])
        manager = _current(users["manager"])

        sent = await service.send_message(agent, manager.id, "  Can you take the Acme callback?  ")
        await service.send_message(manager, agent.id, "Sure")

        assert sent.message.content == "Can you take the Acme callback?"
        assert sent.message.sender_id == agent.id
        assert sent.recipient_first_name == "Max"

        inbox = await service.list_messages(manager, folder=MessageFolder.INBOX)
        assert [row.message.id for row in inbox] == [sent.message.id]

        outbox = await service.list_messages(agent, folder=MessageFolder.SENT)
        assert [row.message.id for row in outbox] == [sent.message.id]

        assert len(await service.list_messages(agent)) == 2
        assert await service.list_messages(_current(users["agent2"])) == []

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, db_session, users) -> None:
        with pytest.raises(NotFoundError):
            await MessageService(db_session).send_message(_current(users["agent"]), uuid4(), "hello")

    @pytest.mark.asyncio
    async def test_blank_content_rejected(self, db_session, users) -> None:
        with pytest.raises(ValidationError):
            await MessageService(db_session).send_message(
                _current(users["agent"]), users["manager"].id, "   "
            )

    @pytest.mark.asyncio
    async def test_mark_read_by_recipient_only(self, db_session, users) -> None:
        service = MessageService(db_session)
        agent = _current(users["agent"])
        manager = _current(users["manager"])
        sent = await service.send_message(agent, manager.id, "Lunch?")
        assert await service.unread_count(manager) == 1

        with pytest.raises(ForbiddenError):
            await service.mark_read(sent.message.id, agent)

        first = await service.mark_read(sent.message.id, manager)
        assert first.message.is_read
        read_at = first.message.read_at
        again = await service.mark_read(sent.message.id, manager)
        assert again.message.read_at == read_at

        assert await service.unread_count(manager) == 0
        assert await service.list_messages(manager, unread_only=True) == []

    @pytest.mark.asyncio
    async def test_mark_read_unknown_message(self, db_session, users) -> None:
        with pytest.raises(NotFoundError):
            await MessageService(db_session).mark_read(uuid4(), _current(users["agent"]))


class TestMessageRouter:
    @pytest.mark.asyncio
    async def test_send_read_flow(self, async_client, users) -> None:
        agent = auth_headers(users["agent"])
        manager = auth_headers(users["manager"])

        response = await async_client.post(
            "/api/messages",
            json={"recipient_id": str(users["manager"].id), "content": "Need a hand on line 2"},
            headers=agent,
        )
        assert response.status_code == 201
        created = response.json()
        assert created["sender_name"] == "Alex Agent"
        assert created["recipient_name"] == "Max Manager"
        assert created["is_read"] is False

        response = await async_client.get("/api/messages/unread-count", headers=manager)
        assert response.json() == {"unread": 1}

        response = await async_client.patch(f"/api/messages/{created['id']}/read", headers=agent)
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "FORBIDDEN"

        response = await async_client.patch(f"/api/messages/{created['id']}/read", headers=manager)
        assert response.status_code == 200
        assert response.json()["is_read"] is True

        response = await async_client.get(
            "/api/messages", params={"folder": "inbox"}, headers=manager
        )
        [message] = response.json()
        assert message["id"] == created["id"]
        assert message["read_at"] is not None

    @pytest.mark.asyncio
    async def test_unknown_recipient_is_404(self, async_client, users) -> None:
        response = await async_client.post(
            "/api/messages",
            json={"recipient_id": str(uuid4()), "content": "hello"},
            headers=auth_headers(users["agent"]),
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_empty_content_is_422(self, async_client, users) -> None:
        response = await async_client.post(
            "/api/messages",
            json={"recipient_id": str(users["manager"].id), "content": ""},
            headers=auth_headers(users["agent"]),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_requires_token(self, async_client) -> None:
        response = await async_client.get("/api/messages")

        assert response.status_code == 401
