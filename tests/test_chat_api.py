import json
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.core.security import create_access_token
from app.services.chat import chat_service as chat_service_module
from app.services.chat.chat_service import ChatService

CHAT = "chat-456"
SENDER = "user-123"
RECIPIENT = "user-789"


async def add_member(client, auth, chat_id=CHAT, actor=SENDER, member=RECIPIENT):
    response = await client.post(
        f"/api/chat/{chat_id}/participants", json={"userId": member}, headers=auth(actor)
    )
    assert response.status_code == 201
    return response.json()["data"]


async def send(client, auth, text="Hello", chat_id=CHAT, user=SENDER):
    response = await client.post(
        "/api/chat/send", json={"chatId": chat_id, "message": text}, headers=auth(user)
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def unread(client, auth, user=RECIPIENT, chat_id=CHAT):
    response = await client.get(f"/api/chat/{chat_id}/unread-count", headers=auth(user))
    assert response.status_code == 200
    return response.json()["data"]["unreadCount"]


async def test_send_message_sets_sent_and_bumps_recipient_unread(client, auth):
    await add_member(client, auth)
    assert await unread(client, auth) == 0

    response = await client.post(
        "/api/chat/send", json={"chatId": CHAT, "message": "Hello"}, headers=auth(SENDER)
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["sent_at"] is not None
    assert body["data"]["read_at"] is None
    assert body["data"]["status"] == "sent"
    assert await unread(client, auth) == 1
    assert await unread(client, auth, user=SENDER) == 0


async def test_first_participant_becomes_admin(client, auth):
    data = await add_member(client, auth)
    assert data["role"] == "member"

    response = await client.get(f"/api/chat/{CHAT}/participants", headers=auth(SENDER))
    assert response.json()["data"]["participants"] == [SENDER, RECIPIENT]

    chats = await client.get("/api/chat/", headers=auth(SENDER))
    assert chats.json()["data"][0]["role"] == "admin"


async def test_mark_read_is_idempotent(client, auth):
    await add_member(client, auth)
    message = await send(client, auth)

    first = await client.patch(f"/api/chat/message/{message['id']}/read", headers=auth(RECIPIENT))
    second = await client.patch(f"/api/chat/message/{message['id']}/read", headers=auth(RECIPIENT))

    assert first.status_code == second.status_code == 200
    first_data, second_data = first.json()["data"], second.json()["data"]
    assert first_data["status"] == "read"
    assert first_data["delivered_at"] is not None
    assert first_data["read_at"] == second_data["read_at"]


async def test_sender_reading_own_message_changes_nothing(client, auth):
    await add_member(client, auth)
    message = await send(client, auth)

    response = await client.patch(f"/api/chat/message/{message['id']}/read", headers=auth(SENDER))

    assert response.json()["data"]["read_at"] is None


async def test_mark_read_unknown_message_is_not_found(client, auth):
    response = await client.patch(f"/api/chat/message/{uuid.uuid4()}/read", headers=auth(RECIPIENT))

    assert response.status_code == 404
    body = response.json()
    assert body["status"] == "error"
    assert "not found" in body["message"]


async def test_mark_read_rejects_malformed_id(client, auth):
    response = await client.patch("/api/chat/message/not-a-uuid/read", headers=auth(RECIPIENT))

    assert response.status_code == 422
    assert response.json()["errors"][0]["field"] == "message_id"


async def test_delivered_then_read(client, auth):
    await add_member(client, auth)
    message = await send(client, auth)

    delivered = await client.patch(f"/api/chat/message/{message['id']}/delivered", headers=auth(RECIPIENT))
    assert delivered.json()["data"]["status"] == "delivered"

    receipt = await client.get(f"/api/chat/message/{message['id']}/read-receipt", headers=auth(SENDER))
    assert receipt.json()["data"]["isRead"] is False
    assert receipt.json()["data"]["status"] == "delivered"

    await client.patch(f"/api/chat/message/{message['id']}/read", headers=auth(RECIPIENT))
    receipt = await client.get(f"/api/chat/message/{message['id']}/read-receipt", headers=auth(SENDER))
    assert receipt.json()["data"]["isRead"] is True
    assert receipt.json()["data"]["readAt"] is not None


async def test_history_does_not_reset_unread(client, auth):
    await add_member(client, auth)
    await send(client, auth, "one")
    await send(client, auth, "two")

    response = await client.get(f"/api/chat/{CHAT}/history", headers=auth(RECIPIENT))

    assert response.status_code == 200
    assert [m["message"] for m in response.json()["data"]["messages"]] == ["one", "two"]
    assert await unread(client, auth) == 2


async def test_history_pages_oldest_first(client, auth):
    await add_member(client, auth)
    for i in range(5):
        await send(client, auth, f"m{i}")

    response = await client.get(
        f"/api/chat/{CHAT}/history", params={"limit": 2, "offset": 1}, headers=auth(RECIPIENT)
    )

    assert [m["message"] for m in response.json()["data"]["messages"]] == ["m2", "m3"]


async def test_mark_chat_read_zeroes_counter_and_is_idempotent(client, auth):
    await add_member(client, auth)
    await send(client, auth, "one")
    await send(client, auth, "two")

    first = await client.patch(f"/api/chat/{CHAT}/read", headers=auth(RECIPIENT))
    second = await client.patch(f"/api/chat/{CHAT}/read", headers=auth(RECIPIENT))

    assert first.json()["data"]["markedRead"] == 2
    assert first.json()["data"]["unreadCount"] == 0
    assert second.json()["data"]["markedRead"] == 0
    assert second.json()["data"]["unreadCount"] == 0
    assert await unread(client, auth) == 0

    history = await client.get(f"/api/chat/{CHAT}/history", headers=auth(SENDER))
    assert all(m["status"] == "read" for m in history.json()["data"]["messages"])


class RecordingSocket:
    def __init__(self):
        self.sent = []

    async def accept(self):
        pass

    async def send_text(self, text):
        self.sent.append(json.loads(text))

    def changes(self, event):
        return [m for m in self.sent if m["type"] == "change" and m["event"] == event]


async def test_mark_chat_read_publishes_each_message_update(client, auth, app):
    await add_member(client, auth)
    first = await send(client, auth, "one")
    second = await send(client, auth, "two")
    await client.patch(f"/api/chat/message/{first['id']}/read", headers=auth(RECIPIENT))

    hub = app.state.realtime_hub
    sender_socket = RecordingSocket()
    await hub.subscribe(await hub.connect(sender_socket, SENDER), f"chat_messages:{CHAT}")

    response = await client.patch(f"/api/chat/{CHAT}/read", headers=auth(RECIPIENT))

    assert response.json()["data"]["markedRead"] == 1
    updates = sender_socket.changes("UPDATE")
    assert [(u["record"]["id"], u["record"]["status"]) for u in updates] == [(second["id"], "read")]
    assert updates[0]["record"]["read_at"] is not None

    await client.patch(f"/api/chat/{CHAT}/read", headers=auth(RECIPIENT))
    assert len(sender_socket.changes("UPDATE")) == 1


async def test_messages_sent_in_the_same_instant_keep_their_order(client, auth, monkeypatch):
    frozen = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)
    monkeypatch.setattr(chat_service_module, "utcnow", lambda: frozen)
    await add_member(client, auth)

    sent = [await send(client, auth, f"m{i}") for i in range(4)]

    stamps = [datetime.fromisoformat(m["sent_at"]) for m in sent]
    assert stamps == sorted(set(stamps))
    history = await client.get(f"/api/chat/{CHAT}/history", headers=auth(RECIPIENT))
    assert [m["message"] for m in history.json()["data"]["messages"]] == ["m0", "m1", "m2", "m3"]


async def test_existing_chat_row_is_joined_not_recreated(session):
    first = ChatService(session)
    await first.ensure_participant("chat-new", "ana")
    await session.commit()

    chat, created = await ChatService(session)._ensure_chat("chat-new", created_by="ben")
    await ChatService(session).ensure_participant("chat-new", "ben")
    await ChatService(session).ensure_participant("chat-new", "ben")
    await session.commit()

    assert not created
    assert chat.created_by == "ana"
    assert await first.get_chat_participants("chat-new") == ["ana", "ben"]
    assert (await first.get_participant("chat-new", "ana")).role == "admin"
    assert (await first.get_participant("chat-new", "ben")).role == "member"


async def test_total_and_per_chat_unread(client, auth):
    await add_member(client, auth, chat_id="chat-a")
    await add_member(client, auth, chat_id="chat-b")
    await send(client, auth, chat_id="chat-a")
    await send(client, auth, chat_id="chat-a")
    await send(client, auth, chat_id="chat-b")

    total = await client.get("/api/chat/unread-count/total", headers=auth(RECIPIENT))
    assert total.json()["data"]["totalUnreadCount"] == 3

    counts = await client.get("/api/chat/unread-counts", headers=auth(RECIPIENT))
    by_chat = {row["chat_id"]: row["unread_count"] for row in counts.json()["data"]}
    assert by_chat == {"chat-a": 2, "chat-b": 1}


async def test_only_sender_can_edit(client, auth):
    await add_member(client, auth)
    message = await send(client, auth)

    forbidden = await client.patch(
        f"/api/chat/message/{message['id']}", json={"message": "changed"}, headers=auth(RECIPIENT)
    )
    assert forbidden.status_code == 403

    edited = await client.patch(
        f"/api/chat/message/{message['id']}", json={"message": "changed"}, headers=auth(SENDER)
    )
    assert edited.json()["data"]["message"] == "changed"
    assert edited.json()["data"]["edited_at"] is not None


async def test_non_participant_cannot_read_history(client, auth):
    await add_member(client, auth)
    await send(client, auth)

    response = await client.get(f"/api/chat/{CHAT}/history", headers=auth("stranger"))

    assert response.status_code == 403
    assert response.json()["status"] == "error"


async def test_non_participant_cannot_add_members(client, auth):
    await add_member(client, auth)

    response = await client.post(
        f"/api/chat/{CHAT}/participants", json={"userId": "user-999"}, headers=auth("stranger")
    )

    assert response.status_code == 403


async def test_direct_message_is_reused(client, auth):
    first = await client.post("/api/chat/dm", json={"recipientId": "user-2"}, headers=auth("user-1"))
    second = await client.post("/api/chat/dm", json={"recipientId": "user-1"}, headers=auth("user-2"))

    assert first.json()["data"]["id"] == second.json()["data"]["id"]
    assert first.json()["data"]["chat_type"] == "dm"


async def test_direct_message_with_self_is_rejected(client, auth):
    response = await client.post("/api/chat/dm", json={"recipientId": "user-1"}, headers=auth("user-1"))

    assert response.status_code == 422
    assert response.json()["errors"] == [{"field": "recipientId", "message": response.json()["message"]}]


async def test_group_shows_up_in_member_chat_list(client, auth):
    created = await client.post(
        "/api/chat/groups",
        json={"name": "HR team", "memberIds": ["user-2", "user-3"]},
        headers=auth("user-1"),
    )
    chat_id = created.json()["data"]["id"]
    await send(client, auth, "welcome", chat_id=chat_id, user="user-1")

    response = await client.get("/api/chat/", headers=auth("user-2"))

    chats = response.json()["data"]
    assert [c["id"] for c in chats] == [chat_id]
    assert chats[0]["participants"] == ["user-1", "user-2", "user-3"]
    assert chats[0]["unreadCount"] == 1
    assert chats[0]["role"] == "member"


async def test_empty_message_reports_the_field(client, auth):
    response = await client.post(
        "/api/chat/send", json={"chatId": CHAT, "message": "   "}, headers=auth(SENDER)
    )

    assert response.status_code == 422
    body = response.json()
    assert body["status"] == "error"
    assert body["message"]
    assert "message" in [e["field"] for e in body["errors"]]


async def test_missing_chat_id_reports_the_field(client, auth):
    response = await client.post("/api/chat/send", json={"message": "hi"}, headers=auth(SENDER))

    assert response.status_code == 422
    assert "chatId" in [e["field"] for e in response.json()["errors"]]


@pytest.mark.parametrize("path", [
    f"/api/chat/{CHAT}/unread-count",
    "/api/chat/unread-count/total",
    f"/api/typing/{CHAT}",
    "/api/notifications",
])
async def test_missing_token_is_unauthorized(client, path):
    response = await client.get(path)

    assert response.status_code == 401
    assert response.json()["status"] == "error"
    assert response.json()["message"]


async def test_invalid_and_expired_tokens_are_unauthorized(client, settings):
    bad = await client.get("/api/chat/unread-count/total", headers={"Authorization": "Bearer nonsense"})
    assert bad.status_code == 401

    expired_token = create_access_token("user-1", settings, expires_in=timedelta(minutes=-5))
    expired = await client.get(
        "/api/chat/unread-count/total", headers={"Authorization": f"Bearer {expired_token}"}
    )
    assert expired.status_code == 401
    assert "expired" in expired.json()["message"]


async def test_health_needs_no_token(client):
    response = await client.get("/health/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
