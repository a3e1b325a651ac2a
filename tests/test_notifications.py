import uuid

import pytest

from app.core.exceptions import ValidationError
from app.models.notification import NotificationType
from app.services.notification_service import NotificationService


def broadcast(**overrides):
    payload = {
        "userIds": ["emp-1", "emp-2"],
        "type": "announcement",
        "title": "Office closed",
        "message": "The office is closed on Friday.",
    }
    payload.update(overrides)
    return payload


async def list_notifications(client, auth, user, **params):
    response = await client.get("/api/notifications", params=params, headers=auth(user))
    assert response.status_code == 200
    return response.json()["data"]


async def test_hr_can_broadcast(client, auth):
    response = await client.post("/api/notifications", json=broadcast(), headers=auth("hr-1", role="hr"))

    assert response.status_code == 201
    assert [n["userId"] for n in response.json()["data"]] == ["emp-1", "emp-2"]

    rows = await list_notifications(client, auth, "emp-1")
    assert len(rows) == 1
    assert rows[0]["type"] == "announcement"
    assert rows[0]["isRead"] is False


async def test_employees_cannot_broadcast(client, auth):
    response = await client.post("/api/notifications", json=broadcast(), headers=auth("emp-1"))

    assert response.status_code == 403
    assert response.json()["status"] == "error"


async def test_unknown_type_is_rejected_with_field(client, auth):
    response = await client.post(
        "/api/notifications", json=broadcast(type="lunch"), headers=auth("admin-1", role="admin")
    )

    assert response.status_code == 422
    body = response.json()
    assert body["status"] == "error"
    assert [e["field"] for e in body["errors"]] == ["type"]


async def test_service_rejects_unknown_type(session):
    service = NotificationService(session)

    with pytest.raises(ValidationError) as exc_info:
        await service.create_notification("emp-1", "lunch", "t", "m")

    assert exc_info.value.fields == ["type"]


async def test_unread_count_and_mark_read(client, auth):
    await client.post("/api/notifications", json=broadcast(), headers=auth("hr-1", role="hr"))
    await client.post(
        "/api/notifications", json=broadcast(type="leave", title="Leave approved"), headers=auth("hr-1", role="hr")
    )

    count = await client.get("/api/notifications/unread-count", headers=auth("emp-1"))
    assert count.json()["data"]["unreadCount"] == 2

    rows = await list_notifications(client, auth, "emp-1")
    read = await client.patch(f"/api/notifications/{rows[0]['id']}/read", headers=auth("emp-1"))
    assert read.json()["data"]["isRead"] is True
    assert read.json()["data"]["readAt"] is not None

    unread_rows = await list_notifications(client, auth, "emp-1", unreadOnly="true")
    assert len(unread_rows) == 1

    all_read = await client.patch("/api/notifications/read-all", headers=auth("emp-1"))
    assert all_read.json()["data"]["updated"] == 1

    count = await client.get("/api/notifications/unread-count", headers=auth("emp-1"))
    assert count.json()["data"]["unreadCount"] == 0


async def test_cannot_touch_someone_elses_notification(client, auth):
    await client.post("/api/notifications", json=broadcast(), headers=auth("hr-1", role="hr"))
    rows = await list_notifications(client, auth, "emp-1")

    read = await client.patch(f"/api/notifications/{rows[0]['id']}/read", headers=auth("emp-2"))
    delete = await client.delete(f"/api/notifications/{rows[0]['id']}", headers=auth("emp-2"))

    assert read.status_code == 404
    assert delete.status_code == 404


async def test_unknown_notification_is_not_found(client, auth):
    response = await client.patch(f"/api/notifications/{uuid.uuid4()}/read", headers=auth("emp-1"))

    assert response.status_code == 404
    assert response.json()["message"]


async def test_delete_notification(client, auth):
    await client.post("/api/notifications", json=broadcast(), headers=auth("hr-1", role="hr"))
    rows = await list_notifications(client, auth, "emp-1")

    response = await client.delete(f"/api/notifications/{rows[0]['id']}", headers=auth("emp-1"))

    assert response.status_code == 200
    assert await list_notifications(client, auth, "emp-1") == []


async def test_sent_message_notifies_recipients(client, auth):
    await client.post("/api/chat/chat-9/participants", json={"userId": "emp-2"}, headers=auth("emp-1"))
    await client.post("/api/chat/send", json={"chatId": "chat-9", "message": "Standup in 5"}, headers=auth("emp-1"))

    rows = await list_notifications(client, auth, "emp-2")
    assert len(rows) == 1
    assert rows[0]["type"] == "chat"
    assert rows[0]["relatedId"] == "chat-9"
    assert rows[0]["message"] == "Standup in 5"
    assert await list_notifications(client, auth, "emp-1") == []


async def test_push_token_is_replaced(client, auth):
    first = await client.post(
        "/api/notifications/push-token", json={"token": "abc", "platform": "ios"}, headers=auth("emp-1")
    )
    second = await client.post(
        "/api/notifications/push-token", json={"token": "def", "platform": "android"}, headers=auth("emp-1")
    )

    assert first.status_code == second.status_code == 200
    assert second.json()["data"]["platform"] == "android"


async def test_push_token_platform_is_validated(client, auth):
    response = await client.post(
        "/api/notifications/push-token", json={"token": "abc", "platform": "fax"}, headers=auth("emp-1")
    )

    assert response.status_code == 422
    assert response.json()["errors"][0]["field"] == "platform"


async def test_expired_notifications_are_hidden_and_purged(session, clock):
    service = NotificationService(session, ttl_days=30, clock=clock)
    await service.create_notification("emp-1", NotificationType.BIRTHDAY, "Happy birthday", "Cake at 3pm")
    assert await service.get_unread_count("emp-1") == 1

    clock.advance(31 * 24 * 3600)

    assert await service.get_notifications("emp-1") == []
    assert await service.get_unread_count("emp-1") == 0
    assert await service.purge_expired_notifications() == 1


async def test_long_chat_messages_are_truncated_in_preview(session):
    service = NotificationService(session)

    created = await service.notify_chat_message(["emp-2"], "emp-1", "chat-1", "x" * 300)

    assert len(created[0].message) == 100
    assert created[0].message.endswith("...")
