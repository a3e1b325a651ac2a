# app/routers/chat/chat_router.py
from typing import Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Query, Request

from ...core.dependencies import get_chat_service, get_notification_service, get_realtime_hub
from ...core.exceptions import ForbiddenError
from ...core.security import CurrentUser, get_current_user
from ...schemas.chat_schemas import (
    SendMessageRequest, EditMessageRequest, CreateDMRequest, CreateGroupRequest,
    AddParticipantRequest, ChatMessageOut, ChatOut, UnreadCountOut
)
from ...services.chat.chat_service import ChatService
from ...services.chat.websocket_manager import RealtimeHub
from ...services.notification_service import NotificationService
from ...utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["Chat"])


def _message_record(message) -> dict:
    return ChatMessageOut.model_validate(message).model_dump(mode="json")


def _unread_record(entry) -> dict:
    return UnreadCountOut.model_validate(entry).model_dump(mode="json")


async def _require_participant(service: ChatService, chat_id: str, user: CurrentUser):
    if not await service.is_participant(chat_id, user.id):
        raise ForbiddenError("You are not a participant of this chat")


async def _publish_unread(service: ChatService, hub: RealtimeHub, user_id: str, chat_id: str):
    entry = await service.unread.get_entry(user_id, chat_id)
    if entry is not None:
        await hub.publish_change("chat_unread_counts", "UPDATE", _unread_record(entry), user_id)


@router.post("/send", status_code=201)
async def send_message(
    request: SendMessageRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    notifications: NotificationService = Depends(get_notification_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    """Send a message; every other participant gets an unread count and a notification"""
    message, recipients = await service.send_message(request.chat_id, user.id, request.message)
    record = _message_record(message)
    await hub.publish_change("chat_messages", "INSERT", record, request.chat_id)

    created = await notifications.notify_chat_message(
        recipients, user.email or user.id, request.chat_id, request.message
    )
    for notification in created:
        await hub.publish_change(
            "notifications", "INSERT", NotificationService.to_record(notification), notification.user_id
        )
    for recipient_id in recipients:
        await _publish_unread(service, hub, recipient_id, request.chat_id)

    return success_response(record, "Message sent successfully")


@router.get("/unread-count/total")
async def get_total_unread_count(
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    total = await service.unread.get_total(user.id)
    return success_response({"totalUnreadCount": total})


@router.get("/unread-counts")
async def get_all_unread_counts(
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    entries = await service.unread.get_all(user.id)
    return success_response([_unread_record(entry) for entry in entries])


@router.get("/")
async def get_my_chats(
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    chats = await service.get_user_chats(user.id)
    return success_response([
        {
            **ChatOut.model_validate(item["chat"]).model_dump(mode="json"),
            "role": item["role"],
            "participants": item["participants"],
            "unreadCount": item["unread_count"],
        }
        for item in chats
    ])


@router.post("/dm", status_code=201)
async def create_dm(
    request: CreateDMRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    chat, created = await service.create_or_get_dm(user.id, request.recipient_id)
    return success_response(
        ChatOut.model_validate(chat).model_dump(mode="json"),
        "Direct message created" if created else "Direct message already exists"
    )


@router.post("/groups", status_code=201)
async def create_group(
    request: CreateGroupRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    chat = await service.create_group(user.id, request.name, request.description, request.member_ids)
    return success_response(ChatOut.model_validate(chat).model_dump(mode="json"), "Group created")


@router.patch("/message/{message_id}/read")
async def mark_message_read(
    message_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    message = await service.get_message(message_id)
    await _require_participant(service, message.chat_id, user)
    message, changed = await service.mark_message_read(message_id, user.id)
    record = _message_record(message)
    if changed:
        await hub.publish_change("chat_messages", "UPDATE", record, message.chat_id)
    return success_response(record, "Message marked as read")


@router.patch("/message/{message_id}/delivered")
async def mark_message_delivered(
    message_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    message = await service.get_message(message_id)
    await _require_participant(service, message.chat_id, user)
    message, changed = await service.mark_message_delivered(message_id, user.id)
    record = _message_record(message)
    if changed:
        await hub.publish_change("chat_messages", "UPDATE", record, message.chat_id)
    return success_response(record, "Message marked as delivered")


@router.get("/message/{message_id}/read-receipt")
async def get_read_receipt(
    message_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    message = await service.get_message(message_id)
    await _require_participant(service, message.chat_id, user)
    return success_response(await service.get_message_read_receipt(message_id))


@router.patch("/message/{message_id}")
async def edit_message(
    message_id: UUID,
    request: EditMessageRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    message = await service.edit_message(message_id, user.id, request.message)
    record = _message_record(message)
    await hub.publish_change("chat_messages", "UPDATE", record, message.chat_id)
    return success_response(record, "Message updated")


@router.patch("/{chat_id}/read")
async def mark_chat_as_read(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    """Mark every incoming message in the chat read and zero the caller's counter"""
    messages, entry = await service.mark_chat_as_read(chat_id, user.id)
    for message in messages:
        await hub.publish_change("chat_messages", "UPDATE", _message_record(message), chat_id)
    if entry is not None:
        await hub.publish_change("chat_unread_counts", "UPDATE", _unread_record(entry), user.id)
    return success_response(
        {"chatId": chat_id, "markedRead": len(messages), "unreadCount": entry.unread_count if entry else 0},
        "Chat marked as read"
    )


@router.get("/{chat_id}/history")
async def get_chat_history(
    chat_id: str,
    http_request: Request,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    """Paginated history, oldest first within the page. Reading history leaves unread counts alone."""
    settings = http_request.app.state.settings
    limit = min(limit or settings.history_default_limit, settings.history_max_limit)
    await _require_participant(service, chat_id, user)
    messages = await service.get_chat_history(chat_id, limit, offset)
    return success_response({
        "chatId": chat_id,
        "messages": [_message_record(message) for message in messages],
        "limit": limit,
        "offset": offset,
    })


@router.get("/{chat_id}/unread-count")
async def get_chat_unread_count(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    count = await service.unread.get_count(user.id, chat_id)
    return success_response({"chatId": chat_id, "unreadCount": count})


@router.get("/{chat_id}/participants")
async def get_participants(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    await _require_participant(service, chat_id, user)
    return success_response({"chatId": chat_id, "participants": await service.get_chat_participants(chat_id)})


@router.post("/{chat_id}/participants", status_code=201)
async def add_participant(
    chat_id: str,
    request: AddParticipantRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service)
):
    participant = await service.add_participant(chat_id, user.id, request.user_id)
    return success_response(
        {"chatId": chat_id, "userId": participant.user_id, "role": participant.role},
        "Participant added"
    )
