# app/routers/chat/typing_router.py
import logging

from fastapi import APIRouter, Depends

from ...core.dependencies import get_typing_service, get_realtime_hub
from ...core.security import CurrentUser, get_current_user
from ...schemas.chat_schemas import TypingRequest
from ...services.chat.typing_service import TypingService
from ...services.chat.websocket_manager import RealtimeHub
from ...utils.responses import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/typing", tags=["Typing"])


@router.post("/start")
async def start_typing(
    request: TypingRequest,
    user: CurrentUser = Depends(get_current_user),
    typing: TypingService = Depends(get_typing_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    """Mark the caller as typing for the next TTL window"""
    was_typing = await typing.is_user_typing(request.chat_id, user.id)
    row = await typing.start_typing(request.chat_id, user.id)
    await hub.publish_change("typing_status", "UPDATE" if was_typing else "INSERT", row, request.chat_id)
    return success_response(row, "Typing indicator started")


@router.post("/stop")
async def stop_typing(
    request: TypingRequest,
    user: CurrentUser = Depends(get_current_user),
    typing: TypingService = Depends(get_typing_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    removed = await typing.stop_typing(request.chat_id, user.id)
    await hub.publish_change(
        "typing_status", "DELETE", {"chat_id": request.chat_id, "user_id": user.id}, request.chat_id
    )
    return success_response({"chatId": request.chat_id, "removed": removed}, "Typing indicator stopped")


@router.get("/stats")
async def get_typing_stats(
    user: CurrentUser = Depends(get_current_user),
    typing: TypingService = Depends(get_typing_service)
):
    return success_response(await typing.get_typing_stats())


@router.get("/{chat_id}")
async def get_typing_users(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    typing: TypingService = Depends(get_typing_service)
):
    rows = await typing.get_typing_users(chat_id)
    return success_response({
        "chatId": chat_id,
        "typingUsers": rows,
        "count": len(rows),
    })


@router.get("/{chat_id}/{user_id}")
async def is_user_typing(
    chat_id: str,
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    typing: TypingService = Depends(get_typing_service)
):
    return success_response({
        "chatId": chat_id,
        "userId": user_id,
        "isTyping": await typing.is_user_typing(chat_id, user_id),
    })


@router.delete("/{chat_id}")
async def clear_chat_typing(
    chat_id: str,
    user: CurrentUser = Depends(get_current_user),
    typing: TypingService = Depends(get_typing_service),
    hub: RealtimeHub = Depends(get_realtime_hub)
):
    rows = await typing.get_typing_users(chat_id)
    cleared = await typing.clear_chat_typing(chat_id)
    for row in rows:
        await hub.publish_change(
            "typing_status", "DELETE", {"chat_id": chat_id, "user_id": row["user_id"]}, chat_id
        )
    logger.info(f"User {user.id} cleared typing status in chat {chat_id}")
    return success_response({"chatId": chat_id, "cleared": cleared}, "Typing status cleared")
