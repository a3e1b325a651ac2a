# app/routers/chat/websocket_router.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query, status
import json
import logging

from ...core.dependencies import build_typing_service
from ...core.exceptions import UnauthorizedError
from ...core.retry import ChatError
from ...core.security import decode_access_token
from ...services.chat.chat_service import ChatService
from ...services.chat.websocket_manager import CHAT_CHANNELS, parse_channel

logger = logging.getLogger(__name__)
router = APIRouter()


async def _can_join(websocket: WebSocket, channel: str, user_id: str) -> bool:
    """Chat-scoped channels are open to participants only"""
    table, scope = parse_channel(channel)
    if table not in CHAT_CHANNELS:
        return True
    if table == "typing_status":
        # typing may start before the chat row exists
        return True
    async with websocket.app.state.session_factory() as session:
        return await ChatService(session).is_participant(scope, user_id)


@router.websocket("/ws/realtime")
async def realtime_endpoint(websocket: WebSocket, token: str = Query(None)):
    """Change feed: subscribe to channels and receive row change events"""
    try:
        user = decode_access_token(token or "", websocket.app.state.settings)
    except UnauthorizedError as e:
        logger.warning(f"Rejected realtime connection: {e.detail}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub = websocket.app.state.realtime_hub
    connection_id = await hub.connect(websocket, user.id)

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message_data = json.loads(data)
            except json.JSONDecodeError:
                await hub.send_personal_message({"type": "error", "message": "Invalid JSON"}, connection_id)
                continue

            message_type = message_data.get("type")
            channel = message_data.get("channel") or ""

            if message_type == "subscribe":
                try:
                    allowed = await _can_join(websocket, channel, user.id) and await hub.subscribe(connection_id, channel)
                except ValueError as e:
                    await hub.send_personal_message({"type": "error", "message": str(e)}, connection_id)
                    continue
                if not allowed:
                    await hub.send_personal_message({
                        "type": "error",
                        "channel": channel,
                        "message": "Not allowed to subscribe to this channel"
                    }, connection_id)

            elif message_type == "unsubscribe":
                await hub.unsubscribe(connection_id, channel)

            elif message_type == "ping":
                await hub.send_personal_message({"type": "pong"}, connection_id)

            else:
                await hub.send_personal_message({
                    "type": "error",
                    "message": f"Unknown message type: {message_type}"
                }, connection_id)

    except WebSocketDisconnect:
        logger.info(f"User {user.id} disconnected from realtime feed")
    finally:
        hub.disconnect(connection_id)
        if not hub.is_user_online(user.id):
            await _clear_typing(websocket, user.id)


async def _clear_typing(websocket: WebSocket, user_id: str):
    """A client that drops without sending stop stops typing everywhere"""
    typing = build_typing_service(websocket.app)
    hub = websocket.app.state.realtime_hub
    try:
        chat_ids = await typing.clear_user_typing(user_id)
    except ChatError as e:
        logger.error(f"Could not clear typing status for {user_id}: {e.message}")
        return
    for chat_id in chat_ids:
        await hub.publish_change("typing_status", "DELETE", {"chat_id": chat_id, "user_id": user_id}, chat_id)
