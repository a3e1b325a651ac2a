# app/services/chat/websocket_manager.py
from typing import Dict, List, Optional, Set
from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder
import itertools
import json
import logging

logger = logging.getLogger(__name__)

# Channels scoped to a single user; only that user may subscribe
USER_CHANNELS = ("chat_unread_counts", "notifications")
CHAT_CHANNELS = ("chat_messages", "typing_status")

CHANGE_EVENTS = ("INSERT", "UPDATE", "DELETE")


def channel_name(table: str, scope: str) -> str:
    return f"{table}:{scope}"


def parse_channel(channel: str):
    """Split ``table:scope``; raises ValueError for unknown tables."""
    table, sep, scope = channel.partition(":")
    if not sep or not scope or table not in USER_CHANNELS + CHAT_CHANNELS:
        raise ValueError(f"Unknown channel: {channel}")
    return table, scope


class RealtimeHub:
    """Websocket connections and their channel subscriptions.

    A user may hold several connections (tabs, devices); each one subscribes
    independently and receives every change published on its channels.
    """

    def __init__(self):
        # {connection_id: {websocket, user_id}}
        self.active_connections: Dict[str, Dict] = {}
        # {channel: {connection_ids}}
        self.subscriptions: Dict[str, Set[str]] = {}
        self._ids = itertools.count(1)

    async def connect(self, websocket: WebSocket, user_id: str) -> str:
        """Accept websocket connection and store user info"""
        await websocket.accept()
        connection_id = f"{user_id}#{next(self._ids)}"
        self.active_connections[connection_id] = {
            "websocket": websocket,
            "user_id": user_id,
        }
        logger.info(f"User {user_id} connected ({connection_id})")

        await self.send_personal_message({
            "type": "connection_status",
            "status": "connected",
            "user_id": user_id,
        }, connection_id)
        return connection_id

    def disconnect(self, connection_id: str):
        """Remove connection and clean up subscriptions"""
        connection = self.active_connections.pop(connection_id, None)
        if connection is None:
            return

        for subscribers in self.subscriptions.values():
            subscribers.discard(connection_id)
        self.subscriptions = {
            channel: subscribers
            for channel, subscribers in self.subscriptions.items()
            if subscribers
        }
        logger.info(f"User {connection['user_id']} disconnected ({connection_id})")

    def can_subscribe(self, connection_id: str, channel: str) -> bool:
        """User-scoped channels are private to their owner"""
        table, scope = parse_channel(channel)
        connection = self.active_connections.get(connection_id)
        if connection is None:
            return False
        if table in USER_CHANNELS:
            return scope == connection["user_id"]
        return True

    async def subscribe(self, connection_id: str, channel: str) -> bool:
        if not self.can_subscribe(connection_id, channel):
            logger.warning(f"Connection {connection_id} refused subscription to {channel}")
            return False

        self.subscriptions.setdefault(channel, set()).add(connection_id)
        logger.debug(f"Connection {connection_id} subscribed to {channel}")
        await self.send_personal_message({"type": "subscribed", "channel": channel}, connection_id)
        return True

    async def unsubscribe(self, connection_id: str, channel: str):
        if channel in self.subscriptions:
            self.subscriptions[channel].discard(connection_id)
            if not self.subscriptions[channel]:
                del self.subscriptions[channel]
        await self.send_personal_message({"type": "unsubscribed", "channel": channel}, connection_id)

    async def send_personal_message(self, message: dict, connection_id: str):
        """Send message to a single connection"""
        connection = self.active_connections.get(connection_id)
        if connection is None:
            return
        try:
            await connection["websocket"].send_text(json.dumps(jsonable_encoder(message)))
        except Exception as e:
            logger.error(f"Error sending message to {connection_id}: {e}")
            self.disconnect(connection_id)

    async def broadcast(self, message: dict, channel: str) -> int:
        """Send message to every connection subscribed to ``channel``"""
        subscribers = self.subscriptions.get(channel)
        if not subscribers:
            return 0

        payload = json.dumps(jsonable_encoder(message))
        disconnected = []
        sent_count = 0
        for connection_id in list(subscribers):
            connection = self.active_connections.get(connection_id)
            if connection is None:
                continue
            try:
                await connection["websocket"].send_text(payload)
                sent_count += 1
            except Exception as e:
                logger.error(f"Error broadcasting to {connection_id}: {e}")
                disconnected.append(connection_id)

        for connection_id in disconnected:
            self.disconnect(connection_id)

        logger.debug(f"Broadcast on {channel}: sent to {sent_count} connections")
        return sent_count

    async def publish_change(self, table: str, event: str, record: dict, scope: str) -> int:
        """Publish a row change on ``table:scope``"""
        if event not in CHANGE_EVENTS:
            raise ValueError(f"Unknown change event: {event}")
        channel = channel_name(table, scope)
        message = {
            "type": "change",
            "channel": channel,
            "event": event,
            "table": table,
            "record": record,
        }
        return await self.broadcast(message, channel)

    def get_user_connections(self, user_id: str) -> List[str]:
        return [
            connection_id for connection_id, connection in self.active_connections.items()
            if connection["user_id"] == user_id
        ]

    def get_subscribers(self, channel: str) -> List[str]:
        """User ids with at least one connection on ``channel``"""
        users = {
            self.active_connections[connection_id]["user_id"]
            for connection_id in self.subscriptions.get(channel, set())
            if connection_id in self.active_connections
        }
        return sorted(users)

    def is_user_online(self, user_id: str) -> bool:
        """Check if user is online"""
        return bool(self.get_user_connections(user_id))

    def user_of(self, connection_id: str) -> Optional[str]:
        connection = self.active_connections.get(connection_id)
        return connection["user_id"] if connection else None
