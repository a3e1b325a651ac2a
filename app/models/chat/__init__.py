# app/models/chat/__init__.py
from .chat_room import Chat, ChatParticipant, ChatType, ParticipantRole
from .chat_message import ChatMessage, MessageStatus
from .unread_count import ChatUnreadCount

__all__ = [
    "Chat", "ChatParticipant", "ChatType", "ParticipantRole",
    "ChatMessage", "MessageStatus", "ChatUnreadCount",
]
