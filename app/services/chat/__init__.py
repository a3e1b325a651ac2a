# app/services/chat/__init__.py
from .chat_service import ChatService
from .typing_service import TypingService
from .unread_service import UnreadCountService
from .websocket_manager import RealtimeHub

__all__ = ["ChatService", "TypingService", "UnreadCountService", "RealtimeHub"]
