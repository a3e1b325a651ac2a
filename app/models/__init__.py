# app/models/__init__.py
"""Import all models here, needed for Alembic migration."""
from .base import Base

# Chat models
from .chat import Chat, ChatParticipant, ChatMessage, ChatUnreadCount

# Notification models
from .notification import Notification, PushToken

# This ensures all models are loaded when importing models
