from .base_service import BaseService
from .notification_service import NotificationService
from .chat import ChatService, TypingService, UnreadCountService
