# app/core/dependencies.py
"""FastAPI dependencies reading shared resources from ``app.state``."""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db
from .cache import CacheManager
from .retry import RetryPolicy
from ..services.chat.chat_service import ChatService
from ..services.chat.typing_service import TypingService
from ..services.chat.websocket_manager import RealtimeHub
from ..services.notification_service import NotificationService


def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


def get_retry_policy(request: Request) -> RetryPolicy:
    return request.app.state.retry_policy


def get_realtime_hub(request: Request) -> RealtimeHub:
    return request.app.state.realtime_hub


def get_chat_service(db: AsyncSession = Depends(get_db)) -> ChatService:
    return ChatService(db)


def get_notification_service(request: Request, db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(
        db,
        ttl_days=request.app.state.settings.notification_ttl_days,
        clock=request.app.state.clock,
    )


def get_typing_service(request: Request) -> TypingService:
    return build_typing_service(request.app)


def build_typing_service(app) -> TypingService:
    """Also used by the websocket endpoint, which has no Request"""
    return TypingService(
        app.state.cache,
        ttl_seconds=app.state.settings.typing_ttl_seconds,
        retry_policy=app.state.retry_policy,
        clock=app.state.clock,
    )
