# app/tasks.py
"""Periodic maintenance run by the Celery beat schedule in ``celery_worker``."""
import asyncio
import logging

from celery_worker import celery_app

from .core.config import get_settings
from .core.database import build_engine, build_session_factory
from .services.notification_service import NotificationService

logger = logging.getLogger(__name__)


async def _purge_expired_notifications(settings) -> int:
    engine = build_engine(settings)
    try:
        async with build_session_factory(engine)() as session:
            service = NotificationService(session, ttl_days=settings.notification_ttl_days)
            return await service.purge_expired_notifications()
    finally:
        await engine.dispose()


@celery_app.task(name="app.tasks.purge_expired_notifications")
def purge_expired_notifications() -> int:
    """Delete notifications whose expiry has passed"""
    purged = asyncio.run(_purge_expired_notifications(get_settings()))
    logger.info(f"Notification purge finished: {purged} removed")
    return purged
