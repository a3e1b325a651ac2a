# app/services/notification_service.py
from typing import List, Optional, Dict, Union, Callable
from uuid import UUID
from datetime import datetime, timedelta
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, desc, and_, or_

from .base_service import BaseService
from ..core.exceptions import NotFoundError, ValidationError
from ..models.base import utcnow
from ..models.notification import Notification, NotificationType, NotificationPriority, PushToken

logger = logging.getLogger(__name__)

CHAT_PREVIEW_LENGTH = 100


def coerce_notification_type(value: Union[str, NotificationType]) -> NotificationType:
    """Closed set only; unknown types are a validation error on ``type``."""
    try:
        return NotificationType(value.value if isinstance(value, NotificationType) else value)
    except ValueError:
        allowed = ", ".join(t.value for t in NotificationType)
        raise ValidationError(f"Invalid notification type '{value}'. Allowed: {allowed}", field="type")


class NotificationService(BaseService[Notification]):
    def __init__(self, db: AsyncSession, ttl_days: int = 30, clock: Callable[[], datetime] = utcnow):
        super().__init__(Notification, db)
        self.ttl = timedelta(days=ttl_days)
        self.clock = clock

    def _build(
        self,
        user_id: str,
        notification_type: Union[str, NotificationType],
        title: str,
        message: str,
        related_id: Optional[str] = None,
        action_url: Optional[str] = None,
        priority: Union[str, NotificationPriority] = NotificationPriority.NORMAL,
        expires_at: Optional[datetime] = None,
    ) -> Notification:
        try:
            priority = NotificationPriority(priority.value if isinstance(priority, NotificationPriority) else priority)
        except ValueError:
            raise ValidationError(f"Invalid notification priority '{priority}'", field="priority")

        now = self.clock()
        return Notification(
            user_id=user_id,
            notification_type=coerce_notification_type(notification_type),
            priority=priority,
            title=title,
            message=message,
            related_id=related_id,
            action_url=action_url,
            is_read=False,
            expires_at=expires_at or now + self.ttl,
            created_at=now,
            updated_at=now,
        )

    async def create_notification(self, user_id: str, notification_type, title: str, message: str, **kwargs) -> Notification:
        notification = self._build(user_id, notification_type, title, message, **kwargs)
        self.db.add(notification)
        await self.db.commit()
        await self.db.refresh(notification)
        logger.info(f"Notification {notification.id} ({notification.notification_type.value}) created for {user_id}")
        return notification

    async def create_bulk_notifications(self, user_ids: List[str], notification_type, title: str, message: str, **kwargs) -> List[Notification]:
        """One notification row per distinct user id, committed together"""
        notifications = [
            self._build(user_id, notification_type, title, message, **kwargs)
            for user_id in dict.fromkeys(user_ids)
        ]
        self.db.add_all(notifications)
        await self.db.commit()
        for notification in notifications:
            await self.db.refresh(notification)
        logger.info(f"Created {len(notifications)} notifications of type {notification_type}")
        return notifications

    async def notify_chat_message(
        self,
        recipient_ids: List[str],
        sender_name: str,
        chat_id: str,
        text: str
    ) -> List[Notification]:
        """Chat notification for every recipient of a new message"""
        if not recipient_ids:
            return []
        preview = text if len(text) <= CHAT_PREVIEW_LENGTH else text[:CHAT_PREVIEW_LENGTH - 3] + "..."
        return await self.create_bulk_notifications(
            recipient_ids,
            NotificationType.CHAT,
            f"New message from {sender_name}",
            preview,
            related_id=chat_id,
            action_url=f"/chat/{chat_id}",
        )

    def _visible(self, user_id: str):
        now = self.clock()
        return and_(
            Notification.user_id == user_id,
            Notification.is_deleted == False,
            or_(Notification.expires_at.is_(None), Notification.expires_at > now),
        )

    async def get_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0
    ) -> List[Notification]:
        stmt = select(Notification).where(self._visible(user_id))
        if unread_only:
            stmt = stmt.where(Notification.is_read == False)
        stmt = stmt.order_by(desc(Notification.created_at)).offset(offset).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_unread_count(self, user_id: str) -> int:
        stmt = select(func.count(Notification.id)).where(
            self._visible(user_id),
            Notification.is_read == False,
        )
        result = await self.db.execute(stmt)
        return int(result.scalar() or 0)

    async def _get_owned(self, notification_id: UUID, user_id: str) -> Notification:
        notification = await self.get(notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError("Notification", str(notification_id))
        return notification

    async def mark_as_read(self, notification_id: UUID, user_id: str) -> Notification:
        """Mark one of the user's notifications read. Missing or foreign ids are 404."""
        notification = await self._get_owned(notification_id, user_id)
        if not notification.is_read:
            now = self.clock()
            notification.is_read = True
            notification.read_at = now
            notification.updated_at = now
            await self.db.commit()
            await self.db.refresh(notification)
        return notification

    async def mark_all_as_read(self, user_id: str) -> int:
        now = self.clock()
        stmt = (
            update(Notification)
            .where(self._visible(user_id), Notification.is_read == False)
            .values(is_read=True, read_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount or 0

    async def delete_notification(self, notification_id: UUID, user_id: str) -> Notification:
        notification = await self._get_owned(notification_id, user_id)
        await self.db.delete(notification)
        await self.db.commit()
        return notification

    async def save_push_token(self, user_id: str, token: str, platform: Optional[str] = None) -> PushToken:
        """Register the device token for a user, replacing any earlier one"""
        now = self.clock()
        stmt = self.upsert_stmt(PushToken).values(
            id=uuid.uuid4(),
            user_id=user_id,
            token=token,
            platform=platform,
            created_at=now,
            updated_at=now,
            is_deleted=False,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={"token": token, "platform": platform, "updated_at": now},
        )
        await self.db.execute(stmt)
        await self.db.commit()

        result = await self.db.execute(
            select(PushToken)
            .where(PushToken.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    async def purge_expired_notifications(self) -> int:
        stmt = delete(Notification).where(
            Notification.expires_at.is_not(None),
            Notification.expires_at <= self.clock(),
        ).execution_options(synchronize_session=False)
        result = await self.db.execute(stmt)
        await self.db.commit()
        purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} expired notifications")
        return purged

    @staticmethod
    def to_record(notification: Notification) -> Dict:
        """Row shape used in responses and change events"""
        return {
            "id": str(notification.id),
            "userId": notification.user_id,
            "type": notification.notification_type.value,
            "priority": notification.priority.value if notification.priority else NotificationPriority.NORMAL.value,
            "title": notification.title,
            "message": notification.message,
            "relatedId": notification.related_id,
            "actionUrl": notification.action_url,
            "isRead": notification.is_read,
            "readAt": notification.read_at,
            "expiresAt": notification.expires_at,
            "createdAt": notification.created_at,
        }
