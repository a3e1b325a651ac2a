# app/models/notification.py
from sqlalchemy import Column, String, DateTime, Boolean, Text, Enum, Index
from .base import Base
import enum


class NotificationType(enum.Enum):
    """Closed set of notification types; anything else is rejected at the API boundary."""
    CHAT = "chat"
    LEAVE = "leave"
    PURCHASE = "purchase"
    TASK = "task"
    BIRTHDAY = "birthday"
    CHECKOUT = "checkout"
    ANNOUNCEMENT = "announcement"


class NotificationPriority(enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Notification(Base):
    __tablename__ = "notifications"

    user_id = Column(String(64), nullable=False, index=True)
    notification_type = Column(
        "type",
        Enum(
            NotificationType,
            native_enum=False,
            create_constraint=True,
            name="valid_notification_type",
            values_callable=lambda enum_cls: [e.value for e in enum_cls]
        ),
        nullable=False
    )
    priority = Column(
        Enum(
            NotificationPriority,
            native_enum=False,
            values_callable=lambda enum_cls: [e.value for e in enum_cls]
        ),
        default=NotificationPriority.NORMAL,
        nullable=False
    )

    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    related_id = Column(String(64))  # id of the chat/task/leave/purchase the notification points at
    action_url = Column(String(500))

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True), index=True)

    __table_args__ = (
        Index('idx_notifications_user_unread', 'user_id', 'is_read'),
    )


class PushToken(Base):
    __tablename__ = "push_tokens"

    user_id = Column(String(64), nullable=False, unique=True, index=True)
    token = Column(String(500), nullable=False)
    platform = Column(String(20))  # 'web', 'ios', 'android'
