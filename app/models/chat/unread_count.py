from sqlalchemy import Column, String, Integer, DateTime, UniqueConstraint, CheckConstraint
from ..base import Base


class ChatUnreadCount(Base):
    __tablename__ = "chat_unread_counts"

    user_id = Column(String(64), nullable=False, index=True)
    chat_id = Column(String(64), nullable=False, index=True)
    unread_count = Column(Integer, nullable=False, default=0)
    last_read_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint('user_id', 'chat_id', name='uq_chat_unread_user_chat'),
        CheckConstraint('unread_count >= 0', name='ck_chat_unread_non_negative'),
    )
