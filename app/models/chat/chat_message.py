from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index
import enum
from ..base import Base


class MessageStatus(str, enum.Enum):
    SENDING = "sending"  # client-only, no server row yet
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"  # client-only, send never reached the server


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    chat_id = Column(String(64), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(String(64), nullable=False, index=True)
    message = Column(Text, nullable=False)
    chat_type = Column(String(10), nullable=False, default="group")

    # Status timestamps only ever move forward; status is derived from them
    sent_at = Column(DateTime(timezone=True))
    delivered_at = Column(DateTime(timezone=True))
    read_at = Column(DateTime(timezone=True))
    edited_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_chat_message_chat_time', 'chat_id', 'created_at'),
        Index('idx_chat_message_unread', 'chat_id', 'read_at'),
    )
