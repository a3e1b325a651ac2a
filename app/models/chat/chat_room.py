from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint
import enum
import uuid
from ..base import Base, utcnow


class ChatType(str, enum.Enum):
    DM = "dm"
    GROUP = "group"


class ParticipantRole(str, enum.Enum):
    ADMIN = "admin"
    MEMBER = "member"


class Chat(Base):
    __tablename__ = "chats"

    # Conversation ids are opaque strings chosen by clients or generated here
    id = Column(String(64), primary_key=True, default=lambda: str(uuid.uuid4()))
    chat_type = Column(String(10), nullable=False, default=ChatType.GROUP.value)  # 'dm' or 'group'
    name = Column(String(200))
    description = Column(Text)
    created_by = Column(String(64), nullable=False, index=True)
    last_message_at = Column(DateTime(timezone=True))


class ChatParticipant(Base):
    __tablename__ = "chat_participants"

    chat_id = Column(String(64), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    role = Column(String(10), nullable=False, default=ParticipantRole.MEMBER.value)
    joined_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('chat_id', 'user_id', name='uq_chat_participant'),
    )
