# app/services/chat/chat_service.py
from typing import List, Optional, Dict, Tuple
from datetime import datetime, timedelta, timezone
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, and_, desc, func

from ..base_service import BaseService
from .message_status import apply_delivered, apply_read, derive_message_status
from .unread_service import UnreadCountService
from ...core.exceptions import ForbiddenError, NotFoundError, ValidationError
from ...models.base import utcnow
from ...models.chat.chat_room import Chat, ChatParticipant, ChatType, ParticipantRole
from ...models.chat.chat_message import ChatMessage

logger = logging.getLogger(__name__)

TICK = timedelta(microseconds=1)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ChatService(BaseService[ChatMessage]):
    def __init__(self, db: AsyncSession):
        super().__init__(ChatMessage, db)
        self.unread = UnreadCountService(db)

    # Conversations

    async def get_chat(self, chat_id: str, for_update: bool = False) -> Optional[Chat]:
        stmt = select(Chat).where(Chat.id == chat_id, Chat.is_deleted == False)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_participant(self, chat_id: str, user_id: str) -> Optional[ChatParticipant]:
        stmt = select(ChatParticipant).where(
            and_(
                ChatParticipant.chat_id == chat_id,
                ChatParticipant.user_id == user_id,
                ChatParticipant.is_deleted == False
            )
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def is_participant(self, chat_id: str, user_id: str) -> bool:
        return await self.get_participant(chat_id, user_id) is not None

    async def get_chat_participants(self, chat_id: str) -> List[str]:
        """User ids of everyone in the chat, in join order"""
        stmt = (
            select(ChatParticipant.user_id)
            .where(ChatParticipant.chat_id == chat_id, ChatParticipant.is_deleted == False)
            .order_by(ChatParticipant.joined_at, ChatParticipant.user_id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _ensure_chat(
        self,
        chat_id: str,
        created_by: str,
        chat_type: ChatType = ChatType.GROUP,
        for_update: bool = False
    ) -> Tuple[Chat, bool]:
        """Get or create the chat row; concurrent first uses create it once."""
        stmt = self.upsert_stmt(Chat).values(
            id=chat_id, chat_type=chat_type.value, created_by=created_by
        ).on_conflict_do_nothing(index_elements=["id"])
        result = await self.db.execute(stmt)
        created = bool(result.rowcount)
        if created:
            logger.info(f"Created chat {chat_id} ({chat_type.value}) for {created_by}")

        chat = await self.get_chat(chat_id, for_update=for_update)
        if chat is None:
            raise NotFoundError("Chat", chat_id)
        return chat, created

    async def _add_participant_row(self, chat_id: str, user_id: str, role: ParticipantRole) -> ChatParticipant:
        participant = ChatParticipant(chat_id=chat_id, user_id=user_id, role=role.value, joined_at=utcnow())
        self.db.add(participant)
        await self.db.flush()
        return participant

    async def ensure_participant(self, chat_id: str, user_id: str, for_update: bool = False) -> Chat:
        """Make sure the chat exists and ``user_id`` belongs to it.

        Unknown chat ids are created on first use with the caller as admin.
        """
        chat, created = await self._ensure_chat(chat_id, created_by=user_id, for_update=for_update)
        if not await self.get_participant(chat_id, user_id):
            role = ParticipantRole.ADMIN if created else ParticipantRole.MEMBER
            stmt = self.upsert_stmt(ChatParticipant).values(
                chat_id=chat_id, user_id=user_id, role=role.value, joined_at=utcnow()
            ).on_conflict_do_nothing(index_elements=["chat_id", "user_id"])
            await self.db.execute(stmt)
        return chat

    async def add_participant(self, chat_id: str, actor_id: str, user_id: str) -> ChatParticipant:
        """Add ``user_id`` to a chat on behalf of ``actor_id``"""
        chat = await self.get_chat(chat_id)
        if chat is not None:
            if chat.chat_type == ChatType.DM.value:
                raise ValidationError("Participants cannot be added to a direct message", field="chatId")
            if not await self.is_participant(chat_id, actor_id):
                raise ForbiddenError("Only chat participants can add members")
        else:
            await self.ensure_participant(chat_id, actor_id)

        participant = await self.get_participant(chat_id, user_id)
        if participant is None:
            participant = await self._add_participant_row(chat_id, user_id, ParticipantRole.MEMBER)
            logger.info(f"{actor_id} added {user_id} to chat {chat_id}")
        await self.db.commit()
        return participant

    async def create_or_get_dm(self, user_id: str, recipient_id: str) -> Tuple[Chat, bool]:
        """Reuse the direct-message chat between two users or create it"""
        if user_id == recipient_id:
            raise ValidationError("Cannot start a direct message with yourself", field="recipientId")

        mine = select(ChatParticipant.chat_id).where(ChatParticipant.user_id == user_id)
        theirs = select(ChatParticipant.chat_id).where(ChatParticipant.user_id == recipient_id)
        stmt = select(Chat).where(
            and_(
                Chat.chat_type == ChatType.DM.value,
                Chat.is_deleted == False,
                Chat.id.in_(mine),
                Chat.id.in_(theirs),
            )
        )
        result = await self.db.execute(stmt)
        existing = result.scalars().first()
        if existing:
            return existing, False

        chat = Chat(chat_type=ChatType.DM.value, created_by=user_id)
        self.db.add(chat)
        await self.db.flush()
        await self._add_participant_row(chat.id, user_id, ParticipantRole.MEMBER)
        await self._add_participant_row(chat.id, recipient_id, ParticipantRole.MEMBER)
        await self.db.commit()
        await self.db.refresh(chat)
        return chat, True

    async def create_group(
        self,
        creator_id: str,
        name: str,
        description: Optional[str] = None,
        member_ids: Optional[List[str]] = None
    ) -> Chat:
        chat = Chat(chat_type=ChatType.GROUP.value, name=name, description=description, created_by=creator_id)
        self.db.add(chat)
        await self.db.flush()
        await self._add_participant_row(chat.id, creator_id, ParticipantRole.ADMIN)
        for member_id in dict.fromkeys(member_ids or []):
            if member_id != creator_id:
                await self._add_participant_row(chat.id, member_id, ParticipantRole.MEMBER)
        await self.db.commit()
        await self.db.refresh(chat)
        return chat

    async def get_user_chats(self, user_id: str) -> List[Dict]:
        """Chats the user belongs to, most recent activity first"""
        stmt = (
            select(Chat, ChatParticipant.role)
            .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
            .where(
                ChatParticipant.user_id == user_id,
                ChatParticipant.is_deleted == False,
                Chat.is_deleted == False,
            )
            .order_by(desc(func.coalesce(Chat.last_message_at, Chat.created_at)))
        )
        result = await self.db.execute(stmt)
        chats = []
        for chat, role in result.all():
            chats.append({
                "chat": chat,
                "role": role,
                "participants": await self.get_chat_participants(chat.id),
                "unread_count": await self.unread.get_count(user_id, chat.id),
            })
        return chats

    # Messages

    async def send_message(self, chat_id: str, sender_id: str, message: str) -> Tuple[ChatMessage, List[str]]:
        """Persist a message and bump every other participant's unread counter.

        Returns the stored row and the recipient ids. The chat row is locked so
        ``sent_at`` is strictly increasing within a chat.
        """
        chat = await self.ensure_participant(chat_id, sender_id, for_update=True)
        now = utcnow()
        last = _aware(chat.last_message_at)
        if last is not None and now <= last:
            now = last + TICK

        chat_message = ChatMessage(
            chat_id=chat_id,
            sender_id=sender_id,
            message=message,
            chat_type=chat.chat_type,
            sent_at=now,
            created_at=now,
        )
        self.db.add(chat_message)
        chat.last_message_at = now
        await self.db.flush()

        recipients = [uid for uid in await self.get_chat_participants(chat_id) if uid != sender_id]
        for recipient_id in recipients:
            await self.unread.increment(recipient_id, chat_id)

        await self.db.commit()
        await self.db.refresh(chat_message)
        logger.info(f"Message {chat_message.id} sent to chat {chat_id} ({len(recipients)} recipients)")
        return chat_message, recipients

    async def get_message(self, message_id: UUID) -> ChatMessage:
        message = await self.get(message_id)
        if message is None:
            raise NotFoundError("Message", str(message_id))
        return message

    async def mark_message_delivered(self, message_id: UUID, user_id: str) -> Tuple[ChatMessage, bool]:
        message = await self.get_message(message_id)
        if message.sender_id == user_id:
            return message, False
        changed = apply_delivered(message, utcnow())
        if changed:
            await self.db.commit()
            await self.db.refresh(message)
        return message, changed

    async def mark_message_read(self, message_id: UUID, user_id: str) -> Tuple[ChatMessage, bool]:
        """Stamp read_at on one message. Unknown ids raise NotFoundError."""
        message = await self.get_message(message_id)
        if message.sender_id == user_id:
            logger.debug(f"Ignoring read receipt from sender {user_id} on {message_id}")
            return message, False
        changed = apply_read(message, utcnow())
        if changed:
            await self.db.commit()
            await self.db.refresh(message)
        return message, changed

    async def edit_message(self, message_id: UUID, user_id: str, text: str) -> ChatMessage:
        message = await self.get_message(message_id)
        if message.sender_id != user_id:
            raise ForbiddenError("Only the sender can edit a message")
        message.message = text
        message.edited_at = utcnow()
        await self.db.commit()
        await self.db.refresh(message)
        return message

    async def mark_chat_as_read(self, chat_id: str, user_id: str) -> Tuple[List[ChatMessage], object]:
        """Read every incoming message in the chat and zero the user's counter.

        Returns (messages stamped by this call, unread entry). Calling it again
        stamps nothing.
        """
        now = utcnow()
        unread_ids = select(ChatMessage.id).where(
            and_(
                ChatMessage.chat_id == chat_id,
                ChatMessage.sender_id != user_id,
                ChatMessage.read_at.is_(None),
                ChatMessage.is_deleted == False
            )
        )
        ids = list((await self.db.execute(unread_ids)).scalars().all())

        if ids:
            stmt = (
                update(ChatMessage)
                .where(ChatMessage.id.in_(ids), ChatMessage.read_at.is_(None))
                .values(
                    read_at=now,
                    delivered_at=func.coalesce(ChatMessage.delivered_at, now),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            await self.db.execute(stmt)
        await self.unread.reset(user_id, chat_id, now)
        await self.db.commit()

        messages = []
        if ids:
            result = await self.db.execute(
                select(ChatMessage)
                .where(ChatMessage.id.in_(ids), ChatMessage.read_at == now)
                .order_by(ChatMessage.sent_at, ChatMessage.created_at)
                .execution_options(populate_existing=True)
            )
            messages = list(result.scalars().all())

        entry = await self.unread.get_entry(user_id, chat_id)
        return messages, entry

    async def get_chat_history(self, chat_id: str, limit: int = 50, offset: int = 0) -> List[ChatMessage]:
        """Page of messages, oldest first within the page. Never touches unread counters."""
        stmt = select(ChatMessage).where(
            and_(
                ChatMessage.chat_id == chat_id,
                ChatMessage.is_deleted == False
            )
        ).order_by(
            desc(ChatMessage.sent_at), desc(ChatMessage.created_at), desc(ChatMessage.id)
        ).offset(offset).limit(limit)

        result = await self.db.execute(stmt)
        return list(reversed(result.scalars().all()))

    async def get_message_read_receipt(self, message_id: UUID) -> Dict:
        message = await self.get_message(message_id)
        return {
            "messageId": str(message.id),
            "isRead": message.read_at is not None,
            "readAt": message.read_at.isoformat() if message.read_at else None,
            "deliveredAt": message.delivered_at.isoformat() if message.delivered_at else None,
            "status": derive_message_status(message).value,
        }
