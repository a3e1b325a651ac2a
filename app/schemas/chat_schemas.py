# app/schemas/chat_schemas.py
"""Pydantic schemas for chat messages, conversations and typing status."""
from typing import List, Optional
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from ..models.chat.chat_message import MessageStatus
from ..services.chat.message_status import derive_message_status


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError('must not be empty')
    return value


class SendMessageRequest(CamelModel):
    chat_id: str = Field(..., alias='chatId', min_length=1, max_length=64)
    message: str = Field(..., max_length=5000)

    @field_validator('chat_id', 'message')
    @classmethod
    def strip_text(cls, v):
        return _not_blank(v)


class EditMessageRequest(CamelModel):
    message: str = Field(..., max_length=5000)

    @field_validator('message')
    @classmethod
    def strip_text(cls, v):
        return _not_blank(v)


class TypingRequest(CamelModel):
    chat_id: str = Field(..., alias='chatId', min_length=1, max_length=64)

    @field_validator('chat_id')
    @classmethod
    def strip_chat_id(cls, v):
        return _not_blank(v)


class CreateDMRequest(CamelModel):
    recipient_id: str = Field(..., alias='recipientId', min_length=1, max_length=64)


class CreateGroupRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    member_ids: List[str] = Field(default_factory=list, alias='memberIds')


class AddParticipantRequest(CamelModel):
    user_id: str = Field(..., alias='userId', min_length=1, max_length=64)


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    chat_id: str
    sender_id: str
    message: str
    chat_type: Optional[str] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    edited_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @computed_field
    @property
    def status(self) -> MessageStatus:
        return derive_message_status(self)


class ChatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    chat_type: str
    name: Optional[str] = None
    description: Optional[str] = None
    created_by: Optional[str] = None
    last_message_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UnreadCountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    chat_id: str
    unread_count: int
    last_read_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
