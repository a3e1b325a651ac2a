# app/services/chat/message_status.py
"""Derived message status and forward-only timestamp transitions."""
from datetime import datetime

from ...models.chat.chat_message import MessageStatus


def derive_message_status(message, failed: bool = False) -> MessageStatus:
    """Status for display: read > delivered > sent > sending.

    ``message`` is anything exposing ``read_at``/``delivered_at``/``sent_at``
    (ORM row, schema object or client-side pending record).
    """
    if getattr(message, "read_at", None) is not None:
        return MessageStatus.READ
    if getattr(message, "delivered_at", None) is not None:
        return MessageStatus.DELIVERED
    if getattr(message, "sent_at", None) is not None:
        return MessageStatus.SENT
    return MessageStatus.FAILED if failed else MessageStatus.SENDING


def apply_delivered(message, at: datetime) -> bool:
    """Stamp delivered_at once. Returns True when the row changed."""
    if message.delivered_at is not None:
        return False
    message.delivered_at = at
    return True


def apply_read(message, at: datetime) -> bool:
    """Stamp read_at once; a read message is also delivered."""
    changed = apply_delivered(message, at)
    if message.read_at is None:
        message.read_at = at
        changed = True
    return changed
