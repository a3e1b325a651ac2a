# app/client/api_client.py
"""
Async HTTP client for the chat API.

Every call goes through ``call_with_retry``: transport failures and 503s are
retried with backoff, validation and authentication failures are raised at once
as ``ChatError`` with a message that can be shown to the user.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from ..core.retry import ChatError, ErrorCategory, RetryPolicy, call_with_retry, render_error
from ..models.chat.chat_message import MessageStatus
from ..services.chat.message_status import derive_message_status

logger = logging.getLogger(__name__)

STATUS_CATEGORIES = {
    400: ErrorCategory.VALIDATION,
    401: ErrorCategory.AUTHENTICATION,
    403: ErrorCategory.AUTHENTICATION,
    422: ErrorCategory.VALIDATION,
    502: ErrorCategory.NETWORK,
    503: ErrorCategory.NETWORK,
    504: ErrorCategory.NETWORK,
}


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class OutgoingMessage:
    """Local record of a message from the moment the user hits send"""
    chat_id: str
    message: str
    local_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[str] = None
    sent_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    failed: bool = False
    error: Optional[str] = None

    @property
    def status(self) -> MessageStatus:
        return derive_message_status(self, failed=self.failed)

    def apply_record(self, record: Dict[str, Any]) -> None:
        """Merge a server row; timestamps never move back to empty"""
        self.id = record.get("id") or self.id
        for name in ("sent_at", "delivered_at", "read_at"):
            value = _parse_time(record.get(name))
            if value is not None:
                setattr(self, name, value)


class ChatApiClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep=asyncio.sleep,
        timeout: float = 10.0
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    async def _send(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise ChatError(f"Request timed out: {method} {path}", ErrorCategory.NETWORK) from e
        except httpx.TransportError as e:
            raise ChatError(f"Network error on {method} {path}: {e}", ErrorCategory.NETWORK) from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_success:
            return body.get("data") if isinstance(body, dict) else body

        if not isinstance(body, dict):
            body = {}
        message = body.get("message")
        category = STATUS_CATEGORIES.get(response.status_code, ErrorCategory.GENERIC)
        errors = body.get("errors") or []
        raise ChatError(
            f"{method} {path} failed with {response.status_code}: {message}",
            category,
            user_message=message,
            fields=[e.get("field") for e in errors if e.get("field")],
            status_code=response.status_code,
        )

    async def request(self, method: str, path: str, **kwargs) -> Any:
        return await call_with_retry(
            lambda: self._send(method, path, **kwargs),
            self.retry_policy,
            sleep=self._sleep,
            description=f"{method} {path}",
        )

    # Messages

    async def send_message(self, chat_id: str, text: str) -> OutgoingMessage:
        """Send and return the local record; failures mark it failed instead of raising"""
        outgoing = OutgoingMessage(chat_id=chat_id, message=text)
        try:
            record = await self.request("POST", "/api/chat/send", json={"chatId": chat_id, "message": text})
        except ChatError as e:
            outgoing.failed = True
            outgoing.error = render_error(e)
            logger.warning(f"Send to {chat_id} failed: {e.message}")
            return outgoing
        outgoing.apply_record(record)
        return outgoing

    async def mark_message_read(self, message_id: str) -> Dict:
        return await self.request("PATCH", f"/api/chat/message/{message_id}/read")

    async def mark_message_delivered(self, message_id: str) -> Dict:
        return await self.request("PATCH", f"/api/chat/message/{message_id}/delivered")

    async def mark_chat_read(self, chat_id: str) -> Dict:
        return await self.request("PATCH", f"/api/chat/{chat_id}/read")

    async def get_history(self, chat_id: str, limit: int = 50, offset: int = 0) -> List[Dict]:
        data = await self.request("GET", f"/api/chat/{chat_id}/history", params={"limit": limit, "offset": offset})
        return data["messages"]

    async def get_unread_count(self, chat_id: str) -> int:
        data = await self.request("GET", f"/api/chat/{chat_id}/unread-count")
        return data["unreadCount"]

    async def get_total_unread_count(self) -> int:
        data = await self.request("GET", "/api/chat/unread-count/total")
        return data["totalUnreadCount"]

    # Typing

    async def start_typing(self, chat_id: str) -> Dict:
        return await self.request("POST", "/api/typing/start", json={"chatId": chat_id})

    async def stop_typing(self, chat_id: str) -> Dict:
        return await self.request("POST", "/api/typing/stop", json={"chatId": chat_id})

    async def get_typing_users(self, chat_id: str) -> List[Dict]:
        data = await self.request("GET", f"/api/typing/{chat_id}")
        return data["typingUsers"]

    # Notifications

    async def get_notifications(self, unread_only: bool = False) -> List[Dict]:
        return await self.request("GET", "/api/notifications", params={"unreadOnly": unread_only})

    async def mark_notification_read(self, notification_id: str) -> Dict:
        return await self.request("PATCH", f"/api/notifications/{notification_id}/read")

    async def register_push_token(self, token: str, platform: Optional[str] = None) -> Dict:
        return await self.request("POST", "/api/notifications/push-token", json={"token": token, "platform": platform})
