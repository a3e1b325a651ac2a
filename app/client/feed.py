# app/client/feed.py
"""
Client for the ``/ws/realtime`` change feed.

The feed reconnects with exponential backoff. Once the retry budget is spent
it switches to polling the HTTP API and keeps delivering synthesized change
events to the same handlers, so consumers do not care which mode is active.
"""
import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote_plus

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..core.retry import ChatError, ErrorCategory, RetryPolicy, call_with_retry
from .api_client import ChatApiClient

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Any]
Poller = Callable[[], Awaitable[List[Dict[str, Any]]]]


class ChangeFeed:
    def __init__(
        self,
        url: str,
        token: str,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        connect=websockets.connect,
        api_client: Optional[ChatApiClient] = None,
        poll_interval: float = 1.0,
        sleep=asyncio.sleep
    ):
        self.url = url
        self.token = token
        self.retry_policy = retry_policy or RetryPolicy()
        self.api_client = api_client
        self.poll_interval = poll_interval
        self.mode = "idle"
        self._connect = connect
        self._sleep = sleep
        self._handlers: Dict[str, List[Handler]] = {}
        self._pollers: Dict[str, Poller] = {}
        self._typing_seen: Dict[str, Dict[str, str]] = {}
        self._ws = None
        self._closed = False

    @property
    def channels(self) -> List[str]:
        return list(self._handlers)

    def on(self, channel: str, handler: Handler) -> Callable[[], None]:
        """Call ``handler`` for every change on ``channel``; returns an unsubscribe callable"""
        self._handlers.setdefault(channel, []).append(handler)

        def remove():
            handlers = self._handlers.get(channel, [])
            if handler in handlers:
                handlers.remove(handler)
            if not handlers:
                self._handlers.pop(channel, None)
        return remove

    def add_poller(self, channel: str, poller: Poller) -> None:
        """Custom source of events for ``channel`` while polling"""
        self._pollers[channel] = poller

    async def _open(self):
        url = f"{self.url}?token={quote_plus(self.token)}"
        try:
            return await self._connect(url)
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            raise ChatError(f"Realtime connection failed: {e}", ErrorCategory.REALTIME) from e

    async def run(self) -> None:
        """Deliver events until ``close`` is called"""
        while not self._closed:
            try:
                ws = await call_with_retry(
                    self._open, self.retry_policy, sleep=self._sleep, description="realtime connect"
                )
            except ChatError as e:
                if e.category != ErrorCategory.REALTIME:
                    raise
                logger.warning(f"Realtime unavailable after {e.retry_count} retries, polling instead")
                await self._poll_forever()
                return

            self._ws = ws
            self.mode = "realtime"
            try:
                await self._listen(ws)
            except ConnectionClosed as e:
                logger.info(f"Realtime connection closed ({e}), reconnecting")
            finally:
                self._ws = None

    async def _listen(self, ws) -> None:
        for channel in self.channels:
            await ws.send(json.dumps({"type": "subscribe", "channel": channel}))
        async for raw in ws:
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring malformed realtime frame: {raw!r}")
                continue
            if message.get("type") == "change":
                await self._dispatch(message)
            elif message.get("type") == "error":
                logger.warning(f"Realtime error: {message.get('message')}")
            if self._closed:
                return

    async def _dispatch(self, event: Dict[str, Any]) -> None:
        for handler in list(self._handlers.get(event.get("channel"), [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Change handler failed on {event.get('channel')}: {e}")

    async def _poll_forever(self) -> None:
        self.mode = "polling"
        while not self._closed:
            for channel in self.channels:
                try:
                    events = await self.poll_channel(channel)
                except ChatError as e:
                    logger.warning(f"Polling {channel} failed: {e.user_message}")
                    continue
                for event in events:
                    await self._dispatch(event)
            await self._sleep(self.poll_interval)

    async def poll_channel(self, channel: str) -> List[Dict[str, Any]]:
        if channel in self._pollers:
            return await self._pollers[channel]()
        table, _, scope = channel.partition(":")
        if table == "typing_status" and self.api_client is not None:
            rows = await self.api_client.get_typing_users(scope)
            return self._typing_events(channel, rows)
        return []

    def _typing_events(self, channel: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Diff the polled typing list against the last poll"""
        seen = self._typing_seen.get(channel, {})
        current = {row["user_id"]: row["expires_at"] for row in rows}
        events = []
        for row in rows:
            previous = seen.get(row["user_id"])
            if previous is None:
                events.append(_change(channel, "INSERT", row))
            elif previous != row["expires_at"]:
                events.append(_change(channel, "UPDATE", row))
        chat_id = channel.partition(":")[2]
        for user_id in seen:
            if user_id not in current:
                events.append(_change(channel, "DELETE", {"chat_id": chat_id, "user_id": user_id}))
        self._typing_seen[channel] = current
        return events

    async def close(self) -> None:
        self._closed = True
        self.mode = "closed"
        if self._ws is not None:
            await self._ws.close()


def _change(channel: str, event: str, record: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "change",
        "channel": channel,
        "event": event,
        "table": channel.partition(":")[0],
        "record": record,
    }
