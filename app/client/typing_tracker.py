# app/client/typing_tracker.py
"""Consumer-side typing state built from ``typing_status`` change events.

A typist is dropped when a DELETE arrives or when the local timer started at
the last INSERT/UPDATE runs out, whichever comes first. Clients that vanish
without sending "stop" therefore disappear after one TTL window.
"""
import asyncio
import logging
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def typing_display_text(names: List[str]) -> str:
    if not names:
        return ""
    if len(names) == 1:
        return f"{names[0]} is typing"
    if len(names) == 2:
        return f"{names[0]} and {names[1]} are typing"
    return f"{len(names)} people are typing"


class TypingTracker:
    def __init__(
        self,
        chat_id: str,
        current_user_id: Optional[str] = None,
        ttl_seconds: float = 2.0,
        display_name: Optional[Callable[[str], str]] = None,
        on_change: Optional[Callable[[List[str]], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        self.chat_id = chat_id
        self.current_user_id = current_user_id
        self.ttl_seconds = ttl_seconds
        self.display_name = display_name or (lambda user_id: user_id)
        self.on_change = on_change
        self._loop = loop
        # insertion order is the order users started typing
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def typing_users(self) -> List[str]:
        return list(self._timers)

    def display_text(self) -> str:
        return typing_display_text([self.display_name(user_id) for user_id in self._timers])

    def handle_event(self, event: Dict) -> None:
        """Apply one change event from the ``typing_status`` channel"""
        record = event.get("record") or {}
        if record.get("chat_id") != self.chat_id:
            return
        user_id = record.get("user_id")
        if not user_id or user_id == self.current_user_id:
            return

        if event.get("event") == "DELETE":
            self.remove(user_id)
        else:
            self.add(user_id)

    def add(self, user_id: str) -> None:
        handle = self._timers.get(user_id)
        if handle is not None:
            handle.cancel()
        self._timers[user_id] = self.loop.call_later(self.ttl_seconds, self._expire, user_id)
        if handle is None:
            self._changed()

    def remove(self, user_id: str) -> None:
        handle = self._timers.pop(user_id, None)
        if handle is not None:
            handle.cancel()
            self._changed()

    def _expire(self, user_id: str) -> None:
        if self._timers.pop(user_id, None) is not None:
            logger.debug(f"Typing status for {user_id} in {self.chat_id} expired locally")
            self._changed()

    def close(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.typing_users)
