# app/client/indicators.py
"""Short-lived "just sent a message" indicators per user.

Each user has at most one indicator and one timer. Activating again replaces
the timer, so the indicator stays up for ``duration`` after the latest
activation.
"""
import asyncio
import enum
import itertools
import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class IndicatorStyle(str, enum.Enum):
    PULSE = "pulse"
    GLOW = "glow"
    BADGE = "badge"
    RING = "ring"


@dataclass(frozen=True)
class IndicatorConfig:
    duration: int = 3000  # ms
    fade_out_duration: int = 500  # ms
    style: IndicatorStyle = IndicatorStyle.PULSE


@dataclass(frozen=True)
class IndicatorState:
    user_id: str
    is_active: bool
    start_time: float
    duration: int
    style: IndicatorStyle


Listener = Callable[[Dict[str, IndicatorState]], None]


class IndicatorStore:
    def __init__(self, config: Optional[IndicatorConfig] = None, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.config = config or IndicatorConfig()
        self._loop = loop
        self._indicators: Dict[str, IndicatorState] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}
        self._listeners: Dict[int, Listener] = {}
        self._tokens = itertools.count()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def activate(self, user_id: str) -> IndicatorState:
        """Show the indicator for ``user_id``, restarting its timer"""
        self._clear_timer(user_id)
        state = IndicatorState(
            user_id=user_id,
            is_active=True,
            start_time=time.time(),
            duration=self.config.duration,
            style=self.config.style,
        )
        self._indicators[user_id] = state
        self._notify()
        self._timers[user_id] = self.loop.call_later(
            self.config.duration / 1000, self.deactivate, user_id
        )
        logger.debug(f"Indicator activated for {user_id}")
        return state

    def deactivate(self, user_id: str) -> None:
        self._clear_timer(user_id)
        if self._indicators.pop(user_id, None) is not None:
            self._notify()
            logger.debug(f"Indicator deactivated for {user_id}")

    def get_state(self, user_id: str) -> Optional[IndicatorState]:
        return self._indicators.get(user_id)

    def has_active(self, user_id: str) -> bool:
        return user_id in self._indicators

    def snapshot(self) -> Dict[str, IndicatorState]:
        return dict(self._indicators)

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register ``callback``; it is called right away with the current map.

        Every call is its own subscription, even for a callable that is
        already registered. The returned function removes only this one.
        """
        token = next(self._tokens)
        self._listeners[token] = callback
        callback(self.snapshot())

        def unsubscribe():
            self._listeners.pop(token, None)
        return unsubscribe

    def update_config(self, **changes) -> IndicatorConfig:
        self.config = replace(self.config, **changes)
        return self.config

    def stats(self) -> Dict[str, int]:
        return {
            "activeIndicators": len(self._indicators),
            "activeTimers": len(self._timers),
            "listeners": len(self._listeners),
        }

    def cleanup(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._indicators.clear()
        self._listeners.clear()

    def _clear_timer(self, user_id: str) -> None:
        handle = self._timers.pop(user_id, None)
        if handle is not None:
            handle.cancel()

    def _notify(self) -> None:
        current = self.snapshot()
        for callback in list(self._listeners.values()):
            try:
                callback(current)
            except Exception as e:
                logger.error(f"Error in indicator listener: {e}")
