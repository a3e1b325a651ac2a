# app/client/__init__.py
"""Async client side of the chat API: HTTP calls, change feed and local UI state."""
from .api_client import ChatApiClient, OutgoingMessage
from .feed import ChangeFeed
from .indicators import IndicatorConfig, IndicatorState, IndicatorStore
from .typing_tracker import TypingTracker, typing_display_text

__all__ = [
    "ChatApiClient",
    "OutgoingMessage",
    "ChangeFeed",
    "IndicatorConfig",
    "IndicatorState",
    "IndicatorStore",
    "TypingTracker",
    "typing_display_text",
]
