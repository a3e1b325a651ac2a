# app/core/retry.py
"""Error categories and exponential-backoff retry shared by the API and the client.

Callers wrap the operation explicitly at the call site::

    rows = await call_with_retry(lambda: client.get_typing_users(chat_id), policy)

Validation and authentication failures are raised immediately. Network and
real-time failures are retried up to ``policy.max_retries`` times with an
increasing delay, then raised.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ErrorCategory(str, enum.Enum):
    NETWORK = "network"
    DATABASE = "database"
    REALTIME = "realtime"
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    GENERIC = "generic"


RETRYABLE_CATEGORIES = frozenset({ErrorCategory.NETWORK, ErrorCategory.REALTIME})

DEFAULT_USER_MESSAGES: Dict[ErrorCategory, str] = {
    ErrorCategory.NETWORK: "Connection issue. Please check your internet connection and try again.",
    ErrorCategory.DATABASE: "Data storage issue. Please try again or contact support if the problem persists.",
    ErrorCategory.REALTIME: "Real-time updates temporarily unavailable. Messages will still be delivered.",
    ErrorCategory.VALIDATION: "Invalid input provided. Please check your data and try again.",
    ErrorCategory.AUTHENTICATION: "Authentication required. Please log in and try again.",
    ErrorCategory.GENERIC: "An unexpected error occurred. Please try again or contact support.",
}

SCHEMA_ERROR_MESSAGE = "System configuration error. Please contact support."

# PostgreSQL and SQLite wordings of a missing column
SCHEMA_ERROR_MARKERS = ("does not exist", "no such column")


class ChatError(Exception):
    """Categorized failure carrying a message that is safe to show to the user."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.GENERIC,
        *,
        user_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        fields: Optional[List[str]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = ErrorCategory(category)
        if not user_message and self.category == ErrorCategory.VALIDATION:
            user_message = message
        self.user_message = user_message or DEFAULT_USER_MESSAGES[self.category]
        self.context = context or {}
        self.fields = fields or []
        self.status_code = status_code
        self.retry_count = 0

    @property
    def is_recoverable(self) -> bool:
        return self.category in RETRYABLE_CATEGORIES


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number ``attempt + 1`` (attempt starts at 0)."""
        delay = self.base_delay * (self.backoff_multiplier ** attempt)
        return min(delay, self.max_delay)


def classify_error(exc: BaseException) -> ChatError:
    """Map any exception onto a ChatError with the right category."""
    if isinstance(exc, ChatError):
        if exc.category == ErrorCategory.DATABASE:
            lowered = exc.message.lower()
            if "column" in lowered and any(marker in lowered for marker in SCHEMA_ERROR_MARKERS):
                logger.error(f"Database schema mismatch detected: {exc.message}")
                return ChatError(
                    "Database schema validation failed",
                    ErrorCategory.DATABASE,
                    user_message=SCHEMA_ERROR_MESSAGE,
                    context=exc.context,
                )
            if "connection" in lowered:
                exc.category = ErrorCategory.NETWORK
                exc.user_message = DEFAULT_USER_MESSAGES[ErrorCategory.NETWORK]
        return exc

    if isinstance(exc, SQLAlchemyError):
        # driver message, without the SQL text
        message = str(getattr(exc, "orig", None) or exc) or type(exc).__name__
        return classify_error(ChatError(message, ErrorCategory.DATABASE))
    if isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return ChatError(str(exc) or type(exc).__name__, ErrorCategory.NETWORK)
    if isinstance(exc, ValueError):
        return ChatError(str(exc), ErrorCategory.VALIDATION)
    return ChatError(str(exc) or type(exc).__name__, ErrorCategory.GENERIC)


def render_error(exc: BaseException) -> str:
    """User-visible text for any failure. Never empty."""
    message = classify_error(exc).user_message
    return message or DEFAULT_USER_MESSAGES[ErrorCategory.GENERIC]


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """Run ``operation`` retrying recoverable failures with exponential backoff."""
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            error = classify_error(exc)
            error.retry_count = attempt
            if not error.is_recoverable or attempt >= policy.max_retries:
                if error.is_recoverable:
                    logger.error(f"{description} failed after {attempt} retries: {error.message}")
                if error is exc:
                    raise
                raise error from exc

            delay = policy.delay_for(attempt)
            logger.warning(
                f"{description} failed ({error.category.value}): {error.message} - "
                f"retrying in {delay:.2f}s (attempt {attempt + 1}/{policy.max_retries})"
            )
            attempt += 1
            await sleep(delay)
