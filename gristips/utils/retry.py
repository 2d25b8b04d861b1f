"""Retry utilities with exponential backoff for external API calls."""

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from functools import partial, wraps
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from gristips.constants import (
    RETRY_BASE_DELAY,
    RETRY_JITTER,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
)
from gristips.exceptions import RETRYABLE_KINDS, ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Checked in order against the lowercased message of errors that carry no kind
_MESSAGE_TOKENS: tuple[tuple[str, ErrorKind], ...] = (
    ("timeout", ErrorKind.TIMEOUT),
    ("network", ErrorKind.NETWORK),
    ("econnreset", ErrorKind.NETWORK),
    ("enotfound", ErrorKind.DNS),
    ("500", ErrorKind.SERVER_ERROR),
    ("502", ErrorKind.SERVER_ERROR),
    ("503", ErrorKind.SERVER_ERROR),
    ("504", ErrorKind.SERVER_ERROR),
    ("429", ErrorKind.RATE_LIMITED),
    ("rate limit", ErrorKind.RATE_LIMITED),
)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY  # seconds
    max_delay: float = RETRY_MAX_DELAY  # seconds
    jitter: float = RETRY_JITTER  # fraction of the delay

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")


DEFAULT_RETRY_CONFIG = RetryConfig()


def kind_for_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an error kind."""
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code in (401, 403):
        return ErrorKind.AUTHENTICATION
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in (500, 502, 503, 504):
        return ErrorKind.SERVER_ERROR
    if status_code >= 500:
        return ErrorKind.UNKNOWN
    if status_code >= 400:
        return ErrorKind.VALIDATION
    return ErrorKind.UNKNOWN


def classify_error(error: BaseException) -> ErrorKind:
    """Work out what kind of failure an exception represents.

    A structured ``kind`` attribute wins, then httpx and builtin exception
    classes; anything else is classified from its message.
    """
    kind = getattr(error, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind

    if isinstance(error, httpx.HTTPStatusError):
        return kind_for_status(error.response.status_code)
    if isinstance(error, (httpx.TimeoutException, TimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return ErrorKind.NETWORK

    message = str(error).lower()
    for token, token_kind in _MESSAGE_TOKENS:
        if token in message:
            return token_kind
    return ErrorKind.UNKNOWN


def is_retryable_error(error: BaseException) -> bool:
    """Check if an error is transient and worth retrying."""
    return classify_error(error) in RETRYABLE_KINDS


class BackoffState(str, Enum):
    """Lifecycle of one ``ExponentialBackoff.execute`` call."""

    IDLE = "idle"
    ATTEMPTING = "attempting"
    WAITING = "waiting"
    SUCCESS = "success"
    FAILED = "failed"


class ExponentialBackoff:
    """Runs an async operation, retrying transient failures with growing delays.

    Usage:
        backoff = ExponentialBackoff(RetryConfig(max_attempts=2))
        orgs = await backoff.execute(lambda: client.get("/api/orgs"))

    Each instance keeps its own attempt counter; ``sleep`` and ``rand`` can be
    replaced in tests.
    """

    def __init__(
        self,
        config: RetryConfig = DEFAULT_RETRY_CONFIG,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        operation_name: str = "operation",
        rand: Callable[[], float] = random.random,
    ):
        self.config = config
        self.operation_name = operation_name
        self._sleep = sleep
        self._random = rand
        self._attempt = 0
        self.state = BackoffState.IDLE

    @property
    def current_attempt(self) -> int:
        return self._attempt

    @property
    def is_max_attempts_reached(self) -> bool:
        return self._attempt >= self.config.max_attempts

    def reset(self) -> None:
        """Reset the attempt counter."""
        self._attempt = 0
        self.state = BackoffState.IDLE

    def calculate_delay(self) -> float:
        """Delay before the next attempt, in seconds."""
        delay = self.config.base_delay * (2 ** (self._attempt - 1))
        jitter = self._random() * self.config.jitter * delay
        return min(delay + jitter, self.config.max_delay)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Execute ``operation`` until it succeeds or retrying stops.

        Raises:
            The last error of the operation, unchanged, once attempts are
            exhausted or as soon as a non-retryable error occurs
        """
        self.reset()

        while True:
            self.state = BackoffState.ATTEMPTING
            try:
                result = await operation()
            except Exception as e:
                self._attempt += 1

                if self.is_max_attempts_reached:
                    self.state = BackoffState.FAILED
                    logger.error(
                        f"{self.operation_name}: Failed after {self._attempt} attempts: {e}"
                    )
                    raise

                if not is_retryable_error(e):
                    self.state = BackoffState.FAILED
                    logger.debug(f"{self.operation_name}: Non-retryable error: {e}")
                    raise

                delay = self.calculate_delay()
                self.state = BackoffState.WAITING
                logger.warning(
                    f"{self.operation_name}: {type(e).__name__}, retrying in {delay:.1f}s "
                    f"(attempt {self._attempt}/{self.config.max_attempts})"
                )
                await self._sleep(delay)
                continue

            self._attempt = 0
            self.state = BackoffState.SUCCESS
            return result


def with_retry(
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
    operation_name: str | None = None,
) -> Callable:
    """Decorator to add retry logic to an async function.

    Args:
        config: Retry configuration
        operation_name: Name for logging (defaults to function name)

    Usage:
        @with_retry(config=RetryConfig(max_attempts=5))
        async def fetch_data():
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            backoff = ExponentialBackoff(config, operation_name=operation_name or func.__name__)
            return await backoff.execute(partial(func, *args, **kwargs))

        return wrapper

    return decorator
