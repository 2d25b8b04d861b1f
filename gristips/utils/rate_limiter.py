"""Per-user rate limiting for Grist API calls.

Each key gets a discrete window: the first request opens it, requests are
counted until ``max_requests`` is reached, and the whole quota comes back once
the window has elapsed. Access is expected from a single event loop, so
nothing here is locked.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from gristips.constants import (
    GRIST_API_MAX_REQUESTS,
    GRIST_API_RETRY_AFTER,
    GRIST_API_WINDOW,
    GRIST_VALIDATION_MAX_REQUESTS,
    GRIST_VALIDATION_RETRY_AFTER,
    GRIST_VALIDATION_WINDOW,
)

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    max_requests: int
    window_seconds: float
    retry_after_seconds: float | None = None  # suggested wait, overrides time to reset


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float


@dataclass
class RateLimitResult:
    allowed: bool
    retry_after: int | None = None  # seconds


@dataclass
class RateLimitStatus:
    count: int
    remaining: int
    reset_time: float  # clock value at which the window ends


@dataclass
class RateLimitCheck:
    """Outcome of a ``with_rate_limit`` check."""

    allowed: bool
    retry_after: int | None
    status: RateLimitStatus


class SlidingWindowRateLimiter:
    """Caps the number of operations per key within a time window."""

    def __init__(self, config: RateLimitConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._entries: dict[str, RateLimitEntry] = {}

    def is_allowed(self, key: str) -> RateLimitResult:
        """Record a request for ``key`` and say whether it may proceed."""
        now = self._clock()
        self._cleanup(now)

        entry = self._entries.get(key)
        if entry is None or now >= entry.reset_time:
            self._entries[key] = RateLimitEntry(
                count=1, reset_time=now + self.config.window_seconds
            )
            return RateLimitResult(allowed=True)

        if entry.count >= self.config.max_requests:
            if self.config.retry_after_seconds is not None:
                retry_after = math.ceil(self.config.retry_after_seconds)
            else:
                retry_after = math.ceil(entry.reset_time - now)
            logger.debug(f"Rate limit exceeded for {key}, retry after {retry_after}s")
            return RateLimitResult(allowed=False, retry_after=retry_after)

        entry.count += 1
        return RateLimitResult(allowed=True)

    def get_status(self, key: str) -> RateLimitStatus:
        """Quota used and left for ``key``. Does not count as a request."""
        now = self._clock()
        entry = self._entries.get(key)

        if entry is None or now >= entry.reset_time:
            return RateLimitStatus(
                count=0,
                remaining=self.config.max_requests,
                reset_time=now + self.config.window_seconds,
            )

        return RateLimitStatus(
            count=entry.count,
            remaining=max(0, self.config.max_requests - entry.count),
            reset_time=entry.reset_time,
        )

    def reset(self, key: str) -> None:
        """Forget everything tracked for ``key``."""
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def _cleanup(self, now: float) -> None:
        expired = [key for key, entry in self._entries.items() if now >= entry.reset_time]
        for key in expired:
            del self._entries[key]


def with_rate_limit(
    limiter: SlidingWindowRateLimiter,
    key_generator: Callable[[str, str | None], str] | None = None,
) -> Callable[[str, str | None], RateLimitCheck]:
    """Build a checker for API handlers.

    Usage:
        check = with_rate_limit(limiter, lambda user_id, action: f"{user_id}:{action}")
        result = check(str(user.id), "api_key_validation")
        if not result.allowed:
            raise RateLimitExceededError(result.retry_after)
    """

    def check(user_id: str, action: str | None = None) -> RateLimitCheck:
        key = key_generator(user_id, action) if key_generator else user_id
        result = limiter.is_allowed(key)
        return RateLimitCheck(
            allowed=result.allowed,
            retry_after=result.retry_after,
            status=limiter.get_status(key),
        )

    return check


def action_key(user_id: str, action: str | None = None) -> str:
    """Key per user and action, e.g. ``"42:api_key_validation"``."""
    return f"{user_id}:{action}" if action else user_id


class RateLimiters:
    """The application's rate limiters, built once at startup and kept on ``app.state``."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.grist_api = SlidingWindowRateLimiter(
            RateLimitConfig(
                max_requests=GRIST_API_MAX_REQUESTS,
                window_seconds=GRIST_API_WINDOW,
                retry_after_seconds=GRIST_API_RETRY_AFTER,
            ),
            clock=clock,
        )
        self.grist_validation = SlidingWindowRateLimiter(
            RateLimitConfig(
                max_requests=GRIST_VALIDATION_MAX_REQUESTS,
                window_seconds=GRIST_VALIDATION_WINDOW,
                retry_after_seconds=GRIST_VALIDATION_RETRY_AFTER,
            ),
            clock=clock,
        )
        self.check_grist_api = with_rate_limit(self.grist_api, action_key)
        self.check_grist_validation = with_rate_limit(self.grist_validation, action_key)
