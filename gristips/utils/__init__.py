"""Utility modules for the Gristips application."""

from gristips.utils.encryption import (
    SecretCipher,
    generate_encryption_key,
    hash_secret,
    mask_secret,
    verify_secret_hash,
)
from gristips.utils.logging import LogContext, get_logger, log_auth_event, log_error, setup_logging
from gristips.utils.rate_limiter import (
    RateLimitConfig,
    RateLimiters,
    SlidingWindowRateLimiter,
    with_rate_limit,
)
from gristips.utils.retry import ExponentialBackoff, RetryConfig, is_retryable_error, with_retry

__all__ = [
    # Encryption
    "SecretCipher",
    "generate_encryption_key",
    "hash_secret",
    "mask_secret",
    "verify_secret_hash",
    # Logging
    "get_logger",
    "LogContext",
    "log_auth_event",
    "log_error",
    "setup_logging",
    # Rate limiting
    "RateLimitConfig",
    "RateLimiters",
    "SlidingWindowRateLimiter",
    "with_rate_limit",
    # Retry
    "ExponentialBackoff",
    "RetryConfig",
    "is_retryable_error",
    "with_retry",
]
