"""Centralized logging configuration for the Gristips application."""

import logging
import sys
from typing import Any, Literal

from gristips.config import get_settings

AUTH_EVENTS = ("signin_success", "signin_failed", "signout", "access_denied")


def setup_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] | None = None
) -> None:
    """Configure logging for the application.

    Args:
        level: Override log level (default: INFO for production, DEBUG for development)
    """
    settings = get_settings()

    if level is None:
        level = "INFO" if settings.is_production else "DEBUG"

    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class LogContext:
    """Context manager for adding structured context to log messages."""

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        """Initialize the log context.

        Args:
            logger: The logger to use
            **context: Key-value pairs to include in log messages (None values are skipped)
        """
        self.logger = logger
        self.context = {k: v for k, v in context.items() if v is not None}
        self.prefix = " ".join(f"[{k}={v}]" for k, v in self.context.items())

    def __enter__(self) -> "LogContext":
        return self

    def __exit__(self, *args: Any) -> None:
        return None

    def _format(self, msg: str) -> str:
        return f"{self.prefix} {msg}" if self.prefix else msg

    def debug(self, msg: str, *args, **kwargs) -> None:
        self.logger.debug(self._format(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs) -> None:
        self.logger.info(self._format(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs) -> None:
        self.logger.warning(self._format(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs) -> None:
        self.logger.error(self._format(msg), *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs) -> None:
        self.logger.exception(self._format(msg), *args, **kwargs)


_error_logger = get_logger("gristips.errors")
_auth_logger = get_logger("gristips.auth.events")


def log_error(error: BaseException, **context: Any) -> None:
    """Log an error with request/user context.

    Application errors are logged with their type and details; anything else
    gets its traceback attached.
    """
    from gristips.exceptions import AppError

    log = LogContext(_error_logger, **context)
    if isinstance(error, AppError):
        log.error(f"{error.type.value}: {error.message} ({error.details or 'no details'})")
    else:
        log.error(f"{type(error).__name__}: {error}", exc_info=error)


def log_auth_event(event: str, **context: Any) -> None:
    """Log an authentication event for audit purposes."""
    if event not in AUTH_EVENTS:
        raise ValueError(f"Unknown auth event: {event}")
    LogContext(_auth_logger, **context).info(f"AUTH_EVENT: {event}")
