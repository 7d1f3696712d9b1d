"""
Centralized logging and error handling utilities for askLunar.

This module provides helpers to standardize logging and error reporting
across the reading client:

Features:
- Structured logging with contextual information
- Error classification into stable categories for log records
- User-facing messages for every reading fault
- Operation timing via decorator or async context manager
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import structlog

from asklunar.reading.exceptions import (
    DecodingError,
    HttpError,
    InvalidResponseError,
    MaxRetriesExceededError,
    NetworkError,
    ReadingError,
    StreamEventError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(logging_config: dict[str, Any]) -> None:
    """Apply the ``logging`` config section to the stdlib root logger."""
    level_name = str(logging_config.get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level '{level_name}'")

    logging.basicConfig(
        level=level, format="%(asctime)s - %(levelname)s - %(message)s"
    )
    logging.getLogger().setLevel(level)

    # httpx logs every request at INFO
    if not logging_config.get("log_http_requests", False):
        logging.getLogger("httpx").setLevel(logging.WARNING)


class ReadingErrorHandler:
    """Centralized reading error classification with structured logging."""

    @staticmethod
    def classify_error(error: BaseException) -> str:
        """
        Classify an error into a stable category string.

        Args:
            error: The exception to classify

        Returns:
            Error category used in log records
        """
        if isinstance(error, MaxRetriesExceededError):
            return "max_retries_exceeded"
        if isinstance(error, HttpError):
            return "server_error" if error.retryable else "http_error"
        if isinstance(error, NetworkError):
            return "transient_network_error" if error.retryable else "network_error"
        if isinstance(error, StreamEventError):
            return "stream_error_event"
        if isinstance(error, DecodingError):
            return "decoding_error"
        if isinstance(error, InvalidResponseError):
            return "invalid_response"
        if isinstance(error, TimeoutError):
            return "timeout_error"
        if isinstance(error, ConnectionError | OSError):
            return "connection_error"
        return "unknown_error"

    @staticmethod
    def describe_error(error: BaseException) -> str:
        """Return a message suitable for showing to the person reading."""
        if isinstance(error, InvalidResponseError):
            return "Invalid response received from server"
        if isinstance(error, HttpError):
            return f"HTTP Error {error.status_code}: {error.message}"
        if isinstance(error, DecodingError):
            return f"Failed to decode response: {error.message}"
        if isinstance(error, NetworkError):
            return f"Network error: {error.underlying}"
        if isinstance(error, MaxRetriesExceededError):
            return "Maximum retry attempts exceeded. Please try again later."
        if isinstance(error, ReadingError):
            return error.message
        return str(error)

    @staticmethod
    def log_error(
        error: BaseException,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Log ``error`` with its category and retry guidance."""
        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=ReadingErrorHandler.classify_error(error),
            error_message=str(error),
            retryable=getattr(error, "retryable", False),
            **(context or {}),
        )


def _failure_fields(error: BaseException, started: float | None) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_category": ReadingErrorHandler.classify_error(error),
        "error_message": str(error),
    }
    if started is not None:
        fields["duration_ms"] = _elapsed_ms(started)
    return fields


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


def log_operation(
    operation: str,
    *,
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator logging start, success and failure of an async function.

    Args:
        operation: Name recorded as the ``operation`` field
        log_result: Whether to include the return value in the success record
        log_timing: Whether to record ``duration_ms``
        context: Extra fields bound to every record
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            async with operation_context(
                operation,
                context={"function": func.__name__, **(context or {})},
                log_timing=log_timing,
            ) as op_logger:
                result = await func(*args, **kwargs)
                if log_result:
                    op_logger.debug("Operation result", result=result)
                return result

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
) -> AsyncIterator[structlog.stdlib.BoundLogger]:
    """
    Log one operation's lifecycle around the ``async with`` body.

    Yields a logger bound to ``operation`` and ``context``. Exceptions are
    logged with their category and re-raised unchanged; cancellation is not
    treated as a failure.
    """
    op_logger = logger.bind(operation=operation, **(context or {}))
    op_logger.info("Operation started")
    started = time.perf_counter() if log_timing else None

    try:
        yield op_logger
    except Exception as e:
        op_logger.error("Operation failed", **_failure_fields(e, started))
        raise

    done: dict[str, Any] = {}
    if started is not None:
        done["duration_ms"] = _elapsed_ms(started)
    op_logger.info("Operation completed successfully", **done)


class ContextualLogger:
    """Logger carrying a fixed context, used for one reading session."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        """Return a new logger with ``context`` merged in."""
        return ContextualLogger({**self.base_context, **context})

    def info(self, message: str, **context: Any) -> None:
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)
