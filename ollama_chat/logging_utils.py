"""
Centralized logging and error classification utilities for the chat client.

This module provides decorators and helpers that standardize how operations
are logged and how failures are categorized, so the transport and the chat
session report problems the same way.

Features:
- Structured logging with contextual information
- Error type detection and classification
- Performance timing for async operations
"""

from __future__ import annotations

import functools
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import structlog
from pydantic import ValidationError

from .llm.exceptions import BackendError, StreamingError, TransportError

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


class StreamErrorHandler:
    """Classifies failures seen while talking to the chat endpoint."""

    @staticmethod
    def classify_error(error: Exception) -> tuple[int | None, str]:
        """
        Classify an error and return its HTTP status (if any) and category.

        Args:
            error: The exception to classify

        Returns:
            Tuple of (status_code, error_category)
        """
        if isinstance(error, BackendError):
            return error.status_code, "backend_error"
        if isinstance(error, TransportError):
            return None, "network_error"
        if isinstance(error, StreamingError):
            return error.status_code, "streaming_error"
        if isinstance(error, ValidationError):
            return None, "validation_error"
        if isinstance(error, TimeoutError):
            return None, "timeout_error"
        if isinstance(error, ConnectionError | OSError):
            return None, "network_error"
        if isinstance(error, ValueError | TypeError):
            return None, "parameter_error"
        return None, "unknown_error"

    @staticmethod
    def log_failure(
        error: Exception,
        operation: str,
        context: dict[str, Any] | None = None,
    ) -> str:
        """Log a classified failure and return its category."""
        status_code, error_category = StreamErrorHandler.classify_error(error)
        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=error_category,
            status_code=status_code,
            error_message=str(error),
            **(context or {}),
        )
        return error_category


def log_operation(
    operation: str,
    *,
    log_args: bool = False,
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Args:
        operation: Description of the operation being performed
        log_args: Whether to log function arguments
        log_result: Whether to log function result
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **(context or {}),
            )

            log_data = {}
            if log_args:
                log_data.update({
                    "args": args[1:] if args else [],  # Skip 'self' if present
                    "kwargs": kwargs,
                })

            operation_logger.debug("Operation started", **log_data)
            start_time = time.perf_counter() if log_timing else None

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                error_log_data: dict[str, Any] = {
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
                if start_time is not None:
                    error_log_data["duration_ms"] = _elapsed_ms(start_time)

                operation_logger.error("Operation failed", **error_log_data)
                raise

            end_log_data: dict[str, Any] = {}
            if start_time is not None:
                end_log_data["duration_ms"] = _elapsed_ms(start_time)
            if log_result:
                end_log_data["result"] = result

            operation_logger.info("Operation completed", **end_log_data)
            return result

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """
    Async context manager for operation logging.

    Args:
        operation: Description of the operation
        context: Additional context for logging
        log_timing: Whether to log operation timing

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(
        operation=operation,
        **(context or {}),
    )

    operation_logger.debug("Operation started")
    start_time = time.perf_counter() if log_timing else None

    try:
        yield operation_logger
    except Exception as e:
        error_log_data: dict[str, Any] = {
            "error_type": type(e).__name__,
            "error_message": str(e),
        }
        if start_time is not None:
            error_log_data["duration_ms"] = _elapsed_ms(start_time)

        operation_logger.error("Operation failed", **error_log_data)
        raise

    log_data: dict[str, Any] = {}
    if start_time is not None:
        log_data["duration_ms"] = _elapsed_ms(start_time)
    operation_logger.info("Operation completed", **log_data)


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)


class ContextualLogger:
    """Logger that maintains context across related operations."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        """Create a new logger with additional context."""
        merged_context = {**self.base_context, **context}
        return ContextualLogger(merged_context)

    def info(self, message: str, **context: Any) -> None:
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)
