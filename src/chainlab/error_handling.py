"""Standardized Error Handling Utilities

Provides the ChainLab exception hierarchy and the helpers that translate
lower-level failures into it with consistent logging.

Failure classes and how the analysis reacts to them:

* ``ValidationError``     - an input path is rejected; the input is skipped.
* ``EngineError``         - an external binary failed; a worker step records
  ``success=False`` and the chain carries on with the unchanged image.
* ``ComparisonError``     - the distortion computation failed; fatal.
* ``ConfigurationError``  - bad option-variant configuration; fatal at startup.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum


class ErrorLevel(Enum):
    """Error severity levels for consistent logging."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ChainLabError(Exception):
    """Base exception class for all ChainLab errors."""

    def __init__(
        self, message: str, cause: Exception | None = None, context: dict | None = None
    ):
        super().__init__(message)
        self.cause = cause
        self.context = context or {}

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.cause:
            return f"{base_msg} (caused by: {self.cause})"
        return base_msg


class ValidationError(ChainLabError):
    """Raised when an input image is rejected."""

    pass


class EngineError(ChainLabError):
    """Raised when an external binary exits non-zero or times out."""

    pass


class ComparisonError(EngineError):
    """Raised when the distortion between two images cannot be computed."""

    def __init__(
        self,
        image_a: object,
        image_b: object,
        cause: Exception | None = None,
    ):
        super().__init__(
            f"Failed comparison of {image_a} with {image_b}",
            cause=cause,
            context={"image_a": str(image_a), "image_b": str(image_b)},
        )
        self.image_a = image_a
        self.image_b = image_b

    def __reduce__(self):
        # Raised inside analysis processes and re-raised in the parent
        return (type(self), (self.image_a, self.image_b, self.cause))


class ConfigurationError(ChainLabError):
    """Raised when configuration is invalid or missing."""

    pass


def handle_error(
    error: Exception,
    operation: str,
    error_type: type[ChainLabError] = EngineError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
) -> None:
    """Log *error* and re-raise it as *error_type*.

    Args:
        error: Original exception that occurred
        operation: Description of operation that failed
        error_type: Type of ChainLabError to raise
        level: Logging level for the error
        context: Additional context information
        logger: Logger to use (defaults to module logger)

    Raises:
        ChainLabError: Transformed error
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    error_context = dict(context or {})
    error_context.update(
        {
            "operation": operation,
            "original_error_type": type(error).__name__,
        }
    )

    transformed_error = error_type(
        f"Failed to {operation}: {error}", cause=error, context=error_context
    )

    log_message = f"🚨 {operation.capitalize()} failed: {error}"
    context_str = ", ".join(f"{k}={v}" for k, v in error_context.items())
    if context_str:
        log_message += f" (context: {context_str})"

    getattr(logger, level.value)(log_message)

    if level in [ErrorLevel.ERROR, ErrorLevel.CRITICAL]:
        logger.debug(f"Traceback for {operation}: {traceback.format_exc()}")

    raise transformed_error from error


@contextmanager
def error_context(
    operation: str,
    error_type: type[ChainLabError] = EngineError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
) -> Iterator[None]:
    """Context manager for standardized error handling.

    Usage:
        with error_context("read option variants", ConfigurationError, context={"file": path}):
            risky_operation()

    ChainLab errors raised inside the block pass through unchanged.
    """
    try:
        yield
    except ChainLabError:
        raise
    except Exception as e:
        handle_error(e, operation, error_type, level, context, logger)


def log_warning_with_context(
    message: str, context: dict | None = None, logger: logging.Logger | None = None
) -> None:
    """Log a warning with standardized context formatting.

    Args:
        message: Warning message
        context: Additional context information
        logger: Logger to use
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    warning_msg = f"⚠️  {message}"
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        warning_msg += f" (context: {context_str})"

    logger.warning(warning_msg)
