"""
Structured error types for tickgate.

Every error raised by tickgate extends :class:`TickgateError` and carries a
category, a retryable flag, structured context and the chained cause. Poll
hosts use these to decide whether to log and continue, back off, or abort.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                       TickgateError                           │
        │  (category, retryable, context, cause)                        │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  TransientError          ScheduleError        ConfigError     │
        │  (retryable=True)        (ORCHESTRATION)      (CONFIG)        │
        │       │                        │                              │
        │  BackendIOError          InvalidScheduleSyntax                │
        │  (STORAGE)                                                    │
        │                                                               │
        │  InternalInvariantViolation  (INTERNAL, fatal)                │
        └──────────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Catch InternalInvariantViolation in a poll loop
    ✅ DO: Let it crash the worker; it means a construction contract broke

    ❌ DON'T: Swallow the original backend exception
    ✅ DO: Pass it as ``cause=`` so ``__cause__`` is preserved

Usage:
    from tickgate.core.errors import BackendIOError

    try:
        await client.get(key)
    except RedisError as e:
        raise BackendIOError("last-run read failed", cause=e).with_context(key=key)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure
    NETWORK = "NETWORK"
    STORAGE = "STORAGE"

    # Configuration
    CONFIG = "CONFIG"

    # Application
    ORCHESTRATION = "ORCHESTRATION"  # Schedule definition or contract errors

    # Internal
    INTERNAL = "INTERNAL"  # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        task_key: Schedule key the error relates to
        key: Backend key being read or written
        operation: Backend operation name (``get``, ``set``, ``enqueue`` ...)
        backend: Backend name (``redis``, ``memory``, ``celery`` ...)
        metadata: Additional key-value pairs
    """

    task_key: str | None = None
    key: str | None = None
    operation: str | None = None
    backend: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["task_key", "key", "operation", "backend"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TickgateError(Exception):
    """
    Base exception for all tickgate errors.

    Subclasses set ``default_category`` and ``default_retryable`` to give
    sensible defaults for their domain.

    Examples:
        >>> error = TickgateError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False

        >>> error = TickgateError("lookup failed").with_context(task_key="nightly")
        >>> error.context.task_key
        'nightly'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TickgateError:
        """
        Add context to this error (fluent API).

        Usage:
            raise BackendIOError("Failed").with_context(key="TaskSchedule::a::LastRunValue")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Usually Retryable)
# =============================================================================


class TransientError(TickgateError):
    """Temporary failure that may succeed if the caller tries again later."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class BackendIOError(TransientError):
    """Failure reading or writing the last-run store, queue, or lock backend.

    The runner never catches or retries these; they reach the poll host
    unchanged, which decides whether to log, drop, or abort.
    """

    default_category = ErrorCategory.STORAGE


# =============================================================================
# SCHEDULE ERRORS
# =============================================================================


class ScheduleError(TickgateError):
    """Schedule configuration or calling-contract error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class InvalidScheduleSyntax(ScheduleError):
    """Crontab expression failed to parse or has no next occurrence.

    Raised at construction; the croniter error is available as ``cause``.
    Schedule registration should abort on this error.
    """

    def __init__(self, expression: str, cause: BaseException | None = None):
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Crontab is invalid: {expression!r}{detail}", cause=cause)
        self.expression = expression


# =============================================================================
# CONFIG ERRORS
# =============================================================================


class ConfigError(TickgateError):
    """Invalid or missing configuration."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# INTERNAL ERRORS
# =============================================================================


class InternalInvariantViolation(TickgateError):
    """A code path that construction contracts make unreachable was reached.

    Fatal: poll hosts must not treat this as a normal control-flow error.
    """

    default_category = ErrorCategory.INTERNAL
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, TickgateError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, TickgateError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.NETWORK
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "TickgateError",
    "TransientError",
    "BackendIOError",
    "ScheduleError",
    "InvalidScheduleSyntax",
    "ConfigError",
    "InternalInvariantViolation",
    "is_retryable",
    "categorize_error",
]
