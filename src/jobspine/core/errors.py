"""
Structured error types for the job engine.

Every failure the engine can observe is expressed as a :class:`JobSpineError`
subclass carrying a category, a retryable flag, structured context and an
optional chained cause. The worker loop uses the type to decide what to do:

    ┌──────────────────────────────────────────────────────────────────┐
    │                         JobSpineError                            │
    │           (category, retryable, context, cause)                  │
    ├──────────────────────────────────────────────────────────────────┤
    │  BrokerError            NETWORK    log, keep polling             │
    │  PersistenceError       DATABASE   best-effort during dispatch   │
    │    JobNotFoundError     DATABASE   store.get miss                │
    │  JobDeserializationError PARSE     log, discard broker item      │
    │  HandlerNotFoundError   PIPELINE   routed to the retry path      │
    │  ConfigError            CONFIG     invalid settings              │
    │    RegistryFrozenError  CONFIG     register after start()        │
    └──────────────────────────────────────────────────────────────────┘

Handler exceptions are not wrapped: any exception raised by a registered
handler is a transient failure and goes through the retry policy with
``str(exc)`` as the recorded message.

Usage:
    from jobspine.core.errors import BrokerError

    try:
        client.rpush(queue, data)
    except redis.exceptions.RedisError as e:
        raise BrokerError("enqueue failed", cause=e).with_context(queue=queue)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"
    DATABASE = "DATABASE"

    # Data errors
    PARSE = "PARSE"
    VALIDATION = "VALIDATION"

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"

    # Application errors
    PIPELINE = "PIPELINE"

    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        job_id: Job record identifier
        job_type: Handler discriminator of the job
        queue: Broker queue name
        worker_id: Manager process identifier
        metadata: Additional key-value pairs
    """

    job_id: str | None = None
    job_type: str | None = None
    queue: str | None = None
    worker_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["job_id", "job_type", "queue", "worker_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class JobSpineError(Exception):
    """Base exception for all jobspine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so call
    sites only pass a message (and a cause when wrapping a library error).

    Example:
        >>> error = JobSpineError("unexpected state")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(job_id="abc").context.job_id
        'abc'
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
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> JobSpineError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
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


class BrokerError(JobSpineError):
    """Queue broker or liveness store unreachable (non-timeout)."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class PersistenceError(JobSpineError):
    """Job store read or write failed."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class JobNotFoundError(PersistenceError):
    """No job record with the requested id."""

    default_retryable = False

    def __init__(self, job_id: str, **kwargs: Any):
        super().__init__(f"Job {job_id} not found", **kwargs)
        self.context.job_id = job_id


class JobDeserializationError(JobSpineError):
    """A broker item could not be parsed back into a job record."""

    default_category = ErrorCategory.PARSE


class HandlerNotFoundError(JobSpineError):
    """No handler registered for a job type."""

    default_category = ErrorCategory.PIPELINE

    def __init__(self, job_type: str, available: list[str] | None = None, **kwargs: Any):
        super().__init__(
            f"No handler registered for job type {job_type!r}. "
            f"Available: {available or 'none'}",
            **kwargs,
        )
        self.context.job_type = job_type


class ConfigError(JobSpineError):
    """Invalid engine configuration."""

    default_category = ErrorCategory.CONFIG


class RegistryFrozenError(ConfigError):
    """Handler registration attempted after the manager started."""


__all__ = [
    "BrokerError",
    "ConfigError",
    "ErrorCategory",
    "ErrorContext",
    "HandlerNotFoundError",
    "JobDeserializationError",
    "JobNotFoundError",
    "JobSpineError",
    "PersistenceError",
    "RegistryFrozenError",
]
