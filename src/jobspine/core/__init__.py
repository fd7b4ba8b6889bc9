"""jobspine.core — logging, errors, settings and ORM primitives shared by the engine."""

from jobspine.core.errors import (
    BrokerError,
    ConfigError,
    ErrorCategory,
    ErrorContext,
    HandlerNotFoundError,
    JobDeserializationError,
    JobNotFoundError,
    JobSpineError,
    PersistenceError,
    RegistryFrozenError,
)
from jobspine.core.logging import bind_context, configure_logging, get_logger, unbind_context
from jobspine.core.settings import WorkerSettings, clear_settings_cache, get_settings

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
    "WorkerSettings",
    "bind_context",
    "clear_settings_cache",
    "configure_logging",
    "get_logger",
    "get_settings",
    "unbind_context",
]
