"""Handler Registry — injectable job type → handler lookup.

The worker manager needs to resolve a job's ``type`` (``"send_email"``) to a
callable. The registry decouples registration (host startup) from
resolution (dispatch time).

ARCHITECTURE
────────────
::

    HandlerRegistry
      ├── .register(job_type, handler)  ─ store handler (before start only)
      ├── .get(job_type)                ─ lookup, raises HandlerNotFoundError
      ├── .has(job_type)                ─ existence check
      ├── .list_types()                 ─ all registered types
      └── .freeze()                     ─ read-only from here on

    handler(job_type, registry)          ─ decorator registering into a registry

There is deliberately no module-level default registry: the host builds one
registry, fills it, and hands it to ``WorkerManager``. The manager freezes it
on ``start()`` so a running pool never sees its handler set change.

Handlers take the job payload and signal failure by raising::

    registry = HandlerRegistry()

    @handler("send_email", registry)
    def send_email(payload):
        mailer.send(payload["to"])
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from jobspine.core.errors import HandlerNotFoundError, RegistryFrozenError

JobHandler = Callable[[dict[str, Any]], Any]


class HandlerRegistry:
    """Mapping of job type to handler function."""

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}
        self._metadata: dict[str, dict[str, Any]] = {}
        self._frozen = False
        self._lock = threading.Lock()

    def register(
        self,
        job_type: str,
        handler: JobHandler,
        description: str | None = None,
    ) -> None:
        """Register a handler.

        Args:
            job_type: Job type discriminator
            handler: Callable receiving the job payload
            description: Optional description for admin listings

        Raises:
            RegistryFrozenError: If the registry has been frozen
            ValueError: If *job_type* is empty or *handler* is not callable
        """
        if not job_type:
            raise ValueError("job_type must be a non-empty string")
        if not callable(handler):
            raise ValueError(f"Handler for {job_type!r} is not callable")
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register {job_type!r}: registry is frozen once the worker pool starts"
                )
            self._handlers[job_type] = handler
            self._metadata[job_type] = {
                "type": job_type,
                "description": description,
            }

    def get(self, job_type: str) -> JobHandler:
        """Get a handler.

        Raises:
            HandlerNotFoundError: If no handler is registered for *job_type*
        """
        handler = self._handlers.get(job_type)
        if handler is None:
            raise HandlerNotFoundError(job_type, available=self.list_types())
        return handler

    def has(self, job_type: str) -> bool:
        """Check if handler exists."""
        return job_type in self._handlers

    def list_types(self) -> list[str]:
        return sorted(self._handlers)

    def list_with_metadata(self) -> list[dict[str, Any]]:
        """List handlers with their metadata, sorted by type."""
        return [self._metadata[t].copy() for t in self.list_types()]

    def freeze(self) -> None:
        """Make the registry read-only."""
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, job_type: object) -> bool:
        return job_type in self._handlers


def handler(
    job_type: str,
    registry: HandlerRegistry,
    description: str | None = None,
) -> Callable[[JobHandler], JobHandler]:
    """Decorator to register a handler into *registry*.

    Example:
        >>> registry = HandlerRegistry()
        >>> @handler("send_email", registry)
        ... def send_email(payload):
        ...     return {"sent": True}
        >>> registry.has("send_email")
        True
    """

    def decorator(func: JobHandler) -> JobHandler:
        registry.register(job_type, func, description=description or func.__doc__)
        return func

    return decorator
