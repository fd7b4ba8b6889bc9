"""
Queue broker abstraction with in-memory and Redis implementations.

The broker is a named list shared by every worker loop of every manager
process. Producers append the full serialized job record to the tail;
worker loops block-pop from the head with a bounded timeout.

Architecture:
    ::

        QueueBroker (Protocol)
        ├── InMemoryBroker  — single process, Condition-based blocking pop
        └── RedisBroker     — RPUSH / BLPOP / LLEN on a shared Redis

        API: enqueue(queue_name, job)
             dequeue(queue_name, timeout) → raw item | None
             length(queue_name) → int
             close()

Guarantees:
    - Each item is handed to exactly one caller of ``dequeue``.
    - ``dequeue`` returns ``None`` when the timeout elapses; that is the
      normal "no work" outcome, not an error.
    - No acknowledgement or visibility timeout: a popped item is gone from
      the broker whatever the consumer does afterwards.

Guardrails:
    ❌ DON'T: Use InMemoryBroker across processes (nothing is shared)
    ✅ DO: Use RedisBroker whenever more than one manager process runs

Tags:
    broker, queue, redis, blpop, jobspine
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Protocol

import redis

from jobspine.core.errors import BrokerError
from jobspine.jobs.models import Job


class QueueBroker(Protocol):
    """Protocol for queue broker implementations."""

    def enqueue(self, queue_name: str, job: Job) -> None:
        """Append the serialized *job* to the tail of *queue_name*.

        Raises:
            BrokerError: If the broker is unreachable.
        """
        ...

    def dequeue(self, queue_name: str, timeout: float) -> str | None:
        """Remove and return the head item, blocking up to *timeout* seconds.

        Returns:
            The serialized job, or ``None`` if nothing arrived in time.

        Raises:
            BrokerError: On non-timeout broker failures.
        """
        ...

    def length(self, queue_name: str) -> int:
        """Number of items currently waiting in *queue_name*."""
        ...

    def close(self) -> None:
        """Release broker resources."""
        ...


# ------------------------------------------------------------------ #
# In-Memory Broker
# ------------------------------------------------------------------ #


class InMemoryBroker:
    """Thread-safe in-process broker.

    A ``threading.Condition`` stands in for BLPOP: consumers wait on it until
    an item is pushed or their timeout elapses.

    Example:
        broker = InMemoryBroker()
        broker.enqueue("engine_jobs", job)
        raw = broker.dequeue("engine_jobs", timeout=1.0)
    """

    def __init__(self) -> None:
        self._queues: dict[str, deque[str]] = {}
        self._cond = threading.Condition()
        self._closed = False

    def enqueue(self, queue_name: str, job: Job) -> None:
        self.push_raw(queue_name, job.to_json())

    def push_raw(self, queue_name: str, item: str) -> None:
        """Append an already-serialized item (e.g. for corrupt-item tests)."""
        with self._cond:
            if self._closed:
                raise BrokerError("broker is closed").with_context(queue=queue_name)
            self._queues.setdefault(queue_name, deque()).append(item)
            self._cond.notify()

    def dequeue(self, queue_name: str, timeout: float) -> str | None:
        deadline = time.monotonic() + timeout
        with self._cond:
            while True:
                if self._closed:
                    raise BrokerError("broker is closed").with_context(queue=queue_name)
                items = self._queues.get(queue_name)
                if items:
                    return items.popleft()
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)

    def length(self, queue_name: str) -> int:
        with self._cond:
            return len(self._queues.get(queue_name, ()))

    def items(self, queue_name: str) -> list[str]:
        """Snapshot of the raw items waiting in *queue_name*."""
        with self._cond:
            return list(self._queues.get(queue_name, ()))

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()


# ------------------------------------------------------------------ #
# Redis Broker
# ------------------------------------------------------------------ #


def create_redis_client(url: str = "redis://localhost:6379/0", **kwargs: Any) -> redis.Redis:
    """Create a Redis client returning ``str`` values.

    One client (and its connection pool) is shared by the broker and the
    liveness store of a manager process.
    """
    kwargs.setdefault("decode_responses", True)
    return redis.from_url(url, **kwargs)


class RedisBroker:
    """Redis list broker.

    Thread-safe and process-safe via Redis atomic list operations.

    Example:
        broker = RedisBroker(create_redis_client("redis://localhost:6379/0"))
        broker.enqueue("engine_jobs", job)
    """

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisBroker:
        return cls(create_redis_client(url))

    @property
    def client(self) -> redis.Redis:
        return self._client

    def enqueue(self, queue_name: str, job: Job) -> None:
        try:
            self._client.rpush(queue_name, job.to_json())
        except redis.exceptions.RedisError as e:
            raise BrokerError("enqueue failed", cause=e).with_context(
                queue=queue_name, job_id=job.id
            ) from e

    def dequeue(self, queue_name: str, timeout: float) -> str | None:
        try:
            result = self._client.blpop([queue_name], timeout=timeout)
        except redis.exceptions.TimeoutError:
            return None
        except redis.exceptions.RedisError as e:
            raise BrokerError("dequeue failed", cause=e).with_context(queue=queue_name) from e

        if not result or len(result) < 2:
            return None
        item = result[1]
        if isinstance(item, bytes):
            item = item.decode("utf-8")
        return item

    def length(self, queue_name: str) -> int:
        try:
            return int(self._client.llen(queue_name))
        except (redis.exceptions.RedisError, ValueError, TypeError) as e:
            # ValueError covers UnicodeDecodeError from decode_responses clients
            raise BrokerError("queue length read failed", cause=e).with_context(
                queue=queue_name
            ) from e

    def close(self) -> None:
        self._client.close()


__all__ = [
    "InMemoryBroker",
    "QueueBroker",
    "RedisBroker",
    "create_redis_client",
]
