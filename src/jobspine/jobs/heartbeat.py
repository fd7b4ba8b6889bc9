"""
Heartbeat reporter — periodic liveness for a worker manager process.

Manifesto:
    Readers must be able to tell a live manager from a crashed one without
    any cooperation from the crashed process. Every manager therefore writes
    a small status record into a shared container on a fixed interval; a
    reader compares the record's ``last_seen`` against a threshold.

    One record per manager process, not per worker loop: a manager with
    N loops occupies exactly one field of the container.

Architecture:
    ::

        HeartbeatReporter (daemon thread)
          │  beat() immediately, then every `interval`
          ▼
        LivenessStore (Protocol)
          ├── InMemoryLivenessStore   — dict + container expiry
          └── RedisLivenessStore      — HSET / PEXPIRE / HDEL / HGETALL
                                        on the hash ``workers:heartbeat``

        Container expiry is refreshed to 2 × threshold on every beat, so a
        fleet that stops beating disappears entirely.

Staleness:
    ``status`` is always written as ``"running"``; readers reclassify an
    entry as ``"stale"`` when ``now - last_seen >= threshold``. With the
    default 10 s interval and 30 s threshold, two missed beats are tolerated.

Tags:
    heartbeat, liveness, redis, worker, jobspine
"""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import redis

from jobspine.core.errors import BrokerError
from jobspine.core.logging import get_logger
from jobspine.jobs.models import utcnow

logger = get_logger(__name__)

HEARTBEAT_KEY = "workers:heartbeat"

STATUS_RUNNING = "running"
STATUS_STALE = "stale"


def _parse_aware(raw: str) -> datetime:
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class WorkerInfo:
    """Liveness record of one manager process."""

    id: str
    started_at: datetime
    last_seen: datetime
    jobs_handled: int = 0
    status: str = STATUS_RUNNING

    def is_stale(self, now: datetime, threshold_seconds: float) -> bool:
        return (now - self.last_seen).total_seconds() >= threshold_seconds

    def classified(self, now: datetime, threshold_seconds: float) -> WorkerInfo:
        """Copy with ``status`` set from the age of ``last_seen``."""
        status = STATUS_STALE if self.is_stale(now, threshold_seconds) else STATUS_RUNNING
        return WorkerInfo(
            id=self.id,
            started_at=self.started_at,
            last_seen=self.last_seen,
            jobs_handled=self.jobs_handled,
            status=status,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "started_at": self.started_at.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "jobs_handled": self.jobs_handled,
            "status": self.status,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str | bytes) -> WorkerInfo:
        """Parse a stored record.

        Raises:
            ValueError: If *raw* is not a well-formed record.
        """
        try:
            data = json.loads(raw)
            return cls(
                id=str(data["id"]),
                started_at=_parse_aware(data["started_at"]),
                last_seen=_parse_aware(data["last_seen"]),
                jobs_handled=int(data.get("jobs_handled", 0)),
                status=str(data.get("status", STATUS_RUNNING)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed worker info: {e}") from e


# ------------------------------------------------------------------ #
# Liveness stores
# ------------------------------------------------------------------ #


class LivenessStore(Protocol):
    """Shared container of worker liveness records keyed by worker id."""

    def write(self, worker_id: str, info: WorkerInfo, ttl_seconds: float) -> None:
        """Upsert the record and refresh the container expiry."""
        ...

    def remove(self, worker_id: str) -> None:
        ...

    def read_all(self) -> dict[str, str]:
        """All raw records, keyed by worker id."""
        ...

    def close(self) -> None:
        ...


class InMemoryLivenessStore:
    """Single-process liveness store.

    The whole container expires ``ttl_seconds`` after the last write, like the
    Redis hash it stands in for.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, str] = {}
        self._expires_at: float | None = None
        self._clock = clock
        self._lock = threading.Lock()

    def _expire_locked(self) -> None:
        if self._expires_at is not None and self._clock() >= self._expires_at:
            self._entries.clear()
            self._expires_at = None

    def write(self, worker_id: str, info: WorkerInfo, ttl_seconds: float) -> None:
        with self._lock:
            self._expire_locked()
            self._entries[worker_id] = info.to_json()
            self._expires_at = self._clock() + ttl_seconds

    def write_raw(self, worker_id: str, raw: str) -> None:
        """Store an arbitrary value (used to simulate corrupt records)."""
        with self._lock:
            self._entries[worker_id] = raw

    def remove(self, worker_id: str) -> None:
        with self._lock:
            self._entries.pop(worker_id, None)

    def read_all(self) -> dict[str, str]:
        with self._lock:
            self._expire_locked()
            return dict(self._entries)

    def close(self) -> None:
        pass


class RedisLivenessStore:
    """Liveness records as fields of one Redis hash."""

    def __init__(self, client: redis.Redis, key: str = HEARTBEAT_KEY) -> None:
        self._client = client
        self._key = key

    @property
    def key(self) -> str:
        return self._key

    def write(self, worker_id: str, info: WorkerInfo, ttl_seconds: float) -> None:
        try:
            self._client.hset(self._key, worker_id, info.to_json())
            self._client.pexpire(self._key, max(1, int(ttl_seconds * 1000)))
        except redis.exceptions.RedisError as e:
            raise BrokerError("heartbeat write failed", cause=e).with_context(
                worker_id=worker_id
            ) from e

    def remove(self, worker_id: str) -> None:
        try:
            self._client.hdel(self._key, worker_id)
        except redis.exceptions.RedisError as e:
            raise BrokerError("heartbeat removal failed", cause=e).with_context(
                worker_id=worker_id
            ) from e

    def read_all(self) -> dict[str, str]:
        try:
            raw = self._client.hgetall(self._key) or {}
            return {
                (k.decode("utf-8") if isinstance(k, bytes) else k): (
                    v.decode("utf-8") if isinstance(v, bytes) else v
                )
                for k, v in raw.items()
            }
        except (redis.exceptions.RedisError, UnicodeDecodeError) as e:
            raise BrokerError("heartbeat read failed", cause=e) from e

    def close(self) -> None:
        self._client.close()


# ------------------------------------------------------------------ #
# Reporter
# ------------------------------------------------------------------ #


class HeartbeatReporter:
    """Writes this process's :class:`WorkerInfo` on a fixed interval.

    Args:
        worker_id: Manager process identifier (field name in the container)
        liveness: Store receiving the records
        interval_seconds: Seconds between beats
        threshold_seconds: Staleness threshold; container expiry is twice this
        jobs_handled_fn: Returns the manager's current completed-job count
        clock: Returns the current UTC datetime
    """

    def __init__(
        self,
        worker_id: str,
        liveness: LivenessStore,
        interval_seconds: float,
        threshold_seconds: float,
        jobs_handled_fn: Callable[[], int],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._worker_id = worker_id
        self._liveness = liveness
        self._interval = interval_seconds
        self._ttl = threshold_seconds * 2
        self._jobs_handled_fn = jobs_handled_fn
        self._clock = clock
        self._started_at = clock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._beats = 0

    @property
    def beats(self) -> int:
        """Number of successful beats so far."""
        return self._beats

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def snapshot(self, status: str = STATUS_RUNNING) -> WorkerInfo:
        return WorkerInfo(
            id=self._worker_id,
            started_at=self._started_at,
            last_seen=self._clock(),
            jobs_handled=self._jobs_handled_fn(),
            status=status,
        )

    def beat(self) -> bool:
        """Write one record. Returns ``False`` (and logs) on failure."""
        info = self.snapshot()
        try:
            self._liveness.write(self._worker_id, info, self._ttl)
        except BrokerError as e:
            logger.warning("heartbeat_failed", worker_id=self._worker_id, error=str(e))
            return False
        with self._lock:
            self._beats += 1
        return True

    def start(self) -> None:
        """Beat now, then keep beating on a daemon thread until :meth:`stop`.

        A no-op once :meth:`stop` has run. The record's ``started_at`` is
        taken here.
        """
        with self._lock:
            if self._thread is not None or self._stop.is_set():
                return
            self._started_at = self._clock()
            self._thread = threading.Thread(
                target=self._run,
                name=f"{self._worker_id}-heartbeat",
                daemon=True,
            )
            self._thread.start()

    def _run(self) -> None:
        while True:
            try:
                self.beat()
            except Exception:
                logger.exception("heartbeat_error", worker_id=self._worker_id)
            if self._stop.wait(self._interval):
                return

    def stop(self) -> None:
        """Stop beating and remove this process's record (best-effort)."""
        with self._lock:
            if self._stop.is_set():
                return
            self._stop.set()
        if self._thread is not None:
            self._thread.join()
        try:
            self._liveness.remove(self._worker_id)
        except Exception as e:
            logger.warning("heartbeat_remove_failed", worker_id=self._worker_id, error=str(e))
        else:
            logger.info("heartbeat_removed", worker_id=self._worker_id)


__all__ = [
    "HEARTBEAT_KEY",
    "HeartbeatReporter",
    "InMemoryLivenessStore",
    "LivenessStore",
    "RedisLivenessStore",
    "WorkerInfo",
]
