"""Job record — the persisted unit of work and its lifecycle state.

A ``Job`` is created by a producer (``WorkerManager.create_and_enqueue``),
persisted, and pushed onto the broker as a full JSON copy. From then on it is
mutated only by the worker loop that popped it.

Valid transition graph::

    PENDING   → RUNNING                (dispatch, handler found)
    PENDING   → PENDING                (dispatch, handler NOT found — requeued)
    PENDING   → FAILED                 (dispatch miss with max_retries == 0)
    RUNNING   → COMPLETED              (handler returned)
    RUNNING   → PENDING                (handler raised, attempts < max_retries)
    RUNNING   → FAILED                 (handler raised, attempts >= max_retries)
    COMPLETED → (terminal)
    FAILED    → (terminal)

Wire format:
    ``to_dict()`` emits every field; datetimes become ISO-8601 strings and
    unset values ``None``. ``from_dict()`` is the inverse and raises
    :class:`~jobspine.core.errors.JobDeserializationError` on anything it
    cannot turn back into a record.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from jobspine.core.errors import JobDeserializationError

DEFAULT_MAX_RETRIES = 3


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


class InvalidTransitionError(ValueError):
    """Raised when an illegal job status transition is attempted."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid JobStatus transition: {current} → {target}")


class JobStatus(str, Enum):
    """Lifecycle status of a job record."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


JOB_VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({
        JobStatus.RUNNING,
        JobStatus.PENDING,  # dispatch miss requeue
        JobStatus.FAILED,
    }),
    JobStatus.RUNNING: frozenset({
        JobStatus.COMPLETED,
        JobStatus.PENDING,  # retry
        JobStatus.FAILED,
    }),
    JobStatus.COMPLETED: frozenset(),  # terminal
    JobStatus.FAILED: frozenset(),  # terminal
}


def validate_job_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal."""
    allowed = JOB_VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidTransitionError(current.value, target.value)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(data: dict[str, Any], key: str) -> datetime | None:
    raw = data.get(key)
    if raw is None or raw == "":
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except (TypeError, ValueError) as e:
        raise JobDeserializationError(f"Invalid timestamp for {key}: {raw!r}", cause=e) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class Job:
    """A background job.

    Example:
        >>> job = Job.create(queue="engine_jobs", type="send_email", payload={"to": "a@b.c"})
        >>> job.status
        <JobStatus.PENDING: 'pending'>
        >>> Job.from_json(job.to_json()) == job
        True
    """

    id: str
    queue: str
    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    max_retries: int = DEFAULT_MAX_RETRIES
    error: str | None = None
    run_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        queue: str,
        type: str,
        payload: dict[str, Any] | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> Job:
        """Create a new job in PENDING status with a fresh id."""
        now = utcnow()
        return cls(
            id=str(uuid.uuid4()),
            queue=queue,
            type=type,
            payload=payload or {},
            status=JobStatus.PENDING,
            max_retries=max_retries,
            created_at=now,
            updated_at=now,
        )

    def transition_to(self, target: JobStatus, *, now: datetime | None = None) -> None:
        """Move to *target*, enforcing the transition graph."""
        validate_job_transition(self.status, target)
        self.status = target
        self.updated_at = now or utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "queue": self.queue,
            "type": self.type,
            "payload": self.payload,
            "status": self.status.value,
            "attempts": self.attempts,
            "max_retries": self.max_retries,
            "error": self.error,
            "run_at": _iso(self.run_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Any) -> Job:
        """Rebuild a job from its wire dictionary."""
        if not isinstance(data, dict):
            raise JobDeserializationError(f"Job payload must be an object, got {type(data).__name__}")
        job_id = data.get("id")
        job_type = data.get("type")
        if not job_id or not job_type:
            raise JobDeserializationError("Job payload is missing 'id' or 'type'")

        try:
            status = JobStatus(data.get("status") or JobStatus.PENDING.value)
        except ValueError as e:
            raise JobDeserializationError(f"Unknown job status {data.get('status')!r}", cause=e) from e

        payload = data.get("payload")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise JobDeserializationError("Job 'payload' must be an object")

        try:
            attempts = int(data.get("attempts") or 0)
            max_retries = int(data.get("max_retries", DEFAULT_MAX_RETRIES))
        except (TypeError, ValueError) as e:
            raise JobDeserializationError("Job counters must be integers", cause=e) from e

        now = utcnow()
        return cls(
            id=str(job_id),
            queue=str(data.get("queue") or ""),
            type=str(job_type),
            payload=payload,
            status=status,
            attempts=attempts,
            max_retries=max_retries,
            error=data.get("error"),
            run_at=_parse_dt(data, "run_at"),
            started_at=_parse_dt(data, "started_at"),
            completed_at=_parse_dt(data, "completed_at"),
            created_at=_parse_dt(data, "created_at") or now,
            updated_at=_parse_dt(data, "updated_at") or now,
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> Job:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise JobDeserializationError("Broker item is not valid JSON", cause=e) from e
        return cls.from_dict(data)
