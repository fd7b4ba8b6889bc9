"""
Job store — durable copy of every job record.

The broker holds the copy that travels; the store holds the copy that is
queried (admin listing, status counts, ``jobs show``). The worker loop
writes every transition to the store; those writes are best-effort during
dispatch, so callers of the store see :class:`PersistenceError` and decide.

Architecture:
    ::

        JobStore (Protocol)
        ├── InMemoryJobStore     — dict of copies, guarded by a lock
        └── SQLAlchemyJobStore   — ``jobs`` table via SQLAlchemy 2.0 sessions

        API: create(job) / save(job) / get(job_id)
             list_recent(limit, status) → newest first
             count_by_status() → {"pending": n, ...}
             create_schema() / close()

Tags:
    persistence, sqlalchemy, jobs, jobspine
"""

from __future__ import annotations

import copy
import threading
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from jobspine.core.errors import JobNotFoundError, PersistenceError
from jobspine.core.orm import (
    JobSpineBase,
    JobTable,
    create_jobspine_engine,
    jobspine_session_factory,
)
from jobspine.jobs.models import Job, JobStatus


class JobStore(Protocol):
    """Protocol for job persistence."""

    def create(self, job: Job) -> None:
        """Insert a new record.

        Raises:
            PersistenceError: On write failure or duplicate id.
        """
        ...

    def save(self, job: Job) -> None:
        """Persist the current state of an existing record (upsert)."""
        ...

    def get(self, job_id: str) -> Job:
        """Fetch one record.

        Raises:
            JobNotFoundError: If no record has *job_id*.
        """
        ...

    def list_recent(self, limit: int = 50, status: JobStatus | None = None) -> list[Job]:
        """Most recently created records first."""
        ...

    def count_by_status(self) -> dict[str, int]:
        """Counts keyed by every status value (zero-filled)."""
        ...

    def create_schema(self) -> None:
        ...

    def close(self) -> None:
        ...


def _empty_counts() -> dict[str, int]:
    return {s.value: 0 for s in JobStatus}


# ------------------------------------------------------------------ #
# In-Memory Store
# ------------------------------------------------------------------ #


class InMemoryJobStore:
    """Thread-safe in-process store holding deep copies of records."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise PersistenceError(f"Job {job.id} already exists").with_context(job_id=job.id)
            self._jobs[job.id] = copy.deepcopy(job)

    def save(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = copy.deepcopy(job)

    def get(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return copy.deepcopy(job)

    def list_recent(self, limit: int = 50, status: JobStatus | None = None) -> list[Job]:
        with self._lock:
            jobs = [j for j in self._jobs.values() if status is None or j.status == status]
            jobs.sort(key=lambda j: j.created_at, reverse=True)
            return [copy.deepcopy(j) for j in jobs[:limit]]

    def count_by_status(self) -> dict[str, int]:
        counts = _empty_counts()
        with self._lock:
            for job in self._jobs.values():
                counts[job.status.value] += 1
        return counts

    def create_schema(self) -> None:
        pass

    def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._jobs)


# ------------------------------------------------------------------ #
# SQLAlchemy Store
# ------------------------------------------------------------------ #


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _row_to_job(row: JobTable) -> Job:
    return Job(
        id=row.id,
        queue=row.queue,
        type=row.type,
        payload=dict(row.payload or {}),
        status=JobStatus(row.status),
        attempts=row.attempts,
        max_retries=row.max_retries,
        error=row.error,
        run_at=_aware(row.run_at),
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _apply(row: JobTable, job: Job) -> None:
    row.queue = job.queue
    row.type = job.type
    row.payload = dict(job.payload)
    row.status = job.status.value
    row.attempts = job.attempts
    row.max_retries = job.max_retries
    row.error = job.error
    row.run_at = job.run_at
    row.started_at = job.started_at
    row.completed_at = job.completed_at
    row.created_at = job.created_at
    row.updated_at = job.updated_at


class SQLAlchemyJobStore:
    """Job store backed by the ``jobs`` table.

    Example:
        store = SQLAlchemyJobStore.from_url("sqlite:///jobspine.db")
        store.create_schema()
        store.create(job)
    """

    def __init__(self, engine: Engine, *, owns_engine: bool = False) -> None:
        self._engine = engine
        self._owns_engine = owns_engine
        self._session_factory = jobspine_session_factory(engine)

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> SQLAlchemyJobStore:
        return cls(create_jobspine_engine(url, echo=echo), owns_engine=True)

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_schema(self) -> None:
        try:
            JobSpineBase.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise PersistenceError("schema creation failed", cause=e) from e

    def create(self, job: Job) -> None:
        try:
            with self._session_factory() as session, session.begin():
                row = JobTable(id=job.id)
                _apply(row, job)
                session.add(row)
        except SQLAlchemyError as e:
            raise PersistenceError("job insert failed", cause=e).with_context(
                job_id=job.id, job_type=job.type
            ) from e

    def save(self, job: Job) -> None:
        try:
            with self._session_factory() as session, session.begin():
                row = session.get(JobTable, job.id)
                if row is None:
                    row = JobTable(id=job.id)
                    session.add(row)
                _apply(row, job)
        except SQLAlchemyError as e:
            raise PersistenceError("job update failed", cause=e).with_context(
                job_id=job.id, job_type=job.type
            ) from e

    def get(self, job_id: str) -> Job:
        try:
            with self._session_factory() as session:
                row = session.get(JobTable, job_id)
                if row is None:
                    raise JobNotFoundError(job_id)
                return _row_to_job(row)
        except SQLAlchemyError as e:
            raise PersistenceError("job read failed", cause=e).with_context(job_id=job_id) from e

    def list_recent(self, limit: int = 50, status: JobStatus | None = None) -> list[Job]:
        stmt = select(JobTable).order_by(JobTable.created_at.desc()).limit(limit)
        if status is not None:
            stmt = stmt.where(JobTable.status == status.value)
        try:
            with self._session_factory() as session:
                return [_row_to_job(row) for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            raise PersistenceError("job listing failed", cause=e) from e

    def count_by_status(self) -> dict[str, int]:
        stmt = select(JobTable.status, func.count()).group_by(JobTable.status)
        counts = _empty_counts()
        try:
            with self._session_factory() as session:
                for status, count in session.execute(stmt):
                    counts[status] = int(count)
        except SQLAlchemyError as e:
            raise PersistenceError("job status count failed", cause=e) from e
        return counts

    def close(self) -> None:
        if self._owns_engine:
            self._engine.dispose()


__all__ = [
    "InMemoryJobStore",
    "JobStore",
    "SQLAlchemyJobStore",
]
