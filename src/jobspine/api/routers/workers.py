"""
Workers router — fleet statistics and job inspection.

Endpoints:
    GET /workers/stats    Queue length, live/stale workers, job counts
    GET /jobs             Most recent jobs (newest first)
    GET /jobs/{job_id}    One job record

Tags:
    jobspine, api, workers, jobs, stats
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from jobspine.api.deps import Broker, Liveness, Settings, Store
from jobspine.core.errors import JobNotFoundError, PersistenceError
from jobspine.jobs.models import JobStatus
from jobspine.jobs.stats import get_worker_stats

router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────


class WorkerInfoSchema(BaseModel):
    id: str
    started_at: str
    last_seen: str
    jobs_handled: int = 0
    status: str = Field(description="'running' or 'stale'")


class WorkerStatsSchema(BaseModel):
    """Point-in-time fleet snapshot. Reads are independent and best-effort."""

    active_workers: int = 0
    total_workers: int = 0
    queue_length: int = 0
    jobs_pending: int = 0
    jobs_running: int = 0
    jobs_completed: int = 0
    jobs_failed: int = 0
    workers: list[WorkerInfoSchema] = Field(default_factory=list)


class JobSchema(BaseModel):
    id: str
    queue: str
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    status: str
    attempts: int = 0
    max_retries: int = 3
    error: str | None = None
    run_at: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class JobListSchema(BaseModel):
    jobs: list[JobSchema]
    count: int


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/workers/stats", response_model=WorkerStatsSchema)
def worker_stats(
    broker: Broker,
    liveness: Liveness,
    store: Store,
    settings: Settings,
    queue: str | None = Query(None, description="Queue to measure (default: configured queue)"),
) -> dict[str, Any]:
    """Aggregate worker statistics."""
    stats = get_worker_stats(
        broker,
        liveness,
        store,
        queue or settings.worker_queue_name,
        threshold_seconds=settings.liveness_threshold_seconds,
    )
    return stats.to_dict()


@router.get("/jobs", response_model=JobListSchema)
def list_jobs(
    store: Store,
    limit: int = Query(50, ge=1, le=1000),
    status: JobStatus | None = Query(None),
) -> dict[str, Any]:
    """Most recently created jobs."""
    try:
        jobs = store.list_recent(limit=limit, status=status)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"jobs": [j.to_dict() for j in jobs], "count": len(jobs)}


@router.get("/jobs/{job_id}", response_model=JobSchema)
def get_job(job_id: str, store: Store) -> dict[str, Any]:
    """One job record."""
    try:
        job = store.get(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail="job not found") from e
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return job.to_dict()
