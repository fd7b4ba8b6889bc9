"""Stats aggregator — on-demand snapshot of queue, fleet and job counts.

Three independent reads, each best-effort:

    1. queue length             broker.length(queue)       failure → 0
    2. worker liveness records  liveness.read_all()        failure → no workers
    3. job status counts        store.count_by_status()    failure → zeros

A failed read is logged and replaced by its neutral value; the snapshot is
always returned. Corrupt liveness records are skipped individually.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from jobspine.core.errors import JobSpineError
from jobspine.core.logging import get_logger
from jobspine.jobs.broker import QueueBroker
from jobspine.jobs.heartbeat import STATUS_RUNNING, LivenessStore, WorkerInfo
from jobspine.jobs.models import JobStatus, utcnow
from jobspine.jobs.store import JobStore

logger = get_logger(__name__)


@dataclass
class WorkerStats:
    """Point-in-time view of the worker fleet."""

    active_workers: int = 0
    total_workers: int = 0
    queue_length: int = 0
    jobs_pending: int = 0
    jobs_running: int = 0
    jobs_completed: int = 0
    jobs_failed: int = 0
    workers: list[WorkerInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "active_workers": self.active_workers,
            "total_workers": self.total_workers,
            "queue_length": self.queue_length,
            "jobs_pending": self.jobs_pending,
            "jobs_running": self.jobs_running,
            "jobs_completed": self.jobs_completed,
            "jobs_failed": self.jobs_failed,
            "workers": [w.to_dict() for w in self.workers],
        }


def get_worker_stats(
    broker: QueueBroker,
    liveness: LivenessStore,
    store: JobStore,
    queue_name: str,
    *,
    threshold_seconds: float,
    now: datetime | None = None,
) -> WorkerStats:
    """Build a :class:`WorkerStats` snapshot. Never raises on a failed read."""
    now = now or utcnow()
    stats = WorkerStats()

    try:
        stats.queue_length = broker.length(queue_name)
    except JobSpineError as e:
        logger.warning("stats_queue_length_failed", queue=queue_name, error=str(e))

    try:
        raw_entries = liveness.read_all()
    except JobSpineError as e:
        logger.warning("stats_liveness_read_failed", error=str(e))
        raw_entries = {}

    for worker_id, raw in sorted(raw_entries.items()):
        try:
            info = WorkerInfo.from_json(raw)
        except ValueError as e:
            logger.warning("stats_worker_info_corrupt", worker_id=worker_id, error=str(e))
            continue
        info = info.classified(now, threshold_seconds)
        stats.workers.append(info)
        if info.status == STATUS_RUNNING:
            stats.active_workers += 1
    stats.total_workers = len(stats.workers)

    try:
        counts = store.count_by_status()
    except JobSpineError as e:
        logger.warning("stats_job_counts_failed", error=str(e))
        counts = {}

    stats.jobs_pending = counts.get(JobStatus.PENDING.value, 0)
    stats.jobs_running = counts.get(JobStatus.RUNNING.value, 0)
    stats.jobs_completed = counts.get(JobStatus.COMPLETED.value, 0)
    stats.jobs_failed = counts.get(JobStatus.FAILED.value, 0)
    return stats
