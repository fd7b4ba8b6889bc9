"""
jobspine.jobs — the job engine.

Public API:
    Job, JobStatus                 job record and lifecycle
    HandlerRegistry, handler       job type → handler lookup
    RetryPolicy, RetryDecision     failure policy
    QueueBroker + implementations  shared work queue
    JobStore + implementations     durable job records
    LivenessStore, HeartbeatReporter, WorkerInfo
    WorkerStats, get_worker_stats  on-demand fleet snapshot
    WorkerManager                  the worker pool
"""

from jobspine.jobs.broker import InMemoryBroker, QueueBroker, RedisBroker, create_redis_client
from jobspine.jobs.heartbeat import (
    HEARTBEAT_KEY,
    HeartbeatReporter,
    InMemoryLivenessStore,
    LivenessStore,
    RedisLivenessStore,
    WorkerInfo,
)
from jobspine.jobs.manager import WorkerManager, generate_worker_id, submit_job
from jobspine.jobs.models import (
    DEFAULT_MAX_RETRIES,
    InvalidTransitionError,
    Job,
    JobStatus,
    utcnow,
)
from jobspine.jobs.registry import HandlerRegistry, JobHandler, handler
from jobspine.jobs.retry import RetryDecision, RetryPolicy
from jobspine.jobs.stats import WorkerStats, get_worker_stats
from jobspine.jobs.store import InMemoryJobStore, JobStore, SQLAlchemyJobStore

__all__ = [
    "DEFAULT_MAX_RETRIES",
    "HEARTBEAT_KEY",
    "HandlerRegistry",
    "HeartbeatReporter",
    "InMemoryBroker",
    "InMemoryJobStore",
    "InMemoryLivenessStore",
    "InvalidTransitionError",
    "Job",
    "JobHandler",
    "JobStatus",
    "JobStore",
    "LivenessStore",
    "QueueBroker",
    "RedisBroker",
    "RedisLivenessStore",
    "RetryDecision",
    "RetryPolicy",
    "SQLAlchemyJobStore",
    "WorkerInfo",
    "WorkerManager",
    "WorkerStats",
    "create_redis_client",
    "generate_worker_id",
    "get_worker_stats",
    "handler",
    "submit_job",
    "utcnow",
]
