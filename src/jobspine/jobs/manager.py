"""
Worker manager — a bounded pool of worker loops draining one broker queue.

Manifesto:
    A manager process owns N independent worker loops, one heartbeat loop
    and the handles to three shared resources (broker, job store, liveness
    store). Loops share nothing but the registry (read-only once started)
    and the ``jobs_handled`` counter (guarded by a lock). Many managers may
    drain the same queue; the broker's atomic pop is the only coordination.

Architecture:
    ::

        WorkerManager.start()
          ├── registry.freeze()
          ├── HeartbeatReporter.start()        (1 daemon thread)
          └── N × _worker_loop(i)              (N threads, joined)
                  │
                  ▼
        process_next_job()
          broker.dequeue(queue, poll_timeout)
            None            → return
            corrupt item    → log, discard
            Job             → _dispatch(job)

        _dispatch(job)
          not pending       → log, discard
          handler missing   → _fail(job, "no handler registered")
                              (no RUNNING, attempts unchanged)
          handler present   → RUNNING, started_at, attempts += 1, persist
                              handler(payload)
                                returns → COMPLETED, completed_at, persist,
                                          jobs_handled += 1
                                raises  → _fail(job, str(exc))

        _fail(job, message)
          RetryPolicy.decide(attempts, max_retries)
            retry    → PENDING, run_at = now + attempts², persist, re-enqueue
            terminal → FAILED, persist

Delivery:
    At-most-once per broker pop. A crash between pop and the final persist
    leaves the record ``running`` or ``pending`` with nothing to revisit it.
    Re-enqueued retries go straight to the tail; ``run_at`` is recorded but
    not waited for.

Persistence:
    Store writes made while dispatching are best-effort: a
    :class:`PersistenceError` is logged and the job carries on. Store and
    broker errors from :meth:`WorkerManager.create_and_enqueue` propagate.

Shutdown:
    Cooperative. :meth:`WorkerManager.shutdown` stops new dequeues, waits for
    in-flight handlers (never interrupted), stops the heartbeat (removing this
    process's record best-effort) and closes every resource. Call it from a
    different thread than the one blocked in :meth:`WorkerManager.start`.

Example:
    >>> registry = HandlerRegistry()
    >>> manager = WorkerManager(
    ...     WorkerSettings(), InMemoryBroker(), InMemoryJobStore(),
    ...     InMemoryLivenessStore(), registry=registry,
    ... )
    >>> manager.register_handler("send_email", lambda payload: None)
    >>> job = manager.create_and_enqueue("send_email", {"to": "a@b.c"})
    >>> manager.process_next_job(timeout=0.1).status
    <JobStatus.COMPLETED: 'completed'>

Tags:
    worker, pool, queue, retry, heartbeat, jobspine
"""

from __future__ import annotations

import socket
import threading
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

from jobspine.core.errors import (
    BrokerError,
    ConfigError,
    HandlerNotFoundError,
    JobDeserializationError,
    PersistenceError,
)
from jobspine.core.logging import bind_context, get_logger, unbind_context
from jobspine.core.settings import WorkerSettings, get_settings
from jobspine.jobs.broker import QueueBroker, RedisBroker, create_redis_client
from jobspine.jobs.heartbeat import (
    HeartbeatReporter,
    LivenessStore,
    RedisLivenessStore,
    WorkerInfo,
)
from jobspine.jobs.models import Job, JobStatus, utcnow
from jobspine.jobs.registry import HandlerRegistry, JobHandler
from jobspine.jobs.retry import RetryPolicy
from jobspine.jobs.stats import WorkerStats, get_worker_stats
from jobspine.jobs.store import JobStore, SQLAlchemyJobStore

logger = get_logger(__name__)

NO_HANDLER_MESSAGE = "no handler registered"


def generate_worker_id() -> str:
    """``"{hostname}-{nanoseconds}"``, unique per manager process."""
    return f"{socket.gethostname()}-{time.time_ns()}"


def submit_job(
    store: JobStore,
    broker: QueueBroker,
    queue_name: str,
    job_type: str,
    payload: dict[str, Any] | None = None,
    max_retries: int = 3,
) -> Job:
    """Persist a new pending job, then push it onto *queue_name*.

    Shared by :meth:`WorkerManager.create_and_enqueue` and producers that
    hold no manager (``jobspine jobs enqueue``).

    Raises:
        PersistenceError: If the record cannot be stored
        BrokerError: If the record was stored but could not be enqueued
    """
    job = Job.create(queue=queue_name, type=job_type, payload=payload, max_retries=max_retries)
    store.create(job)
    broker.enqueue(queue_name, job)
    logger.info("job_enqueued", job_id=job.id, job_type=job.type, queue=queue_name)
    return job


class WorkerManager:
    """Runs a pool of worker loops against one broker queue.

    Args:
        settings: Engine configuration (concurrency, queue, timings)
        broker: Queue broker shared with producers and other managers
        store: Durable job store
        liveness: Shared container for heartbeat records
        registry: Handler registry; a fresh one if omitted
        retry_policy: Failure policy; quadratic backoff if omitted
        worker_id: Process identifier; ``hostname-time_ns`` if omitted
        clock: Returns the current UTC datetime
    """

    def __init__(
        self,
        settings: WorkerSettings,
        broker: QueueBroker,
        store: JobStore,
        liveness: LivenessStore,
        registry: HandlerRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        worker_id: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if settings.worker_concurrency < 1:
            raise ConfigError(
                f"worker_concurrency must be >= 1, got {settings.worker_concurrency}"
            )

        self._settings = settings
        self._broker = broker
        self._store = store
        self._liveness = liveness
        self._registry = registry if registry is not None else HandlerRegistry()
        self._retry_policy = retry_policy or RetryPolicy()
        self._worker_id = worker_id or generate_worker_id()
        self._clock = clock
        self._queue_name = settings.worker_queue_name

        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._jobs_handled = 0
        self._threads: list[threading.Thread] = []
        self._started = False
        self._closed = False

        self._heartbeat = HeartbeatReporter(
            worker_id=self._worker_id,
            liveness=liveness,
            interval_seconds=settings.heartbeat_interval_seconds,
            threshold_seconds=settings.liveness_threshold_seconds,
            jobs_handled_fn=lambda: self.jobs_handled,
            clock=clock,
        )

    @classmethod
    def from_settings(
        cls,
        settings: WorkerSettings | None = None,
        registry: HandlerRegistry | None = None,
    ) -> WorkerManager:
        """Wire a manager to Redis and the SQL job store named in *settings*.

        The broker and the liveness store share one Redis client.
        """
        settings = settings or get_settings()
        client = create_redis_client(settings.redis_url)
        store = SQLAlchemyJobStore.from_url(settings.database_url, echo=settings.database_echo)
        return cls(
            settings,
            RedisBroker(client),
            store,
            RedisLivenessStore(client),
            registry=registry,
        )

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def worker_id(self) -> str:
        return self._worker_id

    @property
    def queue_name(self) -> str:
        return self._queue_name

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def jobs_handled(self) -> int:
        with self._lock:
            return self._jobs_handled

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    @property
    def closed(self) -> bool:
        """True once :meth:`shutdown` has been called."""
        with self._lock:
            return self._closed

    def info(self) -> WorkerInfo:
        """Current liveness snapshot of this process."""
        return self._heartbeat.snapshot()

    # ------------------------------------------------------------------ #
    # Host API
    # ------------------------------------------------------------------ #

    def register_handler(
        self,
        job_type: str,
        handler: JobHandler,
        description: str | None = None,
    ) -> None:
        """Register *handler* for *job_type*. Only valid before :meth:`start`."""
        self._registry.register(job_type, handler, description=description)

    def start(self) -> None:
        """Run the pool. Blocks until every worker loop has exited."""
        with self._lock:
            if self._started:
                raise ConfigError("WorkerManager.start() called twice")
            if self._closed:
                raise ConfigError("WorkerManager has been shut down")
            self._started = True
            self._registry.freeze()
            self._threads = [
                threading.Thread(
                    target=self._worker_loop,
                    args=(i,),
                    name=f"{self._worker_id}-loop-{i}",
                    daemon=True,
                )
                for i in range(self._settings.worker_concurrency)
            ]

        logger.info(
            "worker_manager_starting",
            worker_id=self._worker_id,
            queue=self._queue_name,
            concurrency=len(self._threads),
            handlers=self._registry.list_types(),
        )

        if self._stop.is_set():
            # shutdown() ran between the lock and here
            logger.info("worker_manager_stopped", worker_id=self._worker_id)
            return

        self._heartbeat.start()
        for thread in self._threads:
            thread.start()
        for thread in self._threads:
            thread.join()

        logger.info("worker_manager_stopped", worker_id=self._worker_id)

    def shutdown(self) -> None:
        """Stop dequeuing, drain in-flight jobs, stop the heartbeat, release resources.

        Idempotent; later calls return immediately.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            threads = list(self._threads)

        logger.info("worker_manager_shutting_down", worker_id=self._worker_id)
        self._stop.set()

        current = threading.current_thread()
        for thread in threads:
            if thread is not current and thread.is_alive():
                thread.join()

        self._heartbeat.stop()

        for name, resource in (
            ("broker", self._broker),
            ("liveness", self._liveness),
            ("store", self._store),
        ):
            try:
                resource.close()
            except Exception as e:
                logger.warning("resource_close_failed", resource=name, error=str(e))

        logger.info(
            "worker_manager_shutdown_complete",
            worker_id=self._worker_id,
            jobs_handled=self.jobs_handled,
        )

    def create_and_enqueue(
        self,
        job_type: str,
        payload: dict[str, Any] | None = None,
        max_retries: int | None = None,
    ) -> Job:
        """Persist a new pending job and push it onto the configured queue.

        Raises:
            PersistenceError: If the record cannot be stored
            BrokerError: If the record was stored but could not be enqueued
        """
        return submit_job(
            self._store,
            self._broker,
            self._queue_name,
            job_type,
            payload,
            max_retries=self._settings.default_max_retries if max_retries is None else max_retries,
        )

    def enqueue_job(self, job: Job) -> None:
        """Push the full record onto the configured queue."""
        self._broker.enqueue(self._queue_name, job)

    def get_worker_stats(self, queue_name: str | None = None) -> WorkerStats:
        return get_worker_stats(
            self._broker,
            self._liveness,
            self._store,
            queue_name or self._queue_name,
            threshold_seconds=self._settings.liveness_threshold_seconds,
            now=self._clock(),
        )

    # ------------------------------------------------------------------ #
    # Worker loop
    # ------------------------------------------------------------------ #

    def _worker_loop(self, index: int) -> None:
        bind_context(worker_id=self._worker_id, loop=index)
        logger.debug("worker_loop_started")
        error_backoff = min(1.0, self._settings.poll_timeout_seconds)
        try:
            while not self._stop.is_set():
                try:
                    self.process_next_job()
                except BrokerError as e:
                    logger.warning("broker_dequeue_error", error=str(e))
                    self._stop.wait(error_backoff)
                except Exception:
                    logger.exception("worker_loop_error")
        finally:
            logger.debug("worker_loop_stopped")
            unbind_context("worker_id", "loop")

    def process_next_job(self, timeout: float | None = None) -> Job | None:
        """Pop one item and dispatch it.

        Returns:
            The job after dispatch, or ``None`` if the queue stayed empty for
            *timeout* seconds or the item could not be parsed.

        Raises:
            BrokerError: If the dequeue itself failed.
        """
        if timeout is None:
            timeout = self._settings.poll_timeout_seconds
        raw = self._broker.dequeue(self._queue_name, timeout)
        if raw is None:
            return None

        try:
            job = Job.from_json(raw)
        except JobDeserializationError as e:
            logger.error(
                "job_deserialization_failed",
                queue=self._queue_name,
                error=str(e),
                item=raw[:200],
            )
            return None

        self._dispatch(job)
        return job

    def _dispatch(self, job: Job) -> None:
        # Only pending records are ever pushed; anything else is a stale copy
        if job.status is not JobStatus.PENDING:
            logger.error("job_discarded", job_id=job.id, job_type=job.type, status=job.status.value)
            return

        try:
            handler = self._registry.get(job.type)
        except HandlerNotFoundError:
            logger.warning("job_handler_missing", job_id=job.id, job_type=job.type)
            self._fail(job, NO_HANDLER_MESSAGE)
            return

        now = self._clock()
        job.transition_to(JobStatus.RUNNING, now=now)
        job.started_at = now
        job.attempts += 1
        self._persist(job)
        logger.info("job_started", job_id=job.id, job_type=job.type, attempt=job.attempts)

        try:
            handler(job.payload)
        except Exception as e:
            logger.warning(
                "job_handler_error",
                job_id=job.id,
                job_type=job.type,
                attempt=job.attempts,
                error=str(e),
                exc_info=True,
            )
            self._fail(job, str(e))
            return

        now = self._clock()
        job.transition_to(JobStatus.COMPLETED, now=now)
        job.completed_at = now
        self._persist(job)
        with self._lock:
            self._jobs_handled += 1
        logger.info("job_completed", job_id=job.id, job_type=job.type, attempts=job.attempts)

    def _fail(self, job: Job, message: str) -> None:
        now = self._clock()
        decision = self._retry_policy.decide(job.attempts, job.max_retries, now=now)
        job.error = message

        if not decision.retry:
            job.transition_to(JobStatus.FAILED, now=now)
            self._persist(job)
            logger.error(
                "job_failed",
                job_id=job.id,
                job_type=job.type,
                attempts=job.attempts,
                error=message,
            )
            return

        job.transition_to(JobStatus.PENDING, now=now)
        job.run_at = decision.run_at
        self._persist(job)
        try:
            self.enqueue_job(job)
        except BrokerError as e:
            # Record stays pending with no broker entry
            logger.error("job_requeue_failed", job_id=job.id, error=str(e))
            return
        logger.info(
            "job_retry_scheduled",
            job_id=job.id,
            job_type=job.type,
            attempts=job.attempts,
            backoff_seconds=decision.backoff_seconds,
        )

    def _persist(self, job: Job) -> None:
        try:
            self._store.save(job)
        except PersistenceError as e:
            logger.warning(
                "job_persist_failed",
                job_id=job.id,
                status=job.status.value,
                error=str(e),
            )


__all__ = [
    "NO_HANDLER_MESSAGE",
    "WorkerManager",
    "generate_worker_id",
    "submit_job",
]
