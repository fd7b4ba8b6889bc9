"""
FastAPI dependency injection — process-wide engine components.

Usage in routers::

    from jobspine.api.deps import Broker, Liveness, Settings, Store

    @router.get("/workers/stats")
    def stats(broker: Broker, liveness: Liveness, store: Store, settings: Settings):
        ...

Settings and the three components are created once per process and reused
by every request. Tests replace them with ``app.dependency_overrides``.

Tags:
    jobspine, api, dependency-injection, singletons
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from jobspine.core.settings import WorkerSettings
from jobspine.jobs.broker import QueueBroker, RedisBroker, create_redis_client
from jobspine.jobs.heartbeat import LivenessStore, RedisLivenessStore
from jobspine.jobs.store import JobStore, SQLAlchemyJobStore

# ── Settings (singleton) ─────────────────────────────────────────────────


@lru_cache(maxsize=1)
def get_settings() -> WorkerSettings:
    """Cached settings — loaded once per process."""
    return WorkerSettings()


# ── Components (singletons) ──────────────────────────────────────────────


@lru_cache(maxsize=1)
def _redis_client():
    return create_redis_client(get_settings().redis_url)


@lru_cache(maxsize=1)
def _job_store() -> SQLAlchemyJobStore:
    settings = get_settings()
    return SQLAlchemyJobStore.from_url(settings.database_url, echo=settings.database_echo)


def get_broker() -> QueueBroker:
    return RedisBroker(_redis_client())


def get_liveness() -> LivenessStore:
    return RedisLivenessStore(_redis_client())


def get_store() -> JobStore:
    return _job_store()


def close_components() -> None:
    """Release cached connections (app shutdown)."""
    if _redis_client.cache_info().currsize:
        _redis_client().close()
        _redis_client.cache_clear()
    if _job_store.cache_info().currsize:
        _job_store().close()
        _job_store.cache_clear()


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[WorkerSettings, Depends(get_settings)]
Broker = Annotated[QueueBroker, Depends(get_broker)]
Liveness = Annotated[LivenessStore, Depends(get_liveness)]
Store = Annotated[JobStore, Depends(get_store)]
