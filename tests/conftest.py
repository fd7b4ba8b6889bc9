"""
Shared pytest fixtures for jobspine tests.

This module provides:
- Fast settings (short poll, heartbeat and liveness windows)
- In-memory broker, job store and liveness store
- A handler registry and a ready-to-use WorkerManager
- A controllable clock for deterministic timestamps

Usage:
    def test_something(manager, broker, store):
        manager.register_handler("send_email", lambda payload: None)
        ...
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest

from jobspine.core.settings import WorkerSettings, clear_settings_cache
from jobspine.jobs.broker import InMemoryBroker
from jobspine.jobs.heartbeat import InMemoryLivenessStore
from jobspine.jobs.manager import WorkerManager
from jobspine.jobs.registry import HandlerRegistry
from jobspine.jobs.store import InMemoryJobStore

QUEUE = "engine_jobs"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Drop cached settings and any JOBSPINE_* variables from the host."""
    import os

    for key in list(os.environ):
        if key.startswith("JOBSPINE_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> WorkerSettings:
    return WorkerSettings(
        worker_concurrency=3,
        worker_queue_name=QUEUE,
        poll_timeout_seconds=0.05,
        heartbeat_interval_seconds=0.05,
        liveness_threshold_seconds=0.5,
        database_url="sqlite://",
    )


# =============================================================================
# Components
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def liveness() -> InMemoryLivenessStore:
    return InMemoryLivenessStore()


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def manager(
    settings: WorkerSettings,
    broker: InMemoryBroker,
    store: InMemoryJobStore,
    liveness: InMemoryLivenessStore,
    registry: HandlerRegistry,
) -> WorkerManager:
    return WorkerManager(
        settings,
        broker,
        store,
        liveness,
        registry=registry,
        worker_id="test-host-1",
    )
