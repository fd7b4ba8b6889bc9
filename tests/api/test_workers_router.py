"""Tests for the admin workers router (TestClient with overridden dependencies)."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from jobspine.api.app import create_app
from jobspine.api.deps import get_broker, get_liveness, get_settings, get_store
from jobspine.core.errors import BrokerError, PersistenceError
from jobspine.core.settings import WorkerSettings
from jobspine.jobs.broker import InMemoryBroker
from jobspine.jobs.heartbeat import InMemoryLivenessStore, WorkerInfo
from jobspine.jobs.models import Job, JobStatus, utcnow
from jobspine.jobs.store import InMemoryJobStore

QUEUE = "engine_jobs"


@pytest.fixture
def components():
    return {
        "broker": InMemoryBroker(),
        "liveness": InMemoryLivenessStore(),
        "store": InMemoryJobStore(),
    }


@pytest.fixture
def client(components):
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: WorkerSettings(worker_queue_name=QUEUE)
    app.dependency_overrides[get_broker] = lambda: components["broker"]
    app.dependency_overrides[get_liveness] = lambda: components["liveness"]
    app.dependency_overrides[get_store] = lambda: components["store"]
    return TestClient(app)


def _job(n: int, status: JobStatus = JobStatus.PENDING) -> Job:
    job = Job.create(queue=QUEUE, type="t", payload={"n": n})
    job.status = status
    job.created_at = job.created_at + timedelta(seconds=n)
    return job


class TestWorkerStatsEndpoint:
    def test_stats(self, client, components):
        now = utcnow()
        components["broker"].enqueue(QUEUE, _job(0))
        components["liveness"].write(
            "fresh", WorkerInfo(id="fresh", started_at=now, last_seen=now), ttl_seconds=120
        )
        components["liveness"].write(
            "old",
            WorkerInfo(id="old", started_at=now, last_seen=now - timedelta(seconds=45)),
            ttl_seconds=120,
        )
        components["store"].create(_job(1, JobStatus.COMPLETED))

        resp = client.get("/workers/stats")

        assert resp.status_code == 200
        data = resp.json()
        assert data["queue_length"] == 1
        assert data["total_workers"] == 2
        assert data["active_workers"] == 1
        assert data["jobs_completed"] == 1
        assert {w["id"]: w["status"] for w in data["workers"]} == {"fresh": "running", "old": "stale"}

    def test_stats_other_queue(self, client, components):
        components["broker"].enqueue("emails", _job(0))
        assert client.get("/workers/stats").json()["queue_length"] == 0
        assert client.get("/workers/stats", params={"queue": "emails"}).json()["queue_length"] == 1

    def test_stats_survive_backend_failures(self, client, components):
        broker = MagicMock()
        broker.length.side_effect = BrokerError("down")
        client.app.dependency_overrides[get_broker] = lambda: broker

        resp = client.get("/workers/stats")

        assert resp.status_code == 200
        assert resp.json()["queue_length"] == 0


class TestJobsEndpoints:
    def test_list_newest_first(self, client, components):
        jobs = [_job(n) for n in range(3)]
        for job in jobs:
            components["store"].create(job)

        resp = client.get("/jobs")

        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] == 3
        assert [j["id"] for j in data["jobs"]] == [jobs[2].id, jobs[1].id, jobs[0].id]

    def test_list_limit_and_status(self, client, components):
        for n in range(5):
            components["store"].create(_job(n, JobStatus.FAILED if n % 2 else JobStatus.PENDING))

        assert client.get("/jobs", params={"limit": 2}).json()["count"] == 2
        failed = client.get("/jobs", params={"status": "failed"}).json()
        assert failed["count"] == 2
        assert {j["status"] for j in failed["jobs"]} == {"failed"}

    def test_list_rejects_bad_params(self, client):
        assert client.get("/jobs", params={"limit": 0}).status_code == 422
        assert client.get("/jobs", params={"status": "exploded"}).status_code == 422

    def test_list_store_failure(self, client):
        store = MagicMock()
        store.list_recent.side_effect = PersistenceError("db down")
        client.app.dependency_overrides[get_store] = lambda: store
        assert client.get("/jobs").status_code == 500

    def test_get_job(self, client, components):
        job = _job(0)
        components["store"].create(job)

        resp = client.get(f"/jobs/{job.id}")

        assert resp.status_code == 200
        assert resp.json() == job.to_dict()

    def test_get_job_not_found(self, client):
        resp = client.get("/jobs/missing")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "job not found"}
