"""Tests for worker liveness: records, stores and the heartbeat reporter."""

from __future__ import annotations

import json
import time
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
import redis

from jobspine.core.errors import BrokerError
from jobspine.jobs.heartbeat import (
    HEARTBEAT_KEY,
    HeartbeatReporter,
    InMemoryLivenessStore,
    RedisLivenessStore,
    WorkerInfo,
)

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


def _info(worker_id: str = "host-1", last_seen: datetime = NOW) -> WorkerInfo:
    return WorkerInfo(id=worker_id, started_at=NOW - timedelta(minutes=5), last_seen=last_seen, jobs_handled=3)


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestWorkerInfo:
    def test_json_round_trip(self):
        info = _info()
        assert WorkerInfo.from_json(info.to_json()) == info

    def test_wire_keys(self):
        assert set(_info().to_dict()) == {"id", "started_at", "last_seen", "jobs_handled", "status"}

    @pytest.mark.parametrize("raw", ["nope", "{}", json.dumps({"id": "x", "started_at": "bad", "last_seen": "bad"})])
    def test_malformed(self, raw):
        with pytest.raises(ValueError):
            WorkerInfo.from_json(raw)

    def test_classification_boundary(self):
        info = _info()
        assert info.classified(NOW + timedelta(seconds=29), 30).status == "running"
        assert info.classified(NOW + timedelta(seconds=30), 30).status == "stale"
        assert info.status == "running"


class TestInMemoryLivenessStore:
    def test_write_read_remove(self):
        store = InMemoryLivenessStore()
        store.write("host-1", _info(), ttl_seconds=60)
        assert WorkerInfo.from_json(store.read_all()["host-1"]).id == "host-1"
        store.remove("host-1")
        assert store.read_all() == {}

    def test_container_expires(self):
        ticks = [0.0]
        store = InMemoryLivenessStore(clock=lambda: ticks[0])
        store.write("host-1", _info(), ttl_seconds=60)
        store.write("host-2", _info("host-2"), ttl_seconds=60)
        ticks[0] = 59.0
        assert len(store.read_all()) == 2
        ticks[0] = 60.0
        assert store.read_all() == {}

    def test_write_refreshes_expiry(self):
        ticks = [0.0]
        store = InMemoryLivenessStore(clock=lambda: ticks[0])
        store.write("host-1", _info(), ttl_seconds=60)
        ticks[0] = 50.0
        store.write("host-1", _info(), ttl_seconds=60)
        ticks[0] = 100.0
        assert "host-1" in store.read_all()


class TestRedisLivenessStore:
    @pytest.fixture
    def store_and_client(self):
        client = MagicMock()
        return RedisLivenessStore(client), client

    def test_write_sets_field_and_expiry(self, store_and_client):
        store, client = store_and_client
        info = _info()
        store.write("host-1", info, ttl_seconds=60)
        client.hset.assert_called_once_with(HEARTBEAT_KEY, "host-1", info.to_json())
        client.pexpire.assert_called_once_with(HEARTBEAT_KEY, 60000)

    def test_subsecond_ttl_never_zero(self, store_and_client):
        store, client = store_and_client
        store.write("host-1", _info(), ttl_seconds=0.0001)
        client.pexpire.assert_called_once_with(HEARTBEAT_KEY, 1)

    def test_remove(self, store_and_client):
        store, client = store_and_client
        store.remove("host-1")
        client.hdel.assert_called_once_with(HEARTBEAT_KEY, "host-1")

    def test_read_all_decodes(self, store_and_client):
        store, client = store_and_client
        client.hgetall.return_value = {b"host-1": b"{}", "host-2": "{}"}
        assert store.read_all() == {"host-1": "{}", "host-2": "{}"}

    def test_read_all_decode_error_wrapped(self, store_and_client):
        store, client = store_and_client
        client.hgetall.return_value = {b"host-1": b"\xff\xfe"}
        with pytest.raises(BrokerError):
            store.read_all()

    @pytest.mark.parametrize("method", ["hset", "hdel", "hgetall"])
    def test_errors_wrapped(self, store_and_client, method):
        store, client = store_and_client
        getattr(client, method).side_effect = redis.exceptions.ConnectionError("refused")
        with pytest.raises(BrokerError):
            if method == "hset":
                store.write("host-1", _info(), 60)
            elif method == "hdel":
                store.remove("host-1")
            else:
                store.read_all()


class TestHeartbeatReporter:
    def _reporter(self, liveness, **kwargs) -> HeartbeatReporter:
        defaults = dict(
            worker_id="host-1",
            liveness=liveness,
            interval_seconds=0.02,
            threshold_seconds=0.5,
            jobs_handled_fn=lambda: 4,
        )
        defaults.update(kwargs)
        return HeartbeatReporter(**defaults)

    def test_beat_writes_running_record(self):
        liveness = InMemoryLivenessStore()
        reporter = self._reporter(liveness, clock=lambda: NOW)
        assert reporter.beat() is True
        info = WorkerInfo.from_json(liveness.read_all()["host-1"])
        assert info.status == "running"
        assert info.last_seen == NOW
        assert info.jobs_handled == 4

    def test_ttl_is_twice_threshold(self):
        liveness = MagicMock()
        self._reporter(liveness, threshold_seconds=30).beat()
        assert liveness.write.call_args.args[2] == 60

    def test_failed_beat_is_logged_not_raised(self):
        liveness = MagicMock()
        liveness.write.side_effect = BrokerError("down")
        reporter = self._reporter(liveness)
        assert reporter.beat() is False
        assert reporter.beats == 0

    def test_thread_beats_immediately_and_repeatedly(self):
        liveness = InMemoryLivenessStore()
        reporter = self._reporter(liveness)
        reporter.start()
        try:
            assert _wait_for(lambda: reporter.beats >= 3)
            assert list(liveness.read_all()) == ["host-1"]
        finally:
            reporter.stop()

    def test_stop_removes_entry(self):
        liveness = InMemoryLivenessStore()
        reporter = self._reporter(liveness)
        reporter.start()
        assert _wait_for(lambda: reporter.beats >= 1)
        reporter.stop()
        assert not reporter.running
        assert liveness.read_all() == {}

    def test_stop_tolerates_removal_failure(self):
        liveness = MagicMock()
        liveness.remove.side_effect = BrokerError("down")
        reporter = self._reporter(liveness)
        reporter.stop()
        reporter.stop()
        liveness.remove.assert_called_once_with("host-1")

    def test_keeps_beating_after_failures(self):
        liveness = MagicMock()
        liveness.write.side_effect = [BrokerError("down"), BrokerError("down"), None, None, None]
        reporter = self._reporter(liveness)
        reporter.start()
        try:
            assert _wait_for(lambda: reporter.beats >= 1)
        finally:
            reporter.stop()

    def test_start_after_stop_is_noop(self):
        liveness = InMemoryLivenessStore()
        reporter = self._reporter(liveness)
        reporter.stop()
        reporter.start()
        assert not reporter.running
        assert reporter.beats == 0
        assert liveness.read_all() == {}

    def test_started_at_taken_at_start(self, clock):
        liveness = InMemoryLivenessStore()
        reporter = self._reporter(liveness, clock=clock)
        constructed_at = clock()
        started_at = clock.advance(30)
        reporter.start()
        try:
            assert _wait_for(lambda: reporter.beats >= 1)
            info = WorkerInfo.from_json(liveness.read_all()["host-1"])
        finally:
            reporter.stop()
        assert info.started_at == started_at
        assert info.started_at != constructed_at
        assert reporter.snapshot().started_at == started_at
