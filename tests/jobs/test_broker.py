"""Tests for the queue brokers.

The Redis broker is exercised against a ``MagicMock`` client.
"""

from __future__ import annotations

import json
import threading
import time
from unittest.mock import MagicMock

import pytest
import redis

from jobspine.core.errors import BrokerError
from jobspine.jobs.broker import InMemoryBroker, RedisBroker, create_redis_client
from jobspine.jobs.models import Job

QUEUE = "engine_jobs"


def _job(job_type: str = "send_email") -> Job:
    return Job.create(queue=QUEUE, type=job_type)


class TestInMemoryBroker:
    def test_fifo(self):
        broker = InMemoryBroker()
        first, second = _job("a"), _job("b")
        broker.enqueue(QUEUE, first)
        broker.enqueue(QUEUE, second)
        assert broker.length(QUEUE) == 2
        assert Job.from_json(broker.dequeue(QUEUE, 0.01)).id == first.id
        assert Job.from_json(broker.dequeue(QUEUE, 0.01)).id == second.id
        assert broker.length(QUEUE) == 0

    def test_timeout_returns_none(self):
        broker = InMemoryBroker()
        start = time.monotonic()
        assert broker.dequeue(QUEUE, 0.05) is None
        assert time.monotonic() - start >= 0.04

    def test_queues_are_independent(self):
        broker = InMemoryBroker()
        broker.enqueue("other", _job())
        assert broker.dequeue(QUEUE, 0.01) is None
        assert broker.length("other") == 1

    def test_blocked_consumer_wakes_on_enqueue(self):
        broker = InMemoryBroker()
        results: list[str | None] = []
        consumer = threading.Thread(target=lambda: results.append(broker.dequeue(QUEUE, 5.0)))
        consumer.start()
        time.sleep(0.05)
        job = _job()
        broker.enqueue(QUEUE, job)
        consumer.join(timeout=2.0)
        assert not consumer.is_alive()
        assert Job.from_json(results[0]).id == job.id

    def test_each_item_delivered_once(self):
        broker = InMemoryBroker()
        for _ in range(100):
            broker.enqueue(QUEUE, _job())
        seen: list[str] = []
        lock = threading.Lock()

        def consume():
            while (raw := broker.dequeue(QUEUE, 0.05)) is not None:
                with lock:
                    seen.append(Job.from_json(raw).id)

        threads = [threading.Thread(target=consume) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(seen) == 100
        assert len(set(seen)) == 100

    def test_closed_broker_raises(self):
        broker = InMemoryBroker()
        broker.close()
        with pytest.raises(BrokerError):
            broker.enqueue(QUEUE, _job())
        with pytest.raises(BrokerError):
            broker.dequeue(QUEUE, 0.01)


class TestCreateRedisClient:
    def test_decodes_responses(self, monkeypatch):
        mock_from_url = MagicMock(return_value=MagicMock())
        monkeypatch.setattr(redis, "from_url", mock_from_url)

        create_redis_client("redis://custom:6380/1")
        mock_from_url.assert_called_once_with("redis://custom:6380/1", decode_responses=True)


class TestRedisBroker:
    @pytest.fixture
    def broker_and_client(self):
        client = MagicMock()
        return RedisBroker(client), client

    def test_enqueue_rpushes_full_record(self, broker_and_client):
        broker, client = broker_and_client
        job = _job()
        broker.enqueue(QUEUE, job)
        key, data = client.rpush.call_args.args
        assert key == QUEUE
        assert json.loads(data) == job.to_dict()

    def test_dequeue_returns_value(self, broker_and_client):
        broker, client = broker_and_client
        client.blpop.return_value = (QUEUE, '{"id": "j-1"}')
        assert broker.dequeue(QUEUE, 5) == '{"id": "j-1"}'
        client.blpop.assert_called_once_with([QUEUE], timeout=5)

    def test_dequeue_decodes_bytes(self, broker_and_client):
        broker, client = broker_and_client
        client.blpop.return_value = [QUEUE.encode(), b'{"id": "j-1"}']
        assert broker.dequeue(QUEUE, 5) == '{"id": "j-1"}'

    def test_dequeue_timeout_is_none(self, broker_and_client):
        broker, client = broker_and_client
        client.blpop.return_value = None
        assert broker.dequeue(QUEUE, 5) is None

    def test_socket_timeout_is_none(self, broker_and_client):
        broker, client = broker_and_client
        client.blpop.side_effect = redis.exceptions.TimeoutError("timed out")
        assert broker.dequeue(QUEUE, 5) is None

    def test_connection_error_wrapped(self, broker_and_client):
        broker, client = broker_and_client
        client.blpop.side_effect = redis.exceptions.ConnectionError("refused")
        with pytest.raises(BrokerError) as exc_info:
            broker.dequeue(QUEUE, 5)
        assert exc_info.value.context.queue == QUEUE
        assert isinstance(exc_info.value.cause, redis.exceptions.ConnectionError)

    def test_enqueue_error_wrapped(self, broker_and_client):
        broker, client = broker_and_client
        client.rpush.side_effect = redis.exceptions.ConnectionError("refused")
        job = _job()
        with pytest.raises(BrokerError) as exc_info:
            broker.enqueue(QUEUE, job)
        assert exc_info.value.context.job_id == job.id

    def test_length(self, broker_and_client):
        broker, client = broker_and_client
        client.llen.return_value = 7
        assert broker.length(QUEUE) == 7
        client.llen.assert_called_once_with(QUEUE)

    def test_length_error_wrapped(self, broker_and_client):
        broker, client = broker_and_client
        client.llen.side_effect = redis.exceptions.ConnectionError("refused")
        with pytest.raises(BrokerError):
            broker.length(QUEUE)

    def test_length_decode_error_wrapped(self, broker_and_client):
        broker, client = broker_and_client
        client.llen.side_effect = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        with pytest.raises(BrokerError) as exc_info:
            broker.length(QUEUE)
        assert exc_info.value.context.queue == QUEUE

    def test_close(self, broker_and_client):
        broker, client = broker_and_client
        broker.close()
        client.close.assert_called_once()
