"""
Unit tests for the queue entity model.
"""

import json

import pytest

from qless_client.client import Client
from qless_client.constants import JobState
from qless_client.models.queue import Queue
from tests.conftest import FakeRedis, job_document


@pytest.fixture
def queue(client: Client) -> Queue:
    """Create a queue handle with a warm script cache."""
    client.dispatcher.preload()
    return client.queue("emails")


class TestPut:
    """Tests for enqueueing."""

    def test_put_generates_jid(self, queue: Queue, fake_redis: FakeRedis):
        """Test put uses the client's identifier generator."""
        fake_redis.reply(b"generated-1")

        jid = queue.put("SendEmail", {"to": "a@example.com"})

        assert jid == "generated-1"
        assert fake_redis.last[0] == "put"
        assert fake_redis.last_args == (
            "emails",
            "generated-1",
            "SendEmail",
            '{"to":"a@example.com"}',
            0,
        )

    def test_put_without_data(self, queue: Queue, fake_redis: FakeRedis):
        """Test an absent payload is sent as an empty object."""
        fake_redis.reply(b"j")

        queue.put("Noop", jid="j")

        assert fake_redis.last_args[3] == "{}"

    def test_put_options(self, queue: Queue, fake_redis: FakeRedis):
        """Test optional fields are sent as keyword pairs."""
        fake_redis.reply(b"j")

        queue.put(
            "SendEmail",
            {},
            jid="j",
            delay=30,
            priority=10,
            tags=["vip"],
            retries=2,
            depends=["a"],
        )

        assert fake_redis.last_args == (
            "emails",
            "j",
            "SendEmail",
            "{}",
            30,
            "priority",
            10,
            "tags",
            '["vip"]',
            "retries",
            2,
            "depends",
            '["a"]',
        )


class TestPop:
    """Tests for leasing and peeking."""

    def test_pop_attaches_client(self, queue: Queue, client: Client, fake_redis: FakeRedis):
        """Test every popped job is bound to the client."""
        documents = [
            json.loads(job_document(jid="a")),
            json.loads(job_document(jid="b")),
        ]
        fake_redis.reply(json.dumps(documents).encode())

        jobs = queue.pop("worker-1", count=2)

        assert fake_redis.last_args == ("emails", "worker-1", 2)
        assert [job.jid for job in jobs] == ["a", "b"]
        assert all(job.client is client for job in jobs)
        assert jobs[0].state == JobState.RUNNING

    def test_pop_empty(self, queue: Queue, fake_redis: FakeRedis):
        """Test an empty queue pops nothing."""
        fake_redis.reply(b"{}")

        assert queue.pop("worker-1") == []

    def test_peek(self, queue: Queue, fake_redis: FakeRedis):
        """Test peeking does not pass a worker."""
        fake_redis.reply(json.dumps([json.loads(job_document(state="waiting"))]).encode())

        jobs = queue.peek(3)

        assert fake_redis.last[0] == "peek"
        assert fake_redis.last_args == ("emails", 3)
        assert len(jobs) == 1


class TestRecur:
    """Tests for creating recurring jobs."""

    def test_recur(self, queue: Queue, fake_redis: FakeRedis):
        """Test recur sends the template and interval."""
        fake_redis.reply(b"generated-1")

        jid = queue.recur("Digest", {"period": "daily"}, 3600, priority=1)

        assert jid == "generated-1"
        assert fake_redis.last[0] == "recur"
        assert fake_redis.last_args == (
            "on",
            "emails",
            "generated-1",
            "Digest",
            '{"period":"daily"}',
            "interval",
            3600,
            0,
            "priority",
            1,
        )

    def test_recur_requires_positive_interval(self, queue: Queue, fake_redis: FakeRedis):
        """Test a non-positive interval is refused locally."""
        with pytest.raises(ValueError):
            queue.recur("Digest", {}, 0)

        assert fake_redis.evals == []


class TestCounts:
    """Tests for refreshing queue counts."""

    def test_counts(self, queue: Queue, fake_redis: FakeRedis):
        """Test counts refetches this queue's record."""
        fake_redis.reply(b'{"name": "emails", "waiting": 5, "running": 2}')

        queue.counts()

        assert fake_redis.last_args == ("emails",)
        assert queue.waiting == 5
        assert queue.total == 7
