"""
Pytest configuration and shared fixtures.
"""

import itertools
import json
import threading
from collections import deque
from collections.abc import Callable
from typing import Any

import pytest
from prometheus_client import CollectorRegistry
from redis.exceptions import NoScriptError

from qless_client.client import Client
from qless_client.config import Settings
from qless_client.observability.metrics import MetricsCollector
from qless_client.protocol.dispatcher import ScriptDispatcher, script_sha

FIXED_NOW = 1_700_000_000
SCRIPTS = {"qless": "-- qless entry point\nreturn 1\n"}


class FakePubSub:
    """In-memory stand-in for a redis-py PubSub object."""

    def __init__(self) -> None:
        self.channels: list[str] = []
        self.messages: deque[dict[str, Any]] = deque()
        self.closed = False

    def subscribe(self, *channels: str) -> None:
        self.channels.extend(channels)

    def get_message(self, timeout: float = 0.0) -> dict[str, Any] | None:
        return self.messages.popleft() if self.messages else None

    def listen(self):
        while self.messages:
            yield self.messages.popleft()

    def close(self) -> None:
        self.closed = True


class FakeRedis:
    """
    In-memory stand-in for the redis-py client.

    Records every EVALSHA and SCRIPT LOAD. Replies are queued with reply();
    an queued exception is raised instead of returned.
    """

    def __init__(self) -> None:
        self.evals: list[tuple[Any, ...]] = []
        self.loads: list[str] = []
        self.cached: set[str] = set()
        self.replies: deque[Any] = deque()
        self.forget_loads = False
        self.on_unknown_sha: Callable[[], None] | None = None
        self.pubsubs: list[FakePubSub] = []
        self.closed = False
        self._lock = threading.Lock()

    def reply(self, *replies: Any) -> "FakeRedis":
        self.replies.extend(replies)
        return self

    def script_load(self, body: str) -> str:
        sha = script_sha(body)
        with self._lock:
            self.loads.append(body)
            if not self.forget_loads:
                self.cached.add(sha)
        return sha

    def evalsha(self, sha: str, numkeys: int, *args: Any) -> Any:
        with self._lock:
            self.evals.append((sha, numkeys, *args))
            known = sha in self.cached
        if not known:
            if self.on_unknown_sha is not None:
                self.on_unknown_sha()
            raise NoScriptError("No matching script. Please use EVAL.")
        with self._lock:
            reply = self.replies.popleft() if self.replies else None
        if isinstance(reply, Exception):
            raise reply
        return reply

    def pubsub(self, ignore_subscribe_messages: bool = False) -> FakePubSub:
        pubsub = FakePubSub()
        self.pubsubs.append(pubsub)
        return pubsub

    def close(self) -> None:
        self.closed = True

    @property
    def last(self) -> tuple[Any, ...]:
        """(opcode, now, *args) of the most recent invocation."""
        return self.evals[-1][2:]

    @property
    def last_args(self) -> tuple[Any, ...]:
        """Operation-specific arguments of the most recent invocation."""
        return self.evals[-1][4:]


def job_document(**overrides: Any) -> bytes:
    """A job document shaped the way the runtime encodes it."""
    document = {
        "jid": "jid-1",
        "klass": "SendEmail",
        "state": "running",
        "queue": "emails",
        "worker": "worker-1",
        "tracked": False,
        "priority": 0,
        "expires": FIXED_NOW + 60,
        "retries": 5,
        "remaining": 5,
        "data": json.dumps({"to": "someone@example.com"}),
        "tags": {},
        "history": [
            {"when": FIXED_NOW - 10, "q": "emails", "what": "put"},
            {"when": FIXED_NOW - 5, "q": "emails", "what": "popped", "worker": "worker-1"},
        ],
        "failure": {},
        "dependents": {},
        "dependencies": {},
    }
    document.update(overrides)
    return json.dumps(document).encode("utf-8")


def recurring_document(**overrides: Any) -> bytes:
    """A recurring job document shaped the way the runtime encodes it."""
    document = {
        "jid": "recur-1",
        "klass": "Digest",
        "queue": "reports",
        "state": "recur",
        "data": json.dumps({"period": "daily"}),
        "priority": 0,
        "retries": 3,
        "interval": 3600,
        "count": 4,
        "tags": {},
    }
    document.update(overrides)
    return json.dumps(document).encode("utf-8")


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Create a fake connection."""
    return FakeRedis()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Create a metrics collector on an isolated registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def dispatcher(fake_redis: FakeRedis, metrics: MetricsCollector) -> ScriptDispatcher:
    """Create a dispatcher with a fixed clock."""
    return ScriptDispatcher(
        fake_redis,
        SCRIPTS,
        clock=lambda: float(FIXED_NOW),
        metrics=metrics,
    )


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        redis_url="redis://localhost:6379/15",
        log_level="DEBUG",
        log_format="console",
        page_size=10,
    )


@pytest.fixture
def client(dispatcher: ScriptDispatcher, test_settings: Settings) -> Client:
    """Create a client with deterministic identifiers."""
    counter = itertools.count(1)
    return Client(
        dispatcher,
        script="qless",
        jid_factory=lambda: f"generated-{next(counter)}",
        settings=test_settings,
    )
