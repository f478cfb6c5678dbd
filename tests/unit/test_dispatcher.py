"""
Unit tests for the script cache dispatcher.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from qless_client.exceptions import (
    LeaseLostError,
    NotFoundError,
    ScriptError,
    ScriptUnavailableError,
    TransportError,
)
from qless_client.observability.metrics import MetricsCollector
from qless_client.protocol.dispatcher import (
    ScriptDispatcher,
    classify_script_error,
    load_scripts,
    script_sha,
)
from tests.conftest import FIXED_NOW, SCRIPTS, FakeRedis


class TestScriptCache:
    """Tests for the reload-and-retry path."""

    def test_cold_cache_reloads_once(
        self,
        dispatcher: ScriptDispatcher,
        fake_redis: FakeRedis,
    ):
        """Test an unknown hash on first use triggers exactly one reload."""
        fake_redis.reply(b"ok")

        reply = dispatcher.invoke("qless", "queues")

        assert reply == b"ok"
        assert fake_redis.loads == [SCRIPTS["qless"]]
        assert len(fake_redis.evals) == 2

    def test_warm_cache_does_not_reload(
        self,
        dispatcher: ScriptDispatcher,
        fake_redis: FakeRedis,
    ):
        """Test a preloaded script is invoked without reloading."""
        dispatcher.preload()
        fake_redis.reply(b"a", b"b")

        dispatcher.invoke("qless", "queues")
        dispatcher.invoke("qless", "queues")

        assert len(fake_redis.loads) == 1
        assert len(fake_redis.evals) == 2

    def test_second_failure_propagates(
        self,
        dispatcher: ScriptDispatcher,
        fake_redis: FakeRedis,
    ):
        """Test a second unknown-hash failure raises without another reload."""
        fake_redis.forget_loads = True

        with pytest.raises(ScriptUnavailableError) as exc_info:
            dispatcher.invoke("qless", "queues")

        assert exc_info.value.script == "qless"
        assert len(fake_redis.loads) == 1
        assert len(fake_redis.evals) == 2

    def test_flushed_cache_recovers(
        self,
        dispatcher: ScriptDispatcher,
        fake_redis: FakeRedis,
    ):
        """Test a runtime cache flush between calls is recovered transparently."""
        dispatcher.preload()
        fake_redis.reply(b"first", b"second")
        assert dispatcher.invoke("qless", "queues") == b"first"

        fake_redis.cached.clear()

        assert dispatcher.invoke("qless", "queues") == b"second"
        assert len(fake_redis.loads) == 2

    def test_hash_is_content_addressed(self, dispatcher: ScriptDispatcher):
        """Test the cached hash is the sha1 of the script body."""
        assert dispatcher.sha("qless") == script_sha(SCRIPTS["qless"])

    def test_unknown_script_name(self, dispatcher: ScriptDispatcher):
        """Test invoking a script that was never registered."""
        with pytest.raises(KeyError):
            dispatcher.invoke("missing", "queues")

    def test_concurrent_callers_share_one_reload(
        self,
        dispatcher: ScriptDispatcher,
        fake_redis: FakeRedis,
    ):
        """Test callers failing together reload once and none is lost."""
        callers = 4
        barrier = threading.Barrier(callers, timeout=5)
        fake_redis.on_unknown_sha = barrier.wait
        fake_redis.reply(*[b"ok"] * callers)

        with ThreadPoolExecutor(max_workers=callers) as pool:
            results = list(
                pool.map(lambda _: dispatcher.invoke("qless", "queues"), range(callers))
            )

        assert results == [b"ok"] * callers
        assert len(fake_redis.loads) == 1
        assert len(fake_redis.evals) == callers * 2


class TestInvocation:
    """Tests for argument layout and error translation."""

    def test_clock_supplies_timestamp(
        self,
        dispatcher: ScriptDispatcher,
        fake_redis: FakeRedis,
    ):
        """Test the injected clock provides the timestamp."""
        dispatcher.preload()
        dispatcher.invoke("qless", "heartbeat", "jid-1", "worker-1")

        sha, numkeys, opcode, now, *args = fake_redis.evals[-1]
        assert sha == script_sha(SCRIPTS["qless"])
        assert numkeys == 0
        assert opcode == "heartbeat"
        assert now == FIXED_NOW
        assert args == ["jid-1", "worker-1"]

    @pytest.mark.parametrize("error", [RedisConnectionError("refused"), RedisTimeoutError("slow")])
    def test_transport_errors(
        self,
        dispatcher: ScriptDispatcher,
        fake_redis: FakeRedis,
        error,
    ):
        """Test connection failures surface as TransportError."""
        dispatcher.preload()
        fake_redis.reply(error)

        with pytest.raises(TransportError):
            dispatcher.invoke("qless", "queues")

    def test_script_error_is_verbatim(
        self,
        dispatcher: ScriptDispatcher,
        fake_redis: FakeRedis,
    ):
        """Test a runtime error keeps its message and is not retried."""
        message = "user_script:1: Heartbeat(): Job given out to another worker: worker-2"
        dispatcher.preload()
        fake_redis.reply(ResponseError(message), b"never")

        with pytest.raises(LeaseLostError) as exc_info:
            dispatcher.invoke("qless", "heartbeat", "jid-1", "worker-1")

        assert exc_info.value.message == message
        assert len(fake_redis.evals) == 1

    def test_metrics_recorded(
        self,
        dispatcher: ScriptDispatcher,
        fake_redis: FakeRedis,
        metrics: MetricsCollector,
    ):
        """Test invocations and reloads are counted."""
        fake_redis.reply(b"ok")

        dispatcher.invoke("qless", "queues")

        output = metrics.get_metrics().decode()
        assert 'qless_commands_total{opcode="queues",outcome="ok"} 1.0' in output
        assert 'qless_script_reloads_total{script="qless"} 1.0' in output


class TestClassifyScriptError:
    """Tests for runtime error classification."""

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("Complete(): Job has been handed out to another worker: w2", LeaseLostError),
            ("Heartbeat(): Job not currently running: waiting", LeaseLostError),
            ("Heartbeat(): Job does not exist", NotFoundError),
            ("Put(): Arg \"delay\" not a number: x", ScriptError),
        ],
    )
    def test_classification(self, message, expected):
        """Test messages map onto the error taxonomy."""
        error = classify_script_error("op", message)

        assert type(error) is expected
        assert error.message == message


class TestLoadScripts:
    """Tests for reading the script library."""

    def test_reads_lua_files(self, tmp_path):
        """Test every .lua file is keyed by its stem."""
        (tmp_path / "qless.lua").write_text("return 1")
        (tmp_path / "README.md").write_text("docs")

        assert load_scripts(tmp_path) == {"qless": "return 1"}

    def test_empty_directory(self, tmp_path):
        """Test a directory without scripts is an error."""
        with pytest.raises(FileNotFoundError):
            load_scripts(tmp_path)
