"""
Script cache dispatcher.

Maps a script name to the content hash the runtime caches and runs
invocations with EVALSHA. When the runtime reports an unknown hash the
script body is loaded and the invocation retried exactly once.
"""

import hashlib
import logging
import threading
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import NoScriptError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from qless_client.constants import SPAN_INVOKE, SPAN_SCRIPT_LOAD
from qless_client.exceptions import (
    LeaseLostError,
    NotFoundError,
    ScriptError,
    ScriptUnavailableError,
    TransportError,
)
from qless_client.observability.metrics import MetricsCollector, get_metrics
from qless_client.observability.tracing import create_span
from qless_client.protocol.codec import encode_invocation

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_LEASE_LOST_MARKERS = ("another worker", "not currently running")
_NOT_FOUND_MARKERS = ("does not exist",)


def load_scripts(directory: str | Path) -> dict[str, str]:
    """
    Read every *.lua file in a directory.

    Args:
        directory: Directory holding the script library.

    Returns:
        Mapping of script name (file stem) to script body.

    Raises:
        FileNotFoundError: If the directory holds no scripts.
    """
    path = Path(directory)
    scripts = {
        script.stem: script.read_text(encoding="utf-8")
        for script in sorted(path.glob("*.lua"))
    }
    if not scripts:
        raise FileNotFoundError(f"no .lua scripts found in {path}")
    return scripts


def script_sha(body: str) -> str:
    """Content hash the runtime uses to cache a script body."""
    return hashlib.sha1(body.encode("utf-8")).hexdigest()


def classify_script_error(opcode: str, message: str) -> ScriptError:
    """
    Map a runtime error message onto the client's error taxonomy.

    The message is kept verbatim.
    """
    lowered = message.lower()
    if any(marker in lowered for marker in _LEASE_LOST_MARKERS):
        return LeaseLostError(opcode, message)
    if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
        return NotFoundError(opcode, message)
    return ScriptError(opcode, message)


class ScriptDispatcher:
    """
    Runs opcodes against cached server-side scripts.

    Thread-safe: the hash cache is guarded by a lock, and a per-script
    generation counter lets a caller whose attempt predates a completed
    reload retry without loading the body a second time.
    """

    def __init__(
        self,
        connection: Any,
        scripts: Mapping[str, str],
        clock: Clock = time.time,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            connection: A redis-py client (or anything with evalsha/script_load).
            scripts: Mapping of script name to script body.
            clock: Source of the timestamp sent with every invocation.
            metrics: Optional metrics collector. Uses the global one if not provided.
        """
        self._connection = connection
        self._scripts = dict(scripts)
        self._shas = {name: script_sha(body) for name, body in self._scripts.items()}
        self._generations = dict.fromkeys(self._scripts, 0)
        self._clock = clock
        self._metrics = metrics or get_metrics()
        self._lock = threading.Lock()

    @classmethod
    def from_directory(
        cls,
        connection: Any,
        directory: str | Path,
        **kwargs: Any,
    ) -> "ScriptDispatcher":
        """Create a dispatcher for every script in a directory."""
        return cls(connection, load_scripts(directory), **kwargs)

    @property
    def connection(self) -> Any:
        return self._connection

    def now(self) -> int:
        """Current timestamp in whole seconds, from the injected clock."""
        return int(self._clock())

    def sha(self, script: str) -> str:
        """Hash currently used for a script."""
        with self._lock:
            return self._shas[script]

    def preload(self) -> None:
        """Load every script body into the runtime cache."""
        with self._lock:
            for script in self._scripts:
                self._load(script)

    def invoke(self, script: str, opcode: str, *args: Any) -> Any:
        """
        Run one opcode through a script entry point.

        Args:
            script: Script name, e.g. "qless".
            opcode: Operation dispatched by the script.
            *args: Operation-specific positional arguments.

        Returns:
            The raw reply.

        Raises:
            TransportError: On connection failures and timeouts.
            ScriptUnavailableError: If the hash is unknown even after a reload.
            ScriptError: If the script rejects the invocation.
        """
        if script not in self._scripts:
            raise KeyError(f"unknown script {script!r}")

        encoded = encode_invocation(opcode, self.now(), *args)
        started = time.perf_counter()
        outcome = "ok"
        with create_span(SPAN_INVOKE, **{"qless.script": script, "qless.opcode": opcode}):
            try:
                return self._execute(script, opcode, encoded)
            except Exception as e:
                outcome = type(e).__name__
                raise
            finally:
                self._metrics.record_command(
                    opcode, outcome, time.perf_counter() - started
                )

    def _execute(self, script: str, opcode: str, encoded: tuple[Any, ...]) -> Any:
        with self._lock:
            generation = self._generations[script]
            sha = self._shas[script]

        try:
            return self._evalsha(sha, opcode, encoded)
        except NoScriptError:
            logger.info(
                "Script not cached, reloading",
                extra={"script": script, "sha": sha, "opcode": opcode},
            )

        sha = self._reload(script, generation)

        try:
            return self._evalsha(sha, opcode, encoded)
        except NoScriptError as e:
            logger.error(
                "Script still not cached after reload",
                extra={"script": script, "sha": sha, "opcode": opcode},
            )
            raise ScriptUnavailableError(script, sha) from e

    def _evalsha(self, sha: str, opcode: str, encoded: tuple[Any, ...]) -> Any:
        try:
            return self._connection.evalsha(sha, *encoded)
        except NoScriptError:
            raise
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise TransportError(str(e)) from e
        except ResponseError as e:
            raise classify_script_error(opcode, str(e)) from e

    def _reload(self, script: str, seen_generation: int) -> str:
        with self._lock:
            if self._generations[script] != seen_generation:
                # Another caller reloaded after our attempt
                return self._shas[script]
            return self._load(script)

    def _load(self, script: str) -> str:
        """Load a script body. Caller holds the lock."""
        with create_span(SPAN_SCRIPT_LOAD, **{"qless.script": script}):
            try:
                sha = self._connection.script_load(self._scripts[script])
            except (RedisConnectionError, RedisTimeoutError) as e:
                raise TransportError(str(e)) from e
            except ResponseError as e:
                raise ScriptError("script.load", str(e)) from e
        if isinstance(sha, bytes):
            sha = sha.decode("ascii")

        self._shas[script] = sha
        self._generations[script] += 1
        self._metrics.record_script_reload(script)
        logger.info("Loaded script", extra={"script": script, "sha": sha})
        return sha
