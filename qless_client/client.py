"""
Client facade.

Resolves queues, jobs and recurring jobs, and exposes tracking, tagging
and runtime configuration. One Client owns one connection and one
dispatcher; give each worker thread its own Client.
"""

import logging
import time
from collections.abc import Callable
from typing import Annotated, Any
from uuid import uuid4

import redis
from pydantic import BeforeValidator, TypeAdapter

from qless_client.config import Settings, get_settings
from qless_client.constants import Opcode
from qless_client.events import Events
from qless_client.exceptions import NotFoundError
from qless_client.models.job import Job, TrackedReply
from qless_client.models.queue import Queue
from qless_client.models.recurring import RecurringJob
from qless_client.observability.metrics import MetricsCollector
from qless_client.observability.tracing import instrument_redis, setup_tracing
from qless_client.protocol.codec import (
    decode_bool,
    decode_config_value,
    decode_json,
    decode_string,
)
from qless_client.protocol.dispatcher import Clock, ScriptDispatcher
from qless_client.types.job import TaggedReply, lua_list

logger = logging.getLogger(__name__)

JidFactory = Callable[[], str]

_QUEUE_LIST = TypeAdapter(Annotated[list[Queue], BeforeValidator(lua_list)])


def default_jid_factory() -> str:
    """Random 32-character hex identifier."""
    return uuid4().hex


class Client:
    """
    Entry point for talking to the queue.

    Usage:
        with Client.connect() as client:
            jid = client.queue("emails").put("SendEmail", {"to": "a@b.c"})
            job = client.get_job(jid)
    """

    def __init__(
        self,
        dispatcher: ScriptDispatcher,
        script: str | None = None,
        jid_factory: JidFactory = default_jid_factory,
        settings: Settings | None = None,
    ):
        """
        Initialize the client.

        Args:
            dispatcher: Dispatcher that runs invocations against the runtime.
            script: Name of the script entry point. Defaults to settings.script_name.
            jid_factory: Generator for job identifiers.
            settings: Optional settings. Uses the cached settings if not provided.
        """
        self._settings = settings or get_settings()
        self._dispatcher = dispatcher
        self._script = script or self._settings.script_name
        self._jid_factory = jid_factory
        self._events: Events | None = None

    @classmethod
    def connect(
        cls,
        settings: Settings | None = None,
        clock: Clock = time.time,
        jid_factory: JidFactory = default_jid_factory,
        metrics: MetricsCollector | None = None,
    ) -> "Client":
        """
        Connect to redis, load the script library and preload it.

        Args:
            settings: Optional settings. Uses the cached settings if not provided.
            clock: Source of the timestamp sent with every invocation.
            jid_factory: Generator for job identifiers.
            metrics: Optional metrics collector.

        Returns:
            A connected client.
        """
        settings = settings or get_settings()

        if settings.tracing_enabled:
            setup_tracing(settings)
            instrument_redis()

        connection = redis.Redis.from_url(
            settings.redis_url,
            socket_timeout=settings.redis_socket_timeout,
            socket_connect_timeout=settings.redis_socket_connect_timeout,
            decode_responses=False,
        )
        try:
            dispatcher = ScriptDispatcher.from_directory(
                connection,
                settings.script_dir,
                clock=clock,
                metrics=metrics,
            )
            dispatcher.preload()
        except Exception:
            connection.close()
            raise

        logger.info(
            "Client connected",
            extra={"redis_url": settings.redis_url, "script_dir": settings.script_dir},
        )
        return cls(
            dispatcher,
            script=settings.script_name,
            jid_factory=jid_factory,
            settings=settings,
        )

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the event subscription and the connection."""
        if self._events is not None:
            self._events.close()
            self._events = None
        self._dispatcher.connection.close()

    @property
    def dispatcher(self) -> ScriptDispatcher:
        return self._dispatcher

    @property
    def events(self) -> Events:
        """Event subscription, created on first access."""
        if self._events is None:
            self._events = Events(self._dispatcher.connection)
        return self._events

    def invoke(self, opcode: str, *args: Any) -> Any:
        """Run one opcode through the script entry point and return the raw reply."""
        return self._dispatcher.invoke(self._script, opcode, *args)

    def now(self) -> int:
        """Current timestamp from the dispatcher's clock."""
        return self._dispatcher.now()

    def new_jid(self) -> str:
        """Generate a job identifier."""
        return self._jid_factory()

    def queue(self, name: str) -> Queue:
        """Handle for a queue, without fetching its counts."""
        queue = Queue(name=name)
        queue.attach(self)
        return queue

    def queues(self, name: str = "") -> list[Queue] | Queue:
        """
        Fetch queue counts.

        Args:
            name: Queue name. When empty, every queue is returned.

        Returns:
            A single Queue when a name is given, otherwise a list.
        """
        if name:
            reply = self.invoke(Opcode.QUEUES, name)
            queue = decode_json(reply, Opcode.QUEUES, Queue)
            queue.attach(self)
            return queue

        reply = self.invoke(Opcode.QUEUES)
        queues = decode_json(reply, Opcode.QUEUES, _QUEUE_LIST)
        for queue in queues:
            queue.attach(self)
        return queues

    def get(self, jid: str) -> Job | RecurringJob:
        """
        Resolve a jid to a job, falling back to a recurring job.

        Raises:
            NotFoundError: If neither exists.
        """
        try:
            return self.get_job(jid)
        except NotFoundError:
            logger.debug("No job, trying recurring job", extra={"jid": jid})
        return self.get_recurring_job(jid)

    def get_job(self, jid: str) -> Job:
        """
        Fetch a job.

        Raises:
            NotFoundError: If the job does not exist.
        """
        job = decode_json(self.invoke(Opcode.GET, jid), Opcode.GET, Job)
        job.attach(self)
        return job

    def get_recurring_job(self, jid: str) -> RecurringJob:
        """
        Fetch a recurring job.

        Raises:
            NotFoundError: If the recurring job does not exist.
        """
        reply = self.invoke(Opcode.RECUR, "get", jid)
        job = decode_json(reply, Opcode.RECUR, RecurringJob)
        job.attach(self)
        return job

    def track(self, jid: str) -> bool:
        """Track a job."""
        return decode_bool(self.invoke(Opcode.TRACK, "track", jid), Opcode.TRACK)

    def untrack(self, jid: str) -> bool:
        """Stop tracking a job."""
        return decode_bool(self.invoke(Opcode.TRACK, "untrack", jid), Opcode.TRACK)

    def tracked(self) -> TrackedReply:
        """All tracked jobs, plus the jids of tracked jobs that expired."""
        reply = decode_json(self.invoke(Opcode.TRACK), Opcode.TRACK, TrackedReply)
        for job in reply.jobs:
            job.attach(self)
        return reply

    def completed(self, offset: int = 0, count: int | None = None) -> list[str]:
        """Jids of recently completed jobs."""
        count = count if count is not None else self._settings.page_size
        reply = self.invoke(Opcode.JOBS, "complete", offset, count)
        if not reply:
            return []
        return [decode_string(jid, Opcode.JOBS) for jid in reply]

    def tagged(self, tag: str, offset: int = 0, count: int | None = None) -> TaggedReply:
        """One page of jids carrying a tag."""
        count = count if count is not None else self._settings.page_size
        reply = self.invoke(Opcode.TAG, "get", tag, offset, count)
        return decode_json(reply, Opcode.TAG, TaggedReply)

    def get_config(self, option: str) -> str:
        """
        Read a runtime config value as text.

        Raises:
            UnsupportedConfigTypeError: If the runtime answers with anything
                other than a byte string or an integer, nil included.
        """
        reply = self.invoke(Opcode.CONFIG_GET, option)
        return decode_config_value(reply, option)

    def set_config(self, option: str, value: Any) -> None:
        """Set a runtime config value."""
        self.invoke(Opcode.CONFIG_SET, option, value)
        logger.info("Set config", extra={"option": option})

    def unset_config(self, option: str) -> None:
        """Reset a runtime config value to its default."""
        self.invoke(Opcode.CONFIG_UNSET, option)
