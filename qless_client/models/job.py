"""
Job entity model.

A Job is the client's projection of one job document held by the script
runtime. Every mutating method performs exactly one invocation and, once
the runtime accepts it, updates the local projection so the instance
presents the transition consistently. The runtime stays authoritative;
refresh() refetches.
"""

import logging
from typing import TYPE_CHECKING, Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationInfo,
    field_validator,
    model_validator,
)

from qless_client.constants import (
    NO_DATA_SENTINEL,
    TERMINAL_STATES,
    TRANSITIONS,
    JobState,
    Opcode,
    Operation,
)
from qless_client.models.base import ClientBound
from qless_client.protocol.codec import (
    decode_bool,
    decode_int,
    decode_json,
    decode_string,
    encode_data,
    validate_data,
)
from qless_client.types.job import Failure, History, StringList, lua_list

if TYPE_CHECKING:
    from qless_client.client import Client

logger = logging.getLogger(__name__)

_TAGS = TypeAdapter(StringList)


def _falsy_to(default: Any):
    """Lua false / nil arrive as false or null; map them to a default."""

    def validator(value: Any) -> Any:
        if value is None or value is False:
            return default
        return value

    return BeforeValidator(validator)


def _timestamp(reply: Any) -> int | None:
    """Heartbeat answers with the new expiry when the runtime reports one."""
    if isinstance(reply, int) and not isinstance(reply, bool):
        return reply
    if isinstance(reply, (bytes, str)):
        try:
            return int(float(reply))
        except ValueError:
            return None
    return None


class Job(ClientBound):
    """
    A unit of work.

    Invariants:
    - remaining never exceeds retries
    - a failed job carries a failure
    - local updates never present a job with dependencies as running
    """

    model_config = ConfigDict(extra="ignore")

    jid: str
    klass: str = ""
    state: JobState = JobState.WAITING
    queue: Annotated[str, _falsy_to("")] = ""
    worker: Annotated[str, _falsy_to("")] = ""
    tracked: bool = False
    priority: int = 0
    expires: Annotated[int, _falsy_to(0)] = 0
    retries: int = 5
    remaining: int = 5
    data: Any = Field(default_factory=dict)
    tags: StringList = Field(default_factory=list)
    history: Annotated[list[History], BeforeValidator(lua_list)] = Field(default_factory=list)
    failure: Failure | None = None
    dependents: StringList = Field(default_factory=list)
    dependencies: StringList = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, value: Any, info: ValidationInfo) -> Any:
        return validate_data(value, info)

    @field_validator("state", mode="before")
    @classmethod
    def _state(cls, value: Any) -> Any:
        if isinstance(value, str):
            return JobState(value)
        return value

    @field_validator("expires", mode="before")
    @classmethod
    def _whole_seconds(cls, value: Any) -> Any:
        if isinstance(value, float):
            return int(value)
        return value

    @field_validator("failure", mode="before")
    @classmethod
    def _empty_failure(cls, value: Any) -> Any:
        if not value:
            return None
        return value

    @model_validator(mode="before")
    @classmethod
    def _default_remaining(cls, values: Any) -> Any:
        # A job built with only retries starts with its full budget
        if isinstance(values, dict) and "retries" in values and "remaining" not in values:
            return {**values, "remaining": values["retries"]}
        return values

    @model_validator(mode="after")
    def _check_invariants(self) -> "Job":
        if self.remaining > self.retries:
            raise ValueError(
                f"remaining ({self.remaining}) exceeds retries ({self.retries})"
            )
        if self.state == JobState.FAILED and self.failure is None:
            raise ValueError("failed job has no failure detail")
        return self

    @classmethod
    def create(
        cls,
        client: "Client",
        klass: str,
        queue: str,
        data: Any = None,
        jid: str | None = None,
        **fields: Any,
    ) -> "Job":
        """
        Build a job locally, before it is enqueued with move().

        The jid comes from the client's identifier generator unless given.
        """
        job = cls(
            jid=jid or client.new_jid(),
            klass=klass,
            queue=queue,
            data=data,
            **fields,
        )
        job.attach(client)
        return job

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def can(self, operation: Operation | str) -> bool:
        """Whether the operation is legal from the locally known state."""
        return self.state in TRANSITIONS[Operation(operation)]

    def _payload(self, send_data: bool) -> str:
        return encode_data(self.data) if send_data else NO_DATA_SENTINEL

    def _release(self, state: JobState) -> None:
        self.state = state
        self.worker = ""
        self.expires = 0

    def refresh(self) -> "Job":
        """Refetch this job and overwrite the local projection."""
        fresh = self.client.get_job(self.jid)
        for name in type(self).model_fields:
            setattr(self, name, getattr(fresh, name))
        return self

    def move(self, queue: str, delay: int = 0) -> str:
        """
        Move this job from its current queue into another.

        Resets the lease and retry budget; the current payload is sent.

        Returns:
            The jid of the enqueued job.
        """
        reply = self._invoke(
            Opcode.PUT, queue, self.jid, self.klass, encode_data(self.data), delay
        )
        jid = decode_string(reply, Opcode.PUT)
        self.queue = queue
        self.remaining = self.retries
        self.failure = None
        self._release(JobState.SCHEDULED if delay > 0 else JobState.WAITING)
        logger.info("Moved job", extra={"jid": self.jid, "queue": queue})
        return jid

    def heartbeat(self, send_data: bool = True) -> bool:
        """
        Extend the lease on this job.

        Args:
            send_data: Also store the current payload. Pass False to skip
                re-sending large payloads.

        Returns:
            True if the lease was extended.

        Raises:
            LeaseLostError: If the job is leased to another worker or no
                longer running.
        """
        args: list[Any] = [self.jid, self.worker]
        if send_data:
            args.append(encode_data(self.data))
        reply = self._invoke(Opcode.HEARTBEAT, *args)
        extended = decode_bool(reply, Opcode.HEARTBEAT)
        expires = _timestamp(reply)
        # A bare true (1) is not an expiry
        if extended and expires is not None and expires > self.client.now():
            self.expires = expires
        return extended

    def complete(
        self,
        next_queue: str | None = None,
        delay: int = 0,
        send_data: bool = True,
    ) -> JobState:
        """
        Complete this job, optionally chaining it into another queue.

        Args:
            next_queue: Queue to re-enqueue the job into.
            delay: Seconds to delay the chained job. Only used with next_queue.
            send_data: Send the current payload; False sends the no-data
                sentinel instead.

        Returns:
            The state the runtime moved the job into.
        """
        args: list[Any] = [self.jid, self.worker, self.queue, self._payload(send_data)]
        if next_queue:
            args.extend(["next", next_queue])
            if delay:
                args.extend(["delay", delay])
        reply = self._invoke(Opcode.COMPLETE, *args)
        state = JobState(decode_string(reply, Opcode.COMPLETE))
        if next_queue:
            self.queue = next_queue
        self._release(state)
        logger.info("Completed job", extra={"jid": self.jid, "state": str(state)})
        return state

    def fail(self, group: str, message: str, send_data: bool = True) -> bool:
        """
        Fail this job.

        Args:
            group: Failure group, usually the exception type.
            message: Failure message, usually the traceback.
            send_data: Send the current payload; False sends the no-data
                sentinel instead.

        Returns:
            True if the runtime recorded the failure.
        """
        worker = self.worker
        reply = self._invoke(
            Opcode.FAIL, self.jid, worker, group, message, self._payload(send_data)
        )
        failed = decode_bool(reply, Opcode.FAIL)
        if failed:
            self.failure = Failure(
                group=group,
                message=message,
                when=self.client.now(),
                worker=worker,
            )
            self.remaining = max(min(self.remaining, self.retries) - 1, 0)
            self._release(JobState.FAILED)
            logger.info("Failed job", extra={"jid": self.jid, "group": group})
        return failed

    def cancel(self) -> None:
        """Cancel this job. Irreversible; the runtime drops it and its history."""
        self._invoke(Opcode.CANCEL, self.jid)
        self._release(JobState.CANCELLED)
        logger.info("Cancelled job", extra={"jid": self.jid})

    def retry(self, delay: int = 0) -> int:
        """
        Return this job to its queue for another attempt.

        Returns:
            Attempts remaining; negative when the job has exhausted its
            retries and failed permanently.
        """
        reply = self._invoke(Opcode.RETRY, self.jid, self.queue, self.worker, delay)
        remaining = decode_int(reply, Opcode.RETRY)
        if remaining < 0:
            self.failure = Failure(
                group=f"failed-retries-{self.queue}",
                message=f"Job exhausted retries in queue {self.queue!r}",
                when=self.client.now(),
                worker=self.worker,
            )
            self.remaining = 0
            self._release(JobState.FAILED)
        else:
            self.remaining = min(remaining, self.retries)
            self._release(JobState.SCHEDULED if delay > 0 else JobState.WAITING)
        return remaining

    def track(self) -> bool:
        """Start tracking this job."""
        tracked = decode_bool(self._invoke(Opcode.TRACK, "track", self.jid), Opcode.TRACK)
        self.tracked = self.tracked or tracked
        return tracked

    def untrack(self) -> bool:
        """Stop tracking this job."""
        untracked = decode_bool(
            self._invoke(Opcode.TRACK, "untrack", self.jid), Opcode.TRACK
        )
        if untracked:
            self.tracked = False
        return untracked

    def tag(self, *tags: str) -> list[str]:
        """Add tags; returns the job's tags as the runtime now holds them."""
        reply = self._invoke(Opcode.TAG, "add", self.jid, *tags)
        self.tags = decode_json(reply, Opcode.TAG, _TAGS)
        return self.tags

    def untag(self, *tags: str) -> list[str]:
        """Remove tags; returns the job's tags as the runtime now holds them."""
        reply = self._invoke(Opcode.TAG, "remove", self.jid, *tags)
        self.tags = decode_json(reply, Opcode.TAG, _TAGS)
        return self.tags

    def depend(self, *jids: str) -> bool:
        """Make this job wait until the given jobs complete."""
        reply = self._invoke(Opcode.DEPENDS, self.jid, "on", *jids)
        added = decode_bool(reply, Opcode.DEPENDS)
        if added:
            for jid in jids:
                if jid not in self.dependencies:
                    self.dependencies.append(jid)
            if self.dependencies and not self.is_terminal:
                self.state = JobState.DEPENDS
        return added

    def undepend(self, *jids: str, all: bool = False) -> bool:
        """
        Remove dependency edges.

        Args:
            *jids: Dependencies to remove.
            all: Remove every dependency instead.
        """
        targets = ("all",) if all else jids
        reply = self._invoke(Opcode.DEPENDS, self.jid, "off", *targets)
        removed = decode_bool(reply, Opcode.DEPENDS)
        if removed:
            if all:
                self.dependencies = []
            else:
                self.dependencies = [d for d in self.dependencies if d not in jids]
            if not self.dependencies and self.state == JobState.DEPENDS:
                self.state = JobState.WAITING
        return removed


JOB_LIST = TypeAdapter(Annotated[list[Job], BeforeValidator(lua_list)])


class TrackedReply(BaseModel):
    """Tracked jobs, plus the jids of tracked jobs that no longer exist."""

    jobs: Annotated[list[Job], BeforeValidator(lua_list)] = Field(default_factory=list)
    expired: StringList = Field(default_factory=list)
