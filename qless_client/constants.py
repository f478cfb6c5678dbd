"""
Client constants.
Centralized location for states, opcodes and other values shared across the client.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Client-observed job states.

    State transitions (client operations):
    - (none) -> WAITING (move / put)
    - WAITING | SCHEDULED -> RUNNING (leased by the runtime, observed via pop)
    - RUNNING -> RUNNING (heartbeat)
    - RUNNING -> COMPLETED | WAITING (complete, optionally into a next queue)
    - RUNNING -> FAILED (fail)
    - RUNNING | WAITING -> CANCELLED (cancel)
    - RUNNING -> WAITING | FAILED (retry)
    """

    WAITING = "waiting"
    RUNNING = "running"
    STALLED = "stalled"
    SCHEDULED = "scheduled"
    DEPENDS = "depends"
    RECURRING = "recurring"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def _missing_(cls, value: object) -> "JobState | None":
        # The runtime spells the completed state "complete"
        if value == "complete":
            return cls.COMPLETED
        return None


class Operation(StrEnum):
    """Client operations that drive job state."""

    MOVE = "move"
    HEARTBEAT = "heartbeat"
    COMPLETE = "complete"
    FAIL = "fail"
    CANCEL = "cancel"
    RETRY = "retry"
    DEPEND = "depend"
    UNDEPEND = "undepend"
    TAG = "tag"
    UNTAG = "untag"
    TRACK = "track"
    UNTRACK = "untrack"


_ALL_STATES = frozenset(JobState)

# States from which each operation is legal
TRANSITIONS: dict[Operation, frozenset[JobState]] = {
    Operation.MOVE: _ALL_STATES,
    Operation.HEARTBEAT: frozenset({JobState.RUNNING}),
    Operation.COMPLETE: frozenset({JobState.RUNNING}),
    Operation.FAIL: frozenset({JobState.RUNNING}),
    Operation.CANCEL: frozenset({JobState.RUNNING, JobState.WAITING}),
    Operation.RETRY: frozenset({JobState.RUNNING}),
    Operation.DEPEND: _ALL_STATES,
    Operation.UNDEPEND: _ALL_STATES,
    Operation.TAG: _ALL_STATES,
    Operation.UNTAG: _ALL_STATES,
    Operation.TRACK: _ALL_STATES,
    Operation.UNTRACK: _ALL_STATES,
}

TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})


class Opcode(StrEnum):
    """Operations dispatched through the script entry point."""

    PUT = "put"
    POP = "pop"
    PEEK = "peek"
    GET = "get"
    FAIL = "fail"
    HEARTBEAT = "heartbeat"
    COMPLETE = "complete"
    CANCEL = "cancel"
    TRACK = "track"
    TAG = "tag"
    RETRY = "retry"
    DEPENDS = "depends"
    RECUR = "recur"
    CONFIG_GET = "config.get"
    CONFIG_SET = "config.set"
    CONFIG_UNSET = "config.unset"
    QUEUES = "queues"
    JOBS = "jobs"


# Leading argument of every invocation (EVALSHA key count), reserved for versioning
INVOCATION_QUALIFIER = 0

# Payload sent by the no-data variants of complete/fail
NO_DATA_SENTINEL = '{"finish":"yes"}'
EMPTY_PAYLOAD = "{}"

# Runtime pub/sub channels
EVENT_CHANNEL_PREFIX = "ql:"
EVENT_CHANNELS = (
    "log",
    "canceled",
    "completed",
    "failed",
    "popped",
    "stalled",
    "put",
    "track",
    "untrack",
)

# Metrics names
METRIC_COMMANDS = "qless_commands_total"
METRIC_COMMAND_LATENCY = "qless_command_latency_seconds"
METRIC_SCRIPT_RELOADS = "qless_script_reloads_total"

# Trace span names
SPAN_INVOKE = "qless.invoke"
SPAN_SCRIPT_LOAD = "qless.script_load"
