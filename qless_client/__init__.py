"""
qless client

A client for a Redis-backed job queue whose state transitions are
implemented by a server-side Lua script library.
"""

__version__ = "1.0.0"

from qless_client.client import Client, default_jid_factory
from qless_client.constants import JobState, Opcode, Operation
from qless_client.exceptions import (
    DecodeError,
    LeaseLostError,
    NotFoundError,
    QlessError,
    ScriptError,
    ScriptUnavailableError,
    TransportError,
    UnsupportedConfigTypeError,
)
from qless_client.models import Job, Queue, RecurringJob, TrackedReply
from qless_client.protocol import ScriptDispatcher
from qless_client.types import TaggedReply

__all__ = [
    "Client",
    "default_jid_factory",
    "ScriptDispatcher",
    "Job",
    "RecurringJob",
    "Queue",
    "TaggedReply",
    "TrackedReply",
    "JobState",
    "Opcode",
    "Operation",
    "QlessError",
    "TransportError",
    "DecodeError",
    "ScriptUnavailableError",
    "ScriptError",
    "LeaseLostError",
    "NotFoundError",
    "UnsupportedConfigTypeError",
]
