"""
Type definitions for the client.
Plain reply types that carry no client back-reference.
"""

from qless_client.types.events import JobEvent
from qless_client.types.job import Failure, History, StringList, TaggedReply

__all__ = [
    # Job types
    "History",
    "Failure",
    "StringList",
    "TaggedReply",
    # Event types
    "JobEvent",
]
