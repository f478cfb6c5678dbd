"""
Entity models.
Contains the job, recurring job and queue entities bound to a client.
"""

from qless_client.models.base import ClientBound
from qless_client.models.job import Job, TrackedReply
from qless_client.models.queue import Queue
from qless_client.models.recurring import RecurringJob

__all__ = [
    "ClientBound",
    "Job",
    "TrackedReply",
    "RecurringJob",
    "Queue",
]
