"""
Queue entity model.
"""

import json
import logging
from typing import Any

from pydantic import ConfigDict

from qless_client.constants import Opcode
from qless_client.models.base import ClientBound
from qless_client.models.job import JOB_LIST, Job
from qless_client.protocol.codec import decode_json, decode_string, encode_data

logger = logging.getLogger(__name__)


def _options(
    priority: int | None,
    tags: list[str] | None,
    retries: int | None,
    depends: list[str] | None = None,
) -> list[Any]:
    """Optional keyword pairs accepted by put and recur."""
    args: list[Any] = []
    if priority is not None:
        args.extend(["priority", priority])
    if tags is not None:
        args.extend(["tags", json.dumps(list(tags))])
    if retries is not None:
        args.extend(["retries", retries])
    if depends is not None:
        args.extend(["depends", json.dumps(list(depends))])
    return args


class Queue(ClientBound):
    """
    A named queue, with the job counts the runtime last reported.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    waiting: int = 0
    running: int = 0
    scheduled: int = 0
    stalled: int = 0
    depends: int = 0
    recurring: int = 0

    def put(
        self,
        klass: str,
        data: Any = None,
        jid: str | None = None,
        delay: int = 0,
        priority: int | None = None,
        tags: list[str] | None = None,
        retries: int | None = None,
        depends: list[str] | None = None,
    ) -> str:
        """
        Enqueue a job.

        Args:
            klass: Work-type name.
            data: JSON-serialisable payload.
            jid: Identifier to use. Generated by the client if not given.
            delay: Seconds before the job becomes eligible.
            priority: Higher dequeues first.
            tags: Tags to attach.
            retries: Maximum retries.
            depends: Jids that must complete before this job can run.

        Returns:
            The jid of the enqueued job.
        """
        jid = jid or self.client.new_jid()
        reply = self._invoke(
            Opcode.PUT,
            self.name,
            jid,
            klass,
            encode_data(data),
            delay,
            *_options(priority, tags, retries, depends),
        )
        logger.info("Put job", extra={"jid": jid, "queue": self.name})
        return decode_string(reply, Opcode.PUT)

    def pop(self, worker: str, count: int = 1) -> list[Job]:
        """Lease up to count jobs to a worker."""
        reply = self._invoke(Opcode.POP, self.name, worker, count)
        jobs = decode_json(reply, Opcode.POP, JOB_LIST)
        for job in jobs:
            job.attach(self.client)
        return jobs

    def peek(self, count: int = 1) -> list[Job]:
        """Look at the next jobs without leasing them."""
        reply = self._invoke(Opcode.PEEK, self.name, count)
        jobs = decode_json(reply, Opcode.PEEK, JOB_LIST)
        for job in jobs:
            job.attach(self.client)
        return jobs

    def recur(
        self,
        klass: str,
        data: Any,
        interval: int,
        jid: str | None = None,
        offset: int = 0,
        priority: int | None = None,
        tags: list[str] | None = None,
        retries: int | None = None,
    ) -> str:
        """
        Create a recurring job spawning into this queue every interval seconds.

        Returns:
            The jid of the recurring job.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval!r}")
        jid = jid or self.client.new_jid()
        reply = self._invoke(
            Opcode.RECUR,
            "on",
            self.name,
            jid,
            klass,
            encode_data(data),
            "interval",
            interval,
            offset,
            *_options(priority, tags, retries),
        )
        return decode_string(reply, Opcode.RECUR)

    def counts(self) -> "Queue":
        """Refetch the job counts for this queue."""
        fresh = self.client.queues(self.name)
        for name in type(self).model_fields:
            setattr(self, name, getattr(fresh, name))
        return self

    @property
    def total(self) -> int:
        """Jobs in the queue, excluding recurring templates."""
        return self.waiting + self.running + self.scheduled + self.stalled + self.depends
