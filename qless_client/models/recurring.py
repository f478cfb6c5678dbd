"""
Recurring job entity model.

A RecurringJob is a template; the runtime spawns a new Job from it every
`interval` seconds.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import ConfigDict, Field, ValidationInfo, field_validator

from qless_client.constants import Opcode
from qless_client.models.base import ClientBound
from qless_client.protocol.codec import encode_data, validate_data
from qless_client.types.job import StringList

logger = logging.getLogger(__name__)


def _set_priority(job: "RecurringJob", value: Any) -> None:
    job.priority = int(value)


def _set_retries(job: "RecurringJob", value: Any) -> None:
    job.retries = int(value)


def _set_interval(job: "RecurringJob", value: Any) -> None:
    job.interval = int(value)


def _set_data(job: "RecurringJob", value: Any) -> None:
    job.data = {} if value is None else value


def _set_klass(job: "RecurringJob", value: Any) -> None:
    job.klass = str(value)


def _set_queue(job: "RecurringJob", value: Any) -> None:
    job.queue = str(value)


def _raw(value: Any) -> Any:
    return value


# update() option -> (local setter, wire encoder)
_UPDATE_FIELDS: dict[str, tuple[Callable[["RecurringJob", Any], None], Callable[[Any], Any]]] = {
    "priority": (_set_priority, _raw),
    "retries": (_set_retries, _raw),
    "interval": (_set_interval, _raw),
    "data": (_set_data, encode_data),
    "klass": (_set_klass, _raw),
    "queue": (_set_queue, _raw),
}


class RecurringJob(ClientBound):
    """
    Template for periodically spawned jobs.

    Invariants:
    - interval is positive while the template is active
    - count never decreases
    """

    model_config = ConfigDict(extra="ignore")

    jid: str
    klass: str = ""
    queue: str = ""
    data: Any = Field(default_factory=dict)
    priority: int = 0
    retries: int = 0
    interval: int = 0
    count: int = 0
    tags: StringList = Field(default_factory=list)

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, value: Any, info: ValidationInfo) -> Any:
        return validate_data(value, info)

    def refresh(self) -> "RecurringJob":
        """Refetch this template and overwrite the local copy."""
        fresh = self.client.get_recurring_job(self.jid)
        for name in type(self).model_fields:
            if name == "count" and fresh.count < self.count:
                continue
            setattr(self, name, getattr(fresh, name))
        return self

    def update(self, options: Mapping[str, Any] | None = None, **kwargs: Any) -> bool:
        """
        Update template fields.

        Example: job.update({"priority": 5}) or job.update(priority=5)

        Accepted options (case-insensitive): priority, retries, interval,
        data, klass, queue. Anything else is ignored and never sent.

        Returns:
            True if an update was sent, False if no option was recognised.

        Raises:
            ValueError: If interval is not positive.
        """
        # Keys differing only in case name the same field; the last one wins
        merged: dict[str, Any] = {}
        for key, value in {**(options or {}), **kwargs}.items():
            name = key.lower()
            if name not in _UPDATE_FIELDS:
                logger.debug(
                    "Ignoring unknown recurring job option",
                    extra={"jid": self.jid, "option": key},
                )
                continue
            merged[name] = value

        args: list[Any] = []
        pending: list[tuple[Callable[["RecurringJob", Any], None], Any]] = []
        for name, value in merged.items():
            entry = _UPDATE_FIELDS[name]
            if name == "interval" and int(value) <= 0:
                raise ValueError(f"interval must be positive, got {value!r}")
            setter, encode = entry
            args.extend([name, encode(value)])
            pending.append((setter, value))

        if not args:
            return False

        self._invoke(Opcode.RECUR, "update", self.jid, *args)
        for setter, value in pending:
            setter(self, value)
        return True

    def cancel(self) -> None:
        """Turn recurrence off."""
        self._invoke(Opcode.RECUR, "off", self.jid)
        logger.info("Cancelled recurring job", extra={"jid": self.jid})

    def tag(self, *tags: str) -> None:
        """
        Add tags to the template.

        The local tag list is not updated; refresh() to observe the change.
        """
        self._invoke(Opcode.RECUR, "tag", self.jid, *tags)

    def untag(self, *tags: str) -> None:
        """
        Remove tags from the template.

        The local tag list is not updated; refresh() to observe the change.
        """
        self._invoke(Opcode.RECUR, "untag", self.jid, *tags)
