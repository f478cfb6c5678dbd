"""
Event type definitions for the runtime's pub/sub channels.
"""

import json
from typing import Any

from pydantic import BaseModel

from qless_client.constants import EVENT_CHANNEL_PREFIX


class JobEvent(BaseModel):
    """
    Event published by the script runtime when a job changes.

    Most channels carry just the jid; the log channel carries a JSON
    document which is kept in `data`.
    """

    channel: str
    jid: str | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def from_message(cls, channel: bytes | str, payload: bytes | str) -> "JobEvent":
        """Create an event from a raw pub/sub message."""
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        name = channel.removeprefix(EVENT_CHANNEL_PREFIX)

        try:
            decoded = json.loads(payload)
        except ValueError:
            decoded = None

        if isinstance(decoded, dict):
            return cls(channel=name, jid=decoded.get("jid"), data=decoded)
        return cls(channel=name, jid=payload)
