"""
Pub/sub subscription to the events the script runtime publishes.

Independent of the command-dispatch path: redis-py hands the subscription
its own connection from the pool.
"""

import logging
from collections.abc import Iterable, Iterator
from typing import Any

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from qless_client.constants import EVENT_CHANNEL_PREFIX, EVENT_CHANNELS
from qless_client.exceptions import TransportError
from qless_client.types.events import JobEvent

logger = logging.getLogger(__name__)


class Events:
    """
    Subscription to the runtime's job event channels.

    Usage:
        for event in client.events.listen():
            print(event.channel, event.jid)
    """

    def __init__(self, connection: Any, channels: Iterable[str] = EVENT_CHANNELS):
        """
        Initialize the subscription. Nothing is subscribed until first use.

        Args:
            connection: A redis-py client.
            channels: Channel names without the "ql:" prefix.
        """
        self._pubsub = connection.pubsub(ignore_subscribe_messages=True)
        self._channels = [EVENT_CHANNEL_PREFIX + channel for channel in channels]
        self._subscribed = False

    @property
    def channels(self) -> list[str]:
        return list(self._channels)

    def subscribe(self) -> None:
        """Subscribe to every configured channel."""
        if self._subscribed:
            return
        try:
            self._pubsub.subscribe(*self._channels)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise TransportError(str(e)) from e
        self._subscribed = True
        logger.info("Subscribed to events", extra={"channels": self._channels})

    def get_event(self, timeout: float = 1.0) -> JobEvent | None:
        """
        Wait up to timeout seconds for the next event.

        Returns:
            The event, or None if nothing arrived.
        """
        self.subscribe()
        try:
            message = self._pubsub.get_message(timeout=timeout)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise TransportError(str(e)) from e
        if message is None or message.get("type") != "message":
            return None
        return JobEvent.from_message(message["channel"], message["data"])

    def listen(self) -> Iterator[JobEvent]:
        """Yield events as they arrive. Blocks."""
        self.subscribe()
        try:
            for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                yield JobEvent.from_message(message["channel"], message["data"])
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise TransportError(str(e)) from e

    def close(self) -> None:
        """Unsubscribe and release the connection."""
        self._pubsub.close()
        self._subscribed = False
