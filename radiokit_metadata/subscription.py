import asyncio
import logging
from typing import Any, Callable

from radiokit_metadata.errors import SubscriptionFailure
from radiokit_metadata.interface import MetadataMap
from radiokit_metadata.transport.phoenix import PhoenixChannel, PhoenixSocket

logger = logging.getLogger(__name__)

TOPIC_NAMESPACE = "broadcast:metadata"
UPDATE_EVENT = "update"


def topic_for(channel_id: str) -> str:
    return f"{TOPIC_NAMESPACE}:{channel_id}"


class Subscription:
    """Subscription to the metadata topic of a broadcast channel."""

    def __init__(
        self,
        socket: PhoenixSocket,
        channel_id: str,
        process: Callable[[MetadataMap, Any], None],
    ):
        self.topic = topic_for(channel_id)
        self._channel: PhoenixChannel | None = socket.channel(self.topic)
        self._process = process
        self._joined: asyncio.Future[None] | None = None

    def join(self, on_joined: Callable[[], None]) -> asyncio.Future[None]:
        """Join the topic, the future resolves once subscribed.

        `on_joined` is called as soon as the server accepts the join, before any
        update can be processed.
        """
        if not self._channel:
            raise RuntimeError(f"subscription to {self.topic} was left")
        joined: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._joined = joined
        channel = self._channel

        def _ok(response: dict[str, Any]) -> None:
            if joined.done():
                return
            logger.debug("subscribed to %s: %r", self.topic, response)
            on_joined()
            channel.on(UPDATE_EVENT, self._receive)
            joined.set_result(None)

        def _error(response: dict[str, Any]) -> None:
            reason = response.get("reason")
            logger.warning("failed to subscribe to %s: %s", self.topic, reason)
            if not joined.done():
                joined.set_exception(SubscriptionFailure(reason))

        def _timeout(_: dict[str, Any]) -> None:
            logger.warning("failed to subscribe to %s: timeout", self.topic)
            if not joined.done():
                joined.set_exception(SubscriptionFailure("timeout"))

        channel.join().receive("ok", _ok).receive("error", _error).receive(
            "timeout", _timeout
        )
        return joined

    def leave(self) -> None:
        if self._joined and not self._joined.done():
            self._joined.cancel()
        if self._channel:
            self._channel.leave()
            self._channel = None

    def _receive(self, payload: dict[str, Any]) -> None:
        if not self._channel:
            return
        logger.debug("update: %r", payload)
        self._process(payload.get("metadata"), payload.get("updated_at"))
