import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Self

from radiokit_metadata.credentials import CredentialSource, credential_source
from radiokit_metadata.errors import (
    InvalidArgument,
    InvalidTransition,
    SubscriptionFailure,
)
from radiokit_metadata.interface import (
    AccessTokenFunction,
    MetadataMap,
    PositionCallback,
    State,
    UpdateCallback,
)
from radiokit_metadata.position import PositionEstimator
from radiokit_metadata.subscription import Subscription
from radiokit_metadata.transport.phoenix import PhoenixSocket, SocketConfig

if TYPE_CHECKING:
    from radiokit_metadata.config import ListenerConfig

logger = logging.getLogger(__name__)


class MetadataListener:
    """Listen passively to changes of the current metadata of a broadcast channel.

    It can be used to implement "what's on air" functionality:
    - the update callback receives every metadata change,
    - the position callback receives the estimated position of the track
      every position interval, as long as the metadata holds a `duration`
      in milliseconds.

    A listener can be started and stopped any number of times, one attempt is
    made to connect on each start, failures are not retried.
    """

    def __init__(
        self,
        access_token: str | AccessTokenFunction | CredentialSource,
        channel_id: str,
        *,
        socket_config: SocketConfig | None = None,
    ):
        """:raises InvalidArgument: if arguments have an invalid type."""
        credential = credential_source(access_token)
        if not isinstance(channel_id, str):
            raise InvalidArgument("channel ID is not a string")
        self._credential = credential
        self._channel_id = channel_id
        self._socket_config = socket_config or SocketConfig()
        self._state = State.IDLE
        self._update_callback: UpdateCallback | None = None
        self._position_interval: int | float = 1000
        self._estimator = PositionEstimator()
        self._socket: PhoenixSocket | None = None
        self._subscription: Subscription | None = None

    @classmethod
    def from_config(cls, config: "ListenerConfig") -> Self:
        return cls(
            config.access_token,
            config.channel_id,
            socket_config=config.socket,
        ).set_position_interval(config.position_interval)

    async def __aenter__(self) -> Self:
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._state is State.RUNNING:
            await self.stop()

    def start(self) -> asyncio.Future[Self]:
        """Start listening to metadata updates.

        The returned future resolves with the listener once subscribed.
        :raises InvalidTransition: if not stopped.
        :raises InvalidArgument: if the access token function returns a non-string.
        The future fails with `SubscriptionFailure` if the subscription is refused or times out.
        """
        if self._state is not State.IDLE:
            raise InvalidTransition("attempt to start while not stopped")
        loop = asyncio.get_running_loop()
        access_token = self._credential.resolve()
        logger.debug("starting")
        self._state = State.STARTING
        self._socket = PhoenixSocket(
            self._socket_config,
            params={"accessToken": access_token},
        )
        self._socket.on_error(lambda exc: logger.warning("socket error: %r", exc))
        self._socket.on_close(lambda: logger.warning("socket closed"))
        self._socket.connect()
        self._subscription = Subscription(
            self._socket,
            self._channel_id,
            self._process_update,
        )
        joined = self._subscription.join(on_joined=self._joined)
        started = loop.create_task(self._wait_joined(joined))
        started.add_done_callback(self._start_done)
        return started

    def stop(self) -> asyncio.Future[Self]:
        """Stop listening to metadata updates.

        Nothing is awaited, the returned future is already resolved with the listener.
        :raises InvalidTransition: if not started.
        """
        if self._state is not State.RUNNING:
            raise InvalidTransition("attempt to stop when not started")
        stopped: asyncio.Future[Self] = asyncio.get_running_loop().create_future()
        logger.debug("stopping")
        self._state = State.STOPPING
        self._estimator.clear()
        self._release()
        self._state = State.IDLE
        logger.debug("stopped")
        stopped.set_result(self)
        return stopped

    def get_state(self) -> State:
        return self._state

    def set_update_callback(self, callback: UpdateCallback | None) -> Self:
        """Set the metadata update callback, None clears it.

        :raises InvalidArgument: if callback is neither None nor a function.
        """
        if callback is not None and not callable(callback):
            raise InvalidArgument("update callback is neither None nor a function")
        self._update_callback = callback
        return self

    def get_update_callback(self) -> UpdateCallback | None:
        return self._update_callback

    def set_position_callback(self, callback: PositionCallback | None) -> Self:
        """Set the position callback, None clears it and stops the running estimation.

        When set while started, it applies from the next received metadata.
        :raises InvalidArgument: if callback is neither None nor a function.
        """
        if callback is not None and not callable(callback):
            raise InvalidArgument("position callback is neither None nor a function")
        if callback is None:
            self._estimator.clear()
        self._estimator.callback = callback
        return self

    def get_position_callback(self) -> PositionCallback | None:
        return self._estimator.callback

    def set_position_interval(self, interval: int | float) -> Self:
        """Set the interval of the position callback, in milliseconds.

        When set while started, it applies from the next received metadata.
        :raises InvalidArgument: if interval is not a positive number.
        """
        if not isinstance(interval, int | float) or isinstance(interval, bool):
            raise InvalidArgument("position interval is not a number")
        if not interval > 0:
            raise InvalidArgument("position interval must be positive")
        self._position_interval = interval
        return self

    def get_position_interval(self) -> int | float:
        return self._position_interval

    def _joined(self) -> None:
        self._state = State.RUNNING
        logger.debug("started")

    async def _wait_joined(self, joined: asyncio.Future[None]) -> Self:
        try:
            await joined
        except SubscriptionFailure:
            self._abort_start()
            raise
        return self

    def _start_done(self, started: asyncio.Future[Self]) -> None:
        if started.cancelled():
            self._abort_start()

    def _abort_start(self) -> None:
        if self._state in (State.STARTING, State.RUNNING):
            logger.debug("aborting start")
            self._estimator.clear()
            self._release()
            self._state = State.IDLE

    def _process_update(self, metadata: MetadataMap, updated_at: Any) -> None:
        if self._update_callback:
            try:
                self._update_callback(metadata)
            except Exception:
                logger.exception("error in update callback")
        duration = metadata.get("duration") if isinstance(metadata, Mapping) else None
        self._estimator.arm(self._position_interval, duration, updated_at)

    def _release(self) -> None:
        if self._subscription:
            self._subscription.leave()
            self._subscription = None
        if self._socket:
            self._socket.disconnect()
            self._socket = None
