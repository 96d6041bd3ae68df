import asyncio
import itertools
import logging
from typing import Any, Callable, Literal, Self, TypeAlias
from urllib.parse import urlencode

import websockets
from concurrent_tasks import BackgroundTask
from pydantic import BaseModel

from radiokit_metadata.transport.message import (
    HEARTBEAT,
    PHOENIX_TOPIC,
    PHX_CLOSE,
    PHX_ERROR,
    PHX_JOIN,
    PHX_LEAVE,
    PHX_REPLY,
    Message,
    decode,
    encode,
)

logger = logging.getLogger(__name__)

VSN = "2.0.0"

ReplyStatus: TypeAlias = Literal["ok", "error", "timeout"]
ReplyHook: TypeAlias = Callable[[dict[str, Any]], None]
ChannelState: TypeAlias = Literal["closed", "joining", "joined", "leaving", "errored"]


class SocketConfig(BaseModel):
    endpoint: str = "wss://agenda.radiokitapp.org/api/stream/v1.0"
    # Seconds between heartbeats keeping the connection alive.
    heartbeat_interval: float = 30
    # Seconds to wait for opening the connection and for replies.
    timeout: float = 10


class Push:
    """Message pushed on a channel, resolved once by a reply or a timeout."""

    def __init__(
        self,
        channel: "PhoenixChannel",
        event: str,
        payload: dict[str, Any],
        timeout: float | None,
    ):
        self.channel = channel
        self.event = event
        self.payload = payload
        self.ref: str | None = None
        self._hooks: dict[str, list[ReplyHook]] = {}
        self._received: tuple[str, dict[str, Any]] | None = None
        self._timeout_task = BackgroundTask(self._timeout, timeout) if timeout else None

    def send(self) -> None:
        socket = self.channel.socket
        self.ref = socket.make_ref()
        if self.event == PHX_JOIN:
            self.channel.join_ref = self.ref
        socket.push(
            Message(
                topic=self.channel.topic,
                event=self.event,
                payload=self.payload,
                ref=self.ref,
                join_ref=self.channel.join_ref,
            ),
            reply_to=self,
        )
        if self._timeout_task:
            self._timeout_task.create()

    def receive(self, status: ReplyStatus, hook: ReplyHook) -> Self:
        if self._received:
            if self._received[0] == status:
                hook(self._received[1])
        else:
            self._hooks.setdefault(status, []).append(hook)
        return self

    def reply(self, payload: dict[str, Any]) -> None:
        self.trigger(payload.get("status", "error"), payload.get("response") or {})

    def trigger(self, status: str, response: dict[str, Any]) -> None:
        if self._received:
            return
        self._received = (status, response)
        if self._timeout_task and status != "timeout":
            self._timeout_task.cancel()
        for hook in self._hooks.pop(status, []):
            hook(response)
        self._hooks.clear()

    def cancel(self) -> None:
        """Stop waiting for a reply."""
        if self._timeout_task:
            self._timeout_task.cancel()
        if self.ref:
            self.channel.socket.forget(self.ref)

    async def _timeout(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        if self.ref:
            self.channel.socket.forget(self.ref)
        self.trigger("timeout", {})


class PhoenixChannel:
    """Topic multiplexed over a socket."""

    def __init__(
        self,
        socket: "PhoenixSocket",
        topic: str,
        params: dict[str, Any] | None = None,
        timeout: float = 10,
    ):
        self.socket = socket
        self.topic = topic
        self.state: ChannelState = "closed"
        self.join_ref: str | None = None
        self._params = params or {}
        self._timeout = timeout
        self._bindings: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self._joined_once = False
        self._join_push: Push | None = None

    def on(self, event: str, handler: Callable[[dict[str, Any]], None]) -> None:
        self._bindings.setdefault(event, []).append(handler)

    def join(self) -> Push:
        if self._joined_once:
            raise RuntimeError(
                f"tried to join {self.topic} multiple times, channels can only be joined once"
            )
        self._joined_once = True
        return self._send_join()

    def rejoin(self) -> None:
        """Join again after the socket reconnected."""
        if self.state == "joined":
            logger.debug("rejoining %s", self.topic)
            self._send_join()

    def leave(self) -> Push:
        logger.debug("leaving %s", self.topic)
        if self._join_push and self.state != "joined":
            self._join_push.cancel()
        self.state = "leaving"
        push = Push(self, PHX_LEAVE, {}, None)
        push.send()
        self.socket.remove(self)
        self.state = "closed"
        return push

    def dispatch(self, message: Message) -> None:
        if message.join_ref and self.join_ref and message.join_ref != self.join_ref:
            logger.debug("dropping outdated message: %r", message)
            return
        match message.event:
            case "phx_error":
                logger.warning("channel %s errored", self.topic)
                self.state = "errored"
            case "phx_close":
                logger.debug("channel %s closed", self.topic)
                self.state = "closed"
        for handler in list(self._bindings.get(message.event, [])):
            try:
                handler(message.payload)
            except Exception:
                logger.exception("%s handler failed on %s", message.event, self.topic)

    def _send_join(self) -> Push:
        self.state = "joining"
        push = Push(self, PHX_JOIN, self._params, self._timeout)
        push.receive("ok", self._joined)
        push.receive("error", self._join_failed)
        push.receive("timeout", self._join_failed)
        push.send()
        self._join_push = push
        return push

    def _joined(self, _: dict[str, Any]) -> None:
        self.state = "joined"

    def _join_failed(self, _: dict[str, Any]) -> None:
        self.state = "errored"


class PhoenixSocket:
    """Persistent connection to a Phoenix server.

    Messages pushed before the connection is open are queued and sent in order
    once it is. The connection is reopened when lost, joined channels are
    joined again.
    """

    def __init__(self, config: SocketConfig, params: dict[str, str] | None = None):
        self._config = config
        self.url = (
            f"{config.endpoint.rstrip('/')}/websocket?"
            f"{urlencode({**(params or {}), 'vsn': VSN})}"
        )
        self._task = BackgroundTask(self._run)
        self._outbox: asyncio.Queue[Message | None] = asyncio.Queue()
        self._channels: dict[str, PhoenixChannel] = {}
        self._replies: dict[str, Push] = {}
        self._error_handlers: list[Callable[[Exception], None]] = []
        self._close_handlers: list[Callable[[], None]] = []
        self._refs = itertools.count(1)
        self._websocket: Any = None
        self._running = False
        self._closing = False

    def on_error(self, handler: Callable[[Exception], None]) -> None:
        self._error_handlers.append(handler)

    def on_close(self, handler: Callable[[], None]) -> None:
        self._close_handlers.append(handler)

    def connect(self) -> None:
        if self._running:
            return
        self._running = True
        self._closing = False
        self._task.create()

    def disconnect(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._websocket is not None:
            # Let the writer flush what is queued, it then closes the connection.
            self._closing = True
            self._outbox.put_nowait(None)
        else:
            self._task.cancel()

    def channel(self, topic: str, params: dict[str, Any] | None = None) -> PhoenixChannel:
        channel = PhoenixChannel(self, topic, params, self._config.timeout)
        self._channels[topic] = channel
        return channel

    def remove(self, channel: PhoenixChannel) -> None:
        if self._channels.get(channel.topic) is channel:
            del self._channels[channel.topic]

    def make_ref(self) -> str:
        return str(next(self._refs))

    def push(self, message: Message, reply_to: Push | None = None) -> None:
        if reply_to and message.ref:
            self._replies[message.ref] = reply_to
        logger.debug("push %s %s", message.topic, message.event)
        self._outbox.put_nowait(message)

    def forget(self, ref: str) -> None:
        self._replies.pop(ref, None)

    async def _run(self) -> None:
        reconnecting = False
        try:
            async for websocket in websockets.connect(
                self.url,
                open_timeout=self._config.timeout,
            ):
                logger.debug("connected to %s", self._config.endpoint)
                if reconnecting:
                    for channel in list(self._channels.values()):
                        channel.rejoin()
                reconnecting = True
                await self._serve(websocket)
                if self._closing:
                    break
        except (OSError, websockets.InvalidHandshake, websockets.InvalidURI) as exc:
            logger.warning("could not connect to %s: %r", self._config.endpoint, exc)
            for handler in self._error_handlers:
                handler(exc)
        finally:
            self._running = False

    async def _serve(self, websocket) -> None:
        self._websocket = websocket
        writer = BackgroundTask(self._write, websocket)
        heartbeat = BackgroundTask(self._heartbeat)
        writer.create()
        heartbeat.create()
        try:
            async for data in websocket:
                self._receive(data)
        except websockets.ConnectionClosedError as exc:
            logger.warning("socket error: %r", exc)
            for error_handler in self._error_handlers:
                error_handler(exc)
        finally:
            self._websocket = None
            writer.cancel()
            heartbeat.cancel()
        logger.debug("disconnected from %s", self._config.endpoint)
        if not self._closing:
            for close_handler in self._close_handlers:
                close_handler()

    async def _write(self, websocket) -> None:
        while (message := await self._outbox.get()) is not None:
            try:
                await websocket.send(encode(message))
            except websockets.ConnectionClosed:
                logger.debug("connection closed, dropped: %r", message)
                return
        await websocket.close()

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self._config.heartbeat_interval)
            self.push(Message(PHOENIX_TOPIC, HEARTBEAT, ref=self.make_ref()))

    def _receive(self, data: str | bytes) -> None:
        if not (message := decode(data)):
            return
        if message.event == PHX_REPLY and (
            push := self._replies.pop(message.ref or "", None)
        ):
            push.reply(message.payload)
            return
        if channel := self._channels.get(message.topic):
            channel.dispatch(message)
        elif message.event in (PHX_ERROR, PHX_CLOSE):
            logger.debug("%s for unknown topic %s", message.event, message.topic)
