import json
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

PHX_JOIN = "phx_join"
PHX_LEAVE = "phx_leave"
PHX_REPLY = "phx_reply"
PHX_ERROR = "phx_error"
PHX_CLOSE = "phx_close"
HEARTBEAT = "heartbeat"
PHOENIX_TOPIC = "phoenix"


@dataclass(frozen=True)
class Message:
    topic: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)
    ref: str | None = None
    join_ref: str | None = None


def encode(message: Message) -> str:
    return json.dumps(
        [message.join_ref, message.ref, message.topic, message.event, message.payload]
    )


def decode(data: str | bytes) -> Message | None:
    """Frames are JSON arrays: [join_ref, ref, topic, event, payload]."""
    try:
        join_ref, ref, topic, event, payload = json.loads(data)
    except (TypeError, ValueError):
        logger.warning("invalid message: %r", data)
        return None
    if not isinstance(topic, str) or not isinstance(event, str):
        logger.warning("invalid message: %r", data)
        return None
    return Message(
        topic=topic,
        event=event,
        payload=payload if isinstance(payload, dict) else {},
        ref=ref,
        join_ref=join_ref,
    )
