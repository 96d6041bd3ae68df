from radiokit_metadata.transport.message import Message
from radiokit_metadata.transport.phoenix import (
    PhoenixChannel,
    PhoenixSocket,
    Push,
    SocketConfig,
)

__all__ = ["Message", "PhoenixChannel", "PhoenixSocket", "Push", "SocketConfig"]
