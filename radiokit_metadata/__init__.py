from radiokit_metadata.errors import (
    InvalidArgument,
    InvalidTransition,
    ListenerError,
    SubscriptionFailure,
)
from radiokit_metadata.interface import MetadataMap, State
from radiokit_metadata.listener import MetadataListener

__all__ = [
    "InvalidArgument",
    "InvalidTransition",
    "ListenerError",
    "MetadataListener",
    "MetadataMap",
    "State",
    "SubscriptionFailure",
]
