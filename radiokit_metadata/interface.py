from enum import Enum
from typing import Any, Callable, TypeAlias


class State(Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


# Keys are always strings, meaning of values depends on the channel.
# None means metadata was reset, e.g. a source with unknown metadata started to play.
MetadataMap: TypeAlias = dict[str, Any] | None

UpdateCallback: TypeAlias = Callable[[MetadataMap], None]

# Called with position and duration of the track, in milliseconds.
PositionCallback: TypeAlias = Callable[[int, int | float], None]

AccessTokenFunction: TypeAlias = Callable[[], str]
