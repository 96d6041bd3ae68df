import zenconfig
from pydantic import BaseModel, Field

from radiokit_metadata.transport.phoenix import SocketConfig


class ListenerConfig(BaseModel, zenconfig.Config):
    access_token: str = ""
    channel_id: str = ""
    # Milliseconds between position callbacks.
    position_interval: int = 1000
    socket: SocketConfig = SocketConfig()
    logging: dict = Field(
        default_factory=lambda: {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "formatter": {
                    "validate": True,
                    "format": "%(asctime)s %(levelname)-5.5s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "formatter",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {
                "level": "INFO",
                "handlers": ["console"],
            },
        }
    )
