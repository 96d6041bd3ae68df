import asyncio
import logging.config
import sys

from concurrent_tasks import LoopExceptionHandler

from radiokit_metadata.config import ListenerConfig
from radiokit_metadata.interface import MetadataMap
from radiokit_metadata.listener import MetadataListener

logger = logging.getLogger("radiokit_metadata")


def _format(milliseconds: int | float) -> str:
    minutes, seconds = divmod(int(milliseconds) // 1000, 60)
    return f"{minutes}:{seconds:02d}"


def _log_update(metadata: MetadataMap) -> None:
    logger.info("now playing: %r", metadata)


def _log_position(position: int, duration: int | float) -> None:
    logger.info("position: %s / %s", _format(position), _format(duration))


async def listen(cfg: ListenerConfig) -> None:
    stop_event = asyncio.Event()

    async def stop() -> None:
        logger.debug("stopping...")
        stop_event.set()

    listener = (
        MetadataListener.from_config(cfg)
        .set_update_callback(_log_update)
        .set_position_callback(_log_position)
    )
    async with LoopExceptionHandler(stop_func=stop):
        async with listener:
            logger.info("listening to %s", cfg.channel_id)
            await stop_event.wait()
    logger.debug("stopped")


def run() -> None:
    cfg = ListenerConfig.load()
    if "--init-config" in sys.argv:
        cfg.save()
        sys.exit(0)

    logging.config.dictConfig(cfg.logging)
    if "-v" in sys.argv:
        logging.getLogger().setLevel(logging.DEBUG)

    asyncio.run(listen(cfg))


if __name__ == "__main__":
    run()
