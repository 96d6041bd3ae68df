import asyncio
import logging
import math
import time
from datetime import datetime, timezone
from typing import Any

from concurrent_tasks import BackgroundTask

from radiokit_metadata.interface import PositionCallback

logger = logging.getLogger(__name__)


def _now() -> int:
    return round(time.time() * 1000)


def parse_timestamp(value: Any) -> int | None:
    """Convert an update timestamp to epoch milliseconds.

    Numbers are already epoch milliseconds, strings are ISO 8601 dates.
    """
    match value:
        case bool():
            return None
        case int() | float() if math.isfinite(value):
            return round(value)
        case str():
            try:
                date = datetime.fromisoformat(value)
            except ValueError:
                return None
            if date.tzinfo is None:
                date = date.replace(tzinfo=timezone.utc)
            return round(date.timestamp() * 1000)
    return None


def _is_duration(value: Any) -> bool:
    return (
        isinstance(value, int | float)
        and not isinstance(value, bool)
        and math.isfinite(value)
        and bool(value)
    )


class PositionEstimator:
    """Estimate the position of the current track between metadata updates.

    Metadata is only pushed when it changes, the position is extrapolated
    locally from the update timestamp. It drifts if clocks disagree.
    """

    def __init__(self) -> None:
        self.callback: PositionCallback | None = None
        self._task: BackgroundTask | None = None

    @property
    def active(self) -> bool:
        return self._task is not None

    def arm(self, interval: int | float, duration: Any, updated_at: Any) -> bool:
        """Start calling back every `interval` milliseconds, replacing any previous timer."""
        self.clear()
        if not self.callback or not _is_duration(duration):
            return False
        if (reference := parse_timestamp(updated_at)) is None:
            logger.warning("invalid update timestamp: %r", updated_at)
            return False
        logger.debug("setting position interval")
        self._task = BackgroundTask(self._run, interval / 1000, duration, reference)
        self._task.create()
        return True

    def clear(self) -> None:
        if self._task:
            logger.debug("clearing position interval")
            self._task.cancel()
            self._task = None

    async def _run(self, interval: float, duration: int | float, reference: int) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        ticks = 0
        while True:
            ticks += 1
            await asyncio.sleep(max(0.0, start + ticks * interval - loop.time()))
            position = _now() - reference
            if position > duration:
                logger.debug("position %s > duration %s", position, duration)
                self._task = None
                return
            if self.callback:
                try:
                    self.callback(position, duration)
                except Exception:
                    logger.exception("error in position callback")
