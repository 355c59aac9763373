"""
Call Duration Timer

Measures connected time with one-second resolution. Elapsed time comes
from a monotonic clock, so a late tick never skews the reading; the
ticker task only notifies listeners.
"""
import asyncio
import logging
import time
from typing import Callable, List, Optional

from peercall.config.constants import TIMER_RESOLUTION_SEC

logger = logging.getLogger(__name__)


def format_duration(seconds: int) -> str:
    """Format a live call duration as MM:SS."""
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins:02d}:{secs:02d}"


class DurationTimer:
    """
    Starts once, stops once.

    start() after the first call is a no-op, and stop() freezes the
    reading without clearing it.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        resolution: float = TIMER_RESOLUTION_SEC
    ):
        self._clock = clock
        self._resolution = resolution
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[int], None]] = []

    @property
    def started(self) -> bool:
        return self._started_at is not None

    @property
    def running(self) -> bool:
        return self.started and self._stopped_at is None

    @property
    def seconds(self) -> int:
        if self._started_at is None:
            return 0
        end = self._stopped_at if self._stopped_at is not None else self._clock()
        return int(end - self._started_at)

    def add_listener(self, listener: Callable[[int], None]) -> None:
        """Called with the elapsed seconds on every tick."""
        self._listeners.append(listener)

    def start(self) -> bool:
        """Start timing. Returns False if the timer was already started."""
        if self._started_at is not None:
            return False

        self._started_at = self._clock()
        self._task = asyncio.create_task(self._tick())
        logger.info("[Timer] Call timer started")
        return True

    def freeze(self) -> None:
        """Stop the reading from advancing. The ticker keeps running until stop()."""
        if self._started_at is not None and self._stopped_at is None:
            self._stopped_at = self._clock()
            logger.info(f"[Timer] Call timer stopped at {format_duration(self.seconds)}")

    def stop(self) -> None:
        self.freeze()
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._resolution)
            elapsed = self.seconds
            for listener in list(self._listeners):
                try:
                    listener(elapsed)
                except Exception as e:
                    logger.error(f"[Timer] Tick listener failed: {e}")
