import asyncio
import time
from typing import Callable, List, Optional

from constants import SWEEP_INTERVAL_SECONDS
from logging_config import get_logger

logger = get_logger(__name__)


class ExpirySweeper:
    """Background task that evicts rooms whose TTL has elapsed."""

    def __init__(self, registry, interval: float = SWEEP_INTERVAL_SECONDS, clock: Callable[[], float] = time.time):
        self.registry = registry
        self.interval = interval
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> List[str]:
        return self.registry.sweep_expired(self._clock())

    async def _sweep_loop(self):
        logger.info(f"Starting expiry sweeper (interval {self.interval}s)")
        while True:
            try:
                await asyncio.sleep(self.interval)
                self.run_once()
            except asyncio.CancelledError:
                logger.info("Expiry sweeper cancelled")
                raise
            except Exception as e:
                # A failed sweep must not stop the next one
                logger.error(f"Error sweeping expired rooms: {e}", exc_info=True)

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
