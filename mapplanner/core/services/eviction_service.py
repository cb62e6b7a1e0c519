"""
Idle-session eviction: every interval, drop sessions that have had no peers for the grace period.
"""
import asyncio
import logging
import time
from typing import Callable, List, Optional

from mapplanner.core.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)

EVICTION_INTERVAL = 30.0  # seconds
SESSION_GRACE = 300.0     # seconds


class EvictionService:
    """Periodic evict_idle loop bound to one registry."""

    def __init__(
        self,
        registry: SessionRegistry,
        interval: float = EVICTION_INTERVAL,
        grace: float = SESSION_GRACE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.interval = interval
        self.grace = grace
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def run_tick(self) -> List[str]:
        """Evict idle sessions once. Returns evicted ids."""
        try:
            return self.registry.evict_idle(self._clock(), self.grace)
        except Exception as e:
            logger.exception("Eviction tick failed: %s", e)
            return []

    async def run_loop(self) -> None:
        """Run eviction tick every `interval` seconds."""
        while True:
            await asyncio.sleep(self.interval)
            evicted = self.run_tick()
            if evicted:
                logger.info("Evicted %s idle session(s); %s remaining", len(evicted), len(self.registry))

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self.run_loop())
        logger.info("Eviction service started (tick every %ss, grace %ss)", self.interval, self.grace)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Eviction service stopped")
