"""Background sweep of expired cache entries.

Runs independently of request traffic so entries nobody reads again still
get released.
"""

import asyncio
import contextlib

import structlog

from .service import MetricsCache


logger = structlog.get_logger(__name__)


class CacheSweeper:
    """Periodically calls ``MetricsCache.cleanup``."""

    def __init__(self, cache: MetricsCache, interval: float = 600.0) -> None:
        self.cache = cache
        self.interval = interval
        self._running = False
        self._task: asyncio.Task | None = None
        self._sweeps = 0
        self._removed = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the sweep loop."""
        if self._running:
            logger.warning("cache_sweeper_already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop(), name="cache_sweeper")
        logger.info("cache_sweeper_started", interval=self.interval)

    async def stop(self) -> None:
        """Stop the sweep loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        logger.info(
            "cache_sweeper_stopped",
            sweeps=self._sweeps,
            removed_total=self._removed,
        )

    def sweep(self) -> int:
        """Run one sweep now."""
        removed = self.cache.cleanup()
        self._sweeps += 1
        self._removed += removed
        return removed

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("cache_sweeper_error")
