"""Periodic reconciliation trigger."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class ReconcileTrigger:
    """Fire ``engine.reconcile`` on a fixed interval.

    A firing that finds the previous run still in progress is skipped, not
    queued, so at most one reconciliation runs at a time.
    """

    def __init__(
        self,
        engine,
        interval_s: float,
        chunk_size: int = 100,
        after_run: Callable[[], Awaitable[None]] | None = None,
    ):
        self._engine = engine
        self._interval_s = interval_s
        self._chunk_size = chunk_size
        self._after_run = after_run
        self._task: asyncio.Task | None = None
        self._run: asyncio.Task | None = None
        self.skipped = 0

    @property
    def is_running(self) -> bool:
        return self._run is not None and not self._run.done()

    async def start(self) -> None:
        """Start the timer in background."""
        if self._interval_s <= 0:
            logger.info("ReconcileTrigger disabled (interval=%s)", self._interval_s)
            return
        self._task = asyncio.create_task(self._timer_loop(), name="reconcile-trigger")
        logger.info(
            "ReconcileTrigger started (interval=%ss, chunk=%d)",
            self._interval_s,
            self._chunk_size,
        )

    async def stop(self) -> None:
        """Stop the timer and any run still in flight."""
        for task in (self._task, self._run):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if self._task:
            logger.info("ReconcileTrigger stopped")
        self._task = None
        self._run = None

    def fire(self) -> bool:
        """Start a run unless one is in progress. Returns False when skipped."""
        if self.is_running:
            self.skipped += 1
            logger.warning("Previous reconciliation still running, skipping this firing")
            return False
        self._run = asyncio.create_task(self._run_once(), name="reconcile-run")
        return True

    async def wait_idle(self) -> None:
        """Wait for the current run, if any, to finish."""
        if self._run is not None:
            await asyncio.shield(self._run)

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            self.fire()

    async def _run_once(self) -> None:
        try:
            result = await self._engine.reconcile(self._chunk_size)
            logger.info(
                "Scheduled reconciliation: processed=%d added=%d errors=%d",
                result.total_processed,
                result.watchers_added,
                result.errors,
            )
            if self._after_run is not None:
                await self._after_run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled reconciliation failed")
