"""
Single-flight poll scheduler.

Fires a tick immediately and then every interval. A tick that arrives while
the previous cycle is still running is skipped, so cycles never overlap.
"""

import asyncio
import logging
from typing import Optional, Set

from ingestion.pipeline import PollCycleReport, ProposalIngestionPipeline

logger = logging.getLogger(__name__)


class PollScheduler:
    def __init__(self, pipeline: ProposalIngestionPipeline, interval_seconds: float = 60.0):
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds
        self.skipped_ticks = 0
        self.completed_cycles = 0
        self._cycle_lock = asyncio.Lock()
        self._stop = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    async def tick(self) -> Optional[PollCycleReport]:
        """Run one cycle unless one is already running."""
        if self._cycle_lock.locked():
            self.skipped_ticks += 1
            logger.warning("Previous poll cycle still running; skipping this tick")
            return None
        async with self._cycle_lock:
            try:
                report = await self.pipeline.poll_inbox()
            except Exception:
                logger.exception("Poll cycle raised unexpectedly")
                return None
            self.completed_cycles += 1
            return report

    def _launch_tick(self) -> None:
        task = asyncio.create_task(self.tick())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def run_forever(self) -> None:
        logger.info("Mail poller started (every %.0fs)", self.interval_seconds)
        while not self._stop.is_set():
            self._launch_tick()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Mail poller stopped")

    def start(self) -> asyncio.Task:
        if self.running:
            return self._loop_task
        self._stop.clear()
        self._loop_task = asyncio.create_task(self.run_forever())
        return self._loop_task

    async def stop(self) -> None:
        """Stop scheduling and wait for an in-flight cycle to finish."""
        self._stop.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        if self._ticks:
            await asyncio.gather(*list(self._ticks))
