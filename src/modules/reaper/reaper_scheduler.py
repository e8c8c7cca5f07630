# src/modules/reaper/reaper_scheduler.py
"""APScheduler job running the stale session reaper at a fixed interval."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .reaper_service import StaleSessionReaper

logger = logging.getLogger(__name__)


class ReaperScheduler:

    def __init__(self, reaper: StaleSessionReaper, interval_seconds: int = 60, enabled: bool = True):
        self.reaper = reaper
        self.interval_seconds = interval_seconds
        self.enabled = enabled

        self._scheduler: AsyncIOScheduler | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> None:
        """Start the scheduler."""
        if not self.enabled:
            logger.info("ReaperScheduler is disabled, skipping start")
            return

        if self._is_running:
            logger.warning("ReaperScheduler already running")
            return

        scheduler = AsyncIOScheduler()
        self._scheduler = scheduler

        scheduler.add_job(
            self._run_sweep,
            IntervalTrigger(seconds=self.interval_seconds),
            id="stale_session_reaper",
            replace_existing=True,
            name="Stale Clinician Session Reaper",
            max_instances=1,
            coalesce=True,
        )

        scheduler.start()
        self._is_running = True
        logger.info(f"ReaperScheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if self._scheduler and self._is_running:
            self._scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("ReaperScheduler stopped")

    async def _run_sweep(self) -> None:
        try:
            await self.reaper.sweep()
        except Exception as e:
            # Keep the job alive; the next tick retries
            logger.error(f"Error during stale session sweep: {e}", exc_info=True)
