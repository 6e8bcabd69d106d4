"""
Reconciliation Scheduler

Runs the reconciliation cycle periodically using APScheduler
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .reconciliation import ReconciliationEngine

JOB_ID = "reconciliation_cycle"


class ReconciliationScheduler:
    """Periodic trigger for ReconciliationEngine.run_cycle"""

    def __init__(
        self,
        engine: ReconciliationEngine,
        interval_seconds: int,
        logger: Optional[logging.Logger] = None
    ):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.logger = logger or logging.getLogger(__name__)
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start periodic reconciliation (no-op when the interval is 0)"""
        if self._running:
            self.logger.warning("Reconciliation scheduler already running")
            return
        if self.interval_seconds <= 0:
            self.logger.info("Periodic reconciliation disabled")
            return

        self.scheduler = AsyncIOScheduler()
        # One cycle at a time; missed runs collapse into one
        self.scheduler.add_job(
            self._run,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Device reconciliation",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        self._running = True
        self.logger.info(f"Reconciliation scheduler started (every {self.interval_seconds}s)")

    async def stop(self):
        if not self._running:
            return

        if self.scheduler:
            self.scheduler.shutdown(wait=False)
        self._running = False
        self.logger.info("Reconciliation scheduler stopped")

    async def _run(self):
        try:
            await self.engine.run_cycle()
        except Exception as e:
            self.logger.error(f"Reconciliation cycle failed: {e}", exc_info=True)
