"""Scheduler service - runs the push sweep on a fixed interval.

The job is registered with max_instances=1 and coalesce=True: a sweep that
overruns its interval delays the next one instead of running alongside it,
and missed runs collapse into a single run.
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .push_dispatcher import PushDispatcher

logger = logging.getLogger(__name__)

# Scheduler tick interval in seconds
PUSH_TICK_SECONDS = 10

PUSH_JOB_ID = "push_pass_updates"


class SchedulerService:
    """Service for scheduling the periodic push sweep."""

    def __init__(self, dispatcher: PushDispatcher, interval_seconds: int = PUSH_TICK_SECONDS):
        self.dispatcher = dispatcher
        self.interval_seconds = interval_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._run_push_tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=PUSH_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.interval_seconds,
        )
        self.scheduler.start()
        self._running = True
        logger.info(f"Scheduler started (push tick={self.interval_seconds}s)")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def _run_push_tick(self):
        """Run one push sweep; errors are logged and the next tick tries again."""
        try:
            await self.dispatcher.run_tick()
        except Exception as e:
            logger.error(f"Error running push sweep: {e}")
