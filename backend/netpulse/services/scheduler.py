"""Scheduler service - runs periodic jobs on the event loop.

Thin wrapper around APScheduler's AsyncIOScheduler. Every job is registered with
``max_instances=1`` so a slow run is never overlapped by the next tick; the
collector has its own single-flight guard on top of that.
"""
import logging
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class SchedulerService:
    """Owns one AsyncIOScheduler and the interval jobs registered on it."""

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[[], Awaitable[None]],
        seconds: float,
    ):
        """Register (or replace) a job that runs every ``seconds``."""
        if not self._running:
            self.start()

        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=seconds),
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=max(1, int(seconds)),
        )
        logger.info(f"Scheduled job {job_id} every {seconds}s")

    def remove_job(self, job_id: str):
        if self.scheduler and self.scheduler.get_job(job_id):
            self.scheduler.remove_job(job_id)
            logger.debug(f"Removed job {job_id}")

    def has_job(self, job_id: str) -> bool:
        return bool(self.scheduler and self.scheduler.get_job(job_id))
