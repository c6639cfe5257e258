"""
SLA Scheduler - runs the SLA status sweep on a fixed interval.

Wraps an APScheduler AsyncIOScheduler owned by the application lifecycle.
A single job instance runs at a time, so a slow sweep is never overlapped
by the next one.
"""

from datetime import timedelta
from typing import Awaitable, Callable, Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "sla_sweep"


class SLAScheduler:

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self, job_func: Callable[[], Awaitable[None]]) -> None:
        """Start the scheduler. Must be called from a running event loop."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            seconds=self.interval_seconds,
            id=SWEEP_JOB_ID,
            name="SLA status sweep",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        self._running = True
        logger.info(f"SLA sweep scheduled every {timedelta(seconds=self.interval_seconds)}")

    def stop(self) -> None:
        if not self._running:
            return
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def job(self):
        if self._scheduler is None:
            return None
        return self._scheduler.get_job(SWEEP_JOB_ID)
