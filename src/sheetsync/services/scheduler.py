"""
In-process cron scheduler.

Each job is an asyncio task that sleeps until the next fire time of its
expression and then calls its callback. Callbacks are expected to return
quickly (enqueue work, never run it).
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from .cron import next_fire_time, parse_cron

logger = logging.getLogger(__name__)


class CronScheduler:
    """Fires callbacks on cron schedules until stopped."""

    def __init__(
        self,
        timezone: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the scheduler.

        Args:
            timezone: IANA zone the expressions are evaluated in (local time when None)
            sleep: Coroutine used to wait between fires
            clock: Returns the current aware datetime
        """
        self.timezone = timezone
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now().astimezone())
        self._jobs: Dict[str, tuple] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self.next_fire_times: Dict[str, datetime] = {}

    def add_job(self, job_id: str, expr: str, callback: Callable[[], None]) -> None:
        """
        Register a job. Must be called before start().

        Raises:
            CronParseError: If the expression is invalid
        """
        parse_cron(expr)
        self._jobs[job_id] = (expr, callback)
        logger.info(f"Scheduled job {job_id} with cron {expr!r}")

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        for job_id, (expr, callback) in self._jobs.items():
            if job_id not in self._tasks:
                self._tasks[job_id] = asyncio.create_task(self._run_job(job_id, expr, callback))
        logger.info(f"Scheduler started with {len(self._tasks)} jobs")

    async def stop(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self.next_fire_times.clear()
        logger.info("Scheduler stopped")

    async def _run_job(self, job_id: str, expr: str, callback: Callable[[], None]) -> None:
        last_fire: Optional[datetime] = None
        while True:
            now = self._clock()
            # An early wake must not fire the same slot twice
            reference = max(now, last_fire) if last_fire else now
            fire_at = next_fire_time(expr, now=reference, timezone=self.timezone)
            self.next_fire_times[job_id] = fire_at
            await self._sleep(max(0.0, (fire_at - now).total_seconds()))
            last_fire = fire_at

            logger.info(f"Cron job {job_id} firing")
            try:
                callback()
            except Exception as e:
                logger.error(f"Cron job {job_id} callback failed: {e}")
