from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60

class RefreshTimer:
    """Self re-arming one-shot timer on top of APScheduler.

    Each tick schedules the next one, then starts the callback in its own
    task and returns, so the job instance is finished before the next tick
    can fire and a slow or failing cycle never stops the loop. Cycles may
    overlap. The interval can change between ticks; ``set_interval``
    restarts immediately only when it shrinks.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval_s: int = DEFAULT_INTERVAL_SECONDS,
        scheduler: AsyncIOScheduler | None = None,
        job_id: str | None = None,
    ):
        self._callback = callback
        self.interval = interval_s
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or AsyncIOScheduler(timezone=dt.timezone.utc)
        self.job_id = job_id or f"refresh-{id(self):x}"
        self._job = None
        self._running = False
        self._cycles: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._running

    @property
    def next_run_time(self) -> dt.datetime | None:
        return self._job.next_run_time if self._job is not None else None

    def _arm(self, delay_s: float) -> None:
        run_at = dt.datetime.now(dt.timezone.utc) + dt.timedelta(seconds=delay_s)
        self._job = self.scheduler.add_job(
            self._tick,
            DateTrigger(run_date=run_at, timezone=dt.timezone.utc),
            id=self.job_id,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=None,
        )

    async def _tick(self) -> None:
        if not self._running:
            return
        self._arm(self.interval)
        task = asyncio.create_task(self._run_cycle())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)

    async def _run_cycle(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("Refresh cycle failed")

    async def wait_cycles(self) -> None:
        """Wait for the cycles started so far."""
        while True:
            pending = [t for t in self._cycles if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
        self._running = True
        logger.info("Refresh timer started (interval: %ds)", self.interval)
        self._arm(0)

    def stop(self) -> None:
        self._running = False
        if self._job is None:
            return
        try:
            self._job.remove()
        except JobLookupError:
            pass
        self._job = None

    def set_interval(self, seconds: int) -> None:
        reset = seconds < self.interval
        self.interval = seconds
        if reset and self._running:
            self.stop()
            self.start()

    def shutdown(self) -> None:
        self.stop()
        if self._owns_scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
