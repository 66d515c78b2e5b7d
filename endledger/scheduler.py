"""Daily batch check-in job."""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Awaitable, Callable

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .domain.attendance import AttendanceService

logger = logging.getLogger(__name__)

Notifier = Callable[[str], Awaitable[None]]

JOB_ID = "auto_sign"
MISFIRE_GRACE_SECONDS = 300


def parse_daily_time(text: str) -> time:
    """Parse ``HH:MM`` into a :class:`datetime.time`."""
    try:
        hour, minute = (int(part) for part in text.strip().split(":"))
        return time(hour=hour, minute=minute)
    except ValueError as exc:
        raise ValueError(f"Daily time must look like HH:MM, got {text!r}") from exc


class AutoSignScheduler:
    """Runs :meth:`AttendanceService.sign_all` once a day at a fixed wall-clock time."""

    def __init__(
        self,
        attendance: AttendanceService,
        at: time,
        *,
        tz_hours: int = 8,
        notify: Notifier | None = None,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._attendance = attendance
        self._at = at
        self._tz = timezone(timedelta(hours=tz_hours))
        self._notify = notify
        self._scheduler = scheduler or AsyncIOScheduler(timezone=self._tz)

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def job(self) -> Job | None:
        return self._scheduler.get_job(JOB_ID)

    def trigger(self) -> CronTrigger:
        return CronTrigger(hour=self._at.hour, minute=self._at.minute, timezone=self._tz)

    def next_run(self, now: datetime) -> datetime | None:
        return self.trigger().get_next_fire_time(None, now)

    async def run_once(self) -> str:
        result = await self._attendance.sign_all()
        logger.info("Scheduled check-in finished: %s", result.message.splitlines()[0] if result.message else "-")
        if self._notify is not None:
            await self._notify(result.message)
        return result.message

    async def _run_job(self) -> None:
        try:
            await self.run_once()
        except Exception:
            logger.exception("Scheduled check-in crashed")

    def start(self) -> Job:
        """Register the daily job and start the scheduler on the running event loop."""
        job = self._scheduler.add_job(
            self._run_job,
            self.trigger(),
            id=JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("Daily check-in scheduled at %s %s", self._at.strftime("%H:%M"), self._tz)
        return job

    def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
