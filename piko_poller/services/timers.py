# piko_poller/services/timers.py

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler


class ScheduledCall:
    """Handle for one pending call; cancelling removes the job."""

    def __init__(self, scheduler: BackgroundScheduler, job_id: str):
        self.scheduler = scheduler
        self.job_id = job_id

    def cancel(self) -> None:
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            # already ran, or the scheduler is gone
            pass


class SchedulerTimer:
    """
    Runs each callback once after a delay on an APScheduler background
    scheduler. The scheduler starts on first use.
    """

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None):
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")

    def call_later(self, delay_s: float, callback: Callable[[], None]) -> ScheduledCall:
        if not self.scheduler.running:
            self.scheduler.start()
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_s)
        # no grace limit: a late poll still runs instead of being dropped
        job = self.scheduler.add_job(
            callback,
            "date",
            run_date=run_date,
            misfire_grace_time=None,
        )
        return ScheduledCall(self.scheduler, job.id)

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
