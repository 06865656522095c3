"""Periodic background sweeps run inside the API process.

Jobs run on an APScheduler ``AsyncIOScheduler`` sharing the app's event loop.
Each run gets a fresh database session; a failing run is logged and the job
fires again at its next interval. Overlapping runs of one job are skipped.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from castle_bookings.core.config import Settings
from castle_bookings.core.settings import BookingRules
from castle_bookings.integrations.google_calendar import CalendarClient
from castle_bookings.services import status_transition_service
from castle_bookings.services.booking_store import SqlBookingStore
from castle_bookings.services.calendar_sync_service import CalendarSyncService

logger = logging.getLogger(__name__)

SCHEDULER_TIMEZONE = "UTC"

Job = Callable[[SqlBookingStore], Awaitable[object]]


@dataclass(slots=True)
class ScheduledJob:
    name: str
    interval_seconds: float
    run: Job


class BookingScheduler:
    """Runs booking sweeps on fixed intervals until stopped."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        jobs: list[ScheduledJob],
    ) -> None:
        self._session_factory = session_factory
        self._jobs = jobs
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def run_once(self, job: ScheduledJob) -> None:
        try:
            async with self._session_factory() as session:
                await job.run(SqlBookingStore(session))
        except Exception:
            logger.exception("Scheduled job %s failed", job.name)

    def start(self) -> None:
        """Schedule every job, first run immediately. Needs a running event loop."""
        if self.running:
            logger.warning("Booking scheduler is already running")
            return
        scheduler = AsyncIOScheduler(timezone=SCHEDULER_TIMEZONE)
        for job in self._jobs:
            scheduler.add_job(
                self.run_once,
                IntervalTrigger(seconds=job.interval_seconds, timezone=SCHEDULER_TIMEZONE),
                args=[job],
                id=job.name,
                name=job.name,
                max_instances=1,
                coalesce=True,
                next_run_time=datetime.now(UTC),
                replace_existing=True,
            )
            logger.info("Scheduler job %s every %ss", job.name, job.interval_seconds)
        scheduler.start()
        self._scheduler = scheduler

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Booking scheduler stopped")


def default_jobs(
    settings: Settings,
    *,
    rules: BookingRules,
    calendar: CalendarClient,
) -> list[ScheduledJob]:
    timeout = settings.calendar_timeout_seconds

    async def expire_pending(store: SqlBookingStore) -> object:
        return await status_transition_service.expire_stale_pending(store, rules=rules)

    async def complete_finished(store: SqlBookingStore) -> object:
        return await status_transition_service.process_all(
            store, rules=rules, calendar=calendar, timeout=timeout
        )

    async def sync_calendar(store: SqlBookingStore) -> object:
        service = CalendarSyncService(store, calendar, rules=rules, timeout=timeout)
        return await service.sync_all()

    return [
        ScheduledJob("expire-pending", settings.completion_check_interval_seconds, expire_pending),
        ScheduledJob(
            "complete-finished", settings.completion_check_interval_seconds, complete_finished
        ),
        ScheduledJob("calendar-sync", settings.calendar_sync_interval_seconds, sync_calendar),
    ]


__all__ = ["BookingScheduler", "ScheduledJob", "default_jobs"]
