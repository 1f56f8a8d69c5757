"""Scheduler service - fires calendar announcements once a day.

Deciding which dates carry an announcement is delegated to an
AnnouncementCalendar; the scheduler only asks it once per day and hands
any match to the dispatcher.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional, Protocol

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from ..errors import NotFoundError
from .dispatcher import DispatchReport, FanOutDispatcher

logger = logging.getLogger(__name__)


@dataclass
class Announcement:
    title: str
    body: str


class AnnouncementCalendar(Protocol):
    def announcement_for(self, day: date) -> Optional[Announcement]:
        ...


class StaticAnnouncementCalendar:
    """Announcements keyed by (month, day) of the calendar date."""

    def __init__(self, entries: Iterable = ()):
        self._entries = {
            (entry.month, entry.day): Announcement(title=entry.title, body=entry.body)
            for entry in entries
        }

    def announcement_for(self, day: date) -> Optional[Announcement]:
        return self._entries.get((day.month, day.day))


class SchedulerService:
    """Runs the daily announcement check."""

    def __init__(
        self,
        dispatcher: FanOutDispatcher,
        calendar: AnnouncementCalendar,
        hour: int = 12,
        minute: int = 0,
        today: Callable[[], date] = date.today,
    ):
        self._dispatcher = dispatcher
        self._calendar = calendar
        self._hour = hour
        self._minute = minute
        self._today = today
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self, run_now: bool = True):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.check_announcements,
            trigger=CronTrigger(hour=self._hour, minute=self._minute),
            id="daily_announcement",
            replace_existing=True,
            max_instances=1,
        )
        if run_now:
            # One check at startup so a restart on the day still announces
            self.scheduler.add_job(self.check_announcements, id="startup_announcement")

        self.scheduler.start()
        self._running = True
        logger.info(f"Announcement scheduler started (daily at {self._hour:02d}:{self._minute:02d})")

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    async def check_announcements(self) -> Optional[DispatchReport]:
        """Send today's announcement, if the calendar has one."""
        today = self._today()
        try:
            announcement = self._calendar.announcement_for(today)
        except Exception as e:
            logger.error(f"Error evaluating announcement calendar: {e}")
            return None

        if announcement is None:
            logger.info(f"No announcement for {today.isoformat()}")
            return None

        logger.info(f"Announcement due: {announcement.title}")
        try:
            report = await self._dispatcher.send_announcement(announcement.title, announcement.body)
        except NotFoundError as e:
            logger.warning(f"Scheduled announcement skipped: {e}")
            return None
        except Exception as e:
            logger.error(f"Error sending scheduled announcement: {e}")
            return None

        logger.info(
            f"Scheduled announcement result: {report.success_count} success, {report.failure_count} failure"
        )
        return report
