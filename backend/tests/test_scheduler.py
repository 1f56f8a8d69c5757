"""Tests for scheduled announcements."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from alert_relay.config import AnnouncementEntry
from alert_relay.errors import NotFoundError
from alert_relay.services.dispatcher import DispatchReport
from alert_relay.services.scheduler import SchedulerService, StaticAnnouncementCalendar

ENTRIES = [
    AnnouncementEntry(month=3, day=1, title="Ramadan Kareem", body="Greetings for the holy month."),
    AnnouncementEntry(month=3, day=30, title="Eid Mubarak", body="Happy Eid."),
]


def make_scheduler(today, dispatcher=None):
    if dispatcher is None:
        dispatcher = MagicMock()
        dispatcher.send_announcement = AsyncMock(return_value=DispatchReport(success_count=2))
    service = SchedulerService(dispatcher, StaticAnnouncementCalendar(ENTRIES), today=lambda: today)
    return service, dispatcher


class TestStaticAnnouncementCalendar:
    """Tests for month/day matching."""

    def test_match(self):
        calendar = StaticAnnouncementCalendar(ENTRIES)

        announcement = calendar.announcement_for(date(2026, 3, 30))

        assert announcement.title == "Eid Mubarak"

    def test_no_match(self):
        assert StaticAnnouncementCalendar(ENTRIES).announcement_for(date(2026, 4, 1)) is None


class TestCheckAnnouncements:
    """Tests for the daily check."""

    @pytest.mark.asyncio
    async def test_sends_matching_announcement(self):
        service, dispatcher = make_scheduler(date(2026, 3, 1))

        report = await service.check_announcements()

        dispatcher.send_announcement.assert_awaited_once_with(
            "Ramadan Kareem", "Greetings for the holy month."
        )
        assert report.success_count == 2

    @pytest.mark.asyncio
    async def test_skips_ordinary_days(self):
        service, dispatcher = make_scheduler(date(2026, 7, 4))

        assert await service.check_announcements() is None
        dispatcher.send_announcement.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_devices_is_not_an_error(self):
        dispatcher = MagicMock()
        dispatcher.send_announcement = AsyncMock(side_effect=NotFoundError("none"))
        service, _ = make_scheduler(date(2026, 3, 1), dispatcher)

        assert await service.check_announcements() is None

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        service, _ = make_scheduler(date(2026, 7, 4))

        service.start(run_now=False)
        assert service.scheduler.get_job("daily_announcement") is not None
        service.stop()
