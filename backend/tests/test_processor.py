"""Tests for the rate-limited status processor."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from alert_relay.errors import MalformedPayloadError, TransientStoreError
from alert_relay.models import DeviceStatus, NOTIFICATION_LOCK_NAME, NotificationLock
from alert_relay.services.dispatcher import DispatchReport
from alert_relay.services.processor import (
    RateLimitPolicy,
    StatusProcessor,
    coerce_error_code,
    describe_error,
)

from .conftest import FakeClock


def status(code):
    return {"Stability": {"Errors": {"EVT": code}}}


@pytest.fixture
def fake_dispatcher():
    dispatcher = MagicMock()
    dispatcher.dispatch_alert = AsyncMock(return_value=DispatchReport())
    return dispatcher


@pytest.fixture
def processor_clock():
    return FakeClock()


@pytest.fixture
def processor(store, fake_dispatcher, processor_clock):
    return StatusProcessor(
        store,
        fake_dispatcher,
        cooldown_window_seconds=10,
        clock=processor_clock.millis,
    )


async def seed_lock(session_factory, code, sent_at):
    async with session_factory() as session:
        session.add(NotificationLock(
            name=NOTIFICATION_LOCK_NAME,
            last_error_code=code,
            last_sent_at=sent_at,
        ))
        await session.commit()


async def status_records(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(DeviceStatus))
        return list(result.scalars().all())


class TestErrorCodes:
    """Tests for the static error table and code parsing."""

    def test_known_code(self):
        assert describe_error(400) == "Chamber Overheat Warning"
        assert describe_error(701) == "USB Transfer Failed"

    def test_unknown_code(self):
        assert describe_error(999) == "Unknown Error"

    def test_coerce(self):
        assert coerce_error_code(400) == 400
        assert coerce_error_code(400.0) == 400
        assert coerce_error_code("401") == 401
        assert coerce_error_code(None) is None
        assert coerce_error_code(True) is None
        assert coerce_error_code("abc") is None
        assert coerce_error_code(1.5) is None


class TestProcessStatus:
    """Tests for status payload processing."""

    @pytest.mark.asyncio
    async def test_first_alert_dispatched_and_recorded(self, processor, fake_dispatcher, session_factory):
        outcome = await processor.process_status(status(400))

        assert outcome.allowed is True
        fake_dispatcher.dispatch_alert.assert_awaited_once_with(400, "Chamber Overheat Warning")
        records = await status_records(session_factory)
        assert len(records) == 1
        assert records[0].payload == status(400)
        assert records[0].received_at is not None

        async with session_factory() as session:
            lock = await session.get(NotificationLock, NOTIFICATION_LOCK_NAME)
        assert lock.last_error_code == 400

    @pytest.mark.asyncio
    async def test_no_errors_block_records_without_dispatch(self, processor, fake_dispatcher, session_factory):
        outcome = await processor.process_status({"Stability": {}})

        assert outcome.error_code is None
        fake_dispatcher.dispatch_alert.assert_not_awaited()
        assert len(await status_records(session_factory)) == 1

    @pytest.mark.asyncio
    async def test_missing_root_key_rejected_before_write(self, processor, fake_dispatcher, session_factory):
        with pytest.raises(MalformedPayloadError):
            await processor.process_status({})

        fake_dispatcher.dispatch_alert.assert_not_awaited()
        assert await status_records(session_factory) == []

    @pytest.mark.asyncio
    async def test_non_positive_code_recorded_without_dispatch(self, processor, fake_dispatcher, session_factory):
        await processor.process_status(status(0))
        await processor.process_status(status(-5))

        fake_dispatcher.dispatch_alert.assert_not_awaited()
        assert len(await status_records(session_factory)) == 2

    @pytest.mark.asyncio
    async def test_unknown_code_uses_generic_label(self, processor, fake_dispatcher):
        await processor.process_status(status(999))

        fake_dispatcher.dispatch_alert.assert_awaited_once_with(999, "Unknown Error")

    @pytest.mark.asyncio
    async def test_same_code_within_cooldown_dispatched_once(
        self, processor, fake_dispatcher, processor_clock, session_factory
    ):
        await processor.process_status(status(400))
        processor_clock.advance(5)
        outcome = await processor.process_status(status(400))

        assert outcome.allowed is False
        assert fake_dispatcher.dispatch_alert.await_count == 1
        # Both payloads still land in the audit trail
        assert len(await status_records(session_factory)) == 2

    @pytest.mark.asyncio
    async def test_same_code_after_cooldown_dispatched_twice(self, processor, fake_dispatcher, processor_clock):
        await processor.process_status(status(400))
        processor_clock.advance(10)
        await processor.process_status(status(400))

        assert fake_dispatcher.dispatch_alert.await_count == 2

    @pytest.mark.asyncio
    async def test_different_codes_back_to_back_both_dispatched(self, processor, fake_dispatcher):
        await processor.process_status(status(400))
        await processor.process_status(status(500))

        codes = [c.args[0] for c in fake_dispatcher.dispatch_alert.await_args_list]
        assert codes == [400, 500]

    @pytest.mark.asyncio
    async def test_blocked_candidate_leaves_lock_untouched(self, processor, processor_clock, session_factory):
        await processor.process_status(status(400))
        first_sent_at = processor_clock.millis()
        processor_clock.advance(3)
        await processor.process_status(status(400))

        async with session_factory() as session:
            lock = await session.get(NotificationLock, NOTIFICATION_LOCK_NAME)
        assert lock.last_sent_at == first_sent_at


class TestShouldSend:
    """Tests for the transactional cooldown decision."""

    @pytest.mark.asyncio
    async def test_concurrent_candidates_admit_one(self, processor):
        results = await asyncio.gather(*[processor.should_send(400) for _ in range(3)])

        assert sorted(results) == [False, False, True]

    @pytest.mark.asyncio
    async def test_concurrent_candidates_after_cooldown_admit_one(self, processor, session_factory):
        await seed_lock(session_factory, code=400, sent_at=0)

        results = await asyncio.gather(*[processor.should_send(400) for _ in range(5)])

        assert sorted(results) == [False] * 4 + [True]

    @pytest.mark.asyncio
    async def test_concurrent_candidates_for_new_code_admit_one(
        self, processor, processor_clock, session_factory
    ):
        await seed_lock(session_factory, code=500, sent_at=processor_clock.millis())

        results = await asyncio.gather(*[processor.should_send(400) for _ in range(5)])

        assert sorted(results) == [False] * 4 + [True]
        async with session_factory() as session:
            lock = await session.get(NotificationLock, NOTIFICATION_LOCK_NAME)
        assert lock.last_error_code == 400

    @pytest.mark.asyncio
    async def test_store_failure_fails_open_by_default(self, processor, store):
        with patch.object(store, "run_transaction", AsyncMock(side_effect=TransientStoreError("down"))):
            assert await processor.should_send(400) is True
            assert await processor.should_send(400) is True

    @pytest.mark.asyncio
    async def test_store_failure_fails_closed_when_configured(self, store, fake_dispatcher):
        processor = StatusProcessor(store, fake_dispatcher, policy=RateLimitPolicy.FAIL_CLOSED)

        with patch.object(store, "run_transaction", AsyncMock(side_effect=TransientStoreError("down"))):
            assert await processor.should_send(400) is False
