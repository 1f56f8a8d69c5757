"""Tests for token registration and duplicate cleanup."""

import logging

import pytest

from alert_relay.errors import ValidationError
from alert_relay.services.registration import RegistrationService

from .conftest import make_token


@pytest.fixture
def service(store):
    return RegistrationService(store)


class TestRegisterToken:
    """Tests for registration upserts."""

    @pytest.mark.asyncio
    async def test_missing_token_rejected(self, service, store):
        with pytest.raises(ValidationError):
            await service.register_token(None, device_id="device-1")
        assert await store.list_registrations() == []

    @pytest.mark.asyncio
    async def test_token_used_as_id_without_device(self, service):
        token = make_token("a")

        result = await service.register_token(token)

        assert result.registration.registration_id == token
        assert result.registration.platform == "android"
        assert result.registration.app_version == "1.0.0"
        assert result.registration.active is True

    @pytest.mark.asyncio
    async def test_reregister_updates_only_changed_fields(self, service, store):
        token = make_token("a")
        first = await service.register_token(token, device_id="device-1", platform="ios", app_version="1.0.0")

        second = await service.register_token(token, device_id="device-1", app_version="2.0.0")

        registration = await store.get_registration("device-1")
        assert registration.delivery_token == token
        assert registration.app_version == "2.0.0"
        assert registration.platform == "ios"
        assert registration.created_at == first.registration.created_at
        assert registration.last_updated >= first.registration.last_updated
        assert second.superseded == []
        assert len(await store.list_registrations()) == 1

    @pytest.mark.asyncio
    async def test_new_token_for_device_replaces_old(self, service, store):
        await service.register_token(make_token("old"), device_id="device-1")

        await service.register_token(make_token("new"), device_id="device-1")

        registrations = await store.list_registrations()
        assert len(registrations) == 1
        assert registrations[0].delivery_token == make_token("new")

    @pytest.mark.asyncio
    async def test_stale_device_rows_deleted(self, service, store):
        await store.upsert_registration("legacy-id", make_token("old"), device_id="device-1")

        result = await service.register_token(make_token("new"), device_id="device-1")

        assert [o.registration_id for o in result.superseded] == ["legacy-id"]
        assert all(o.success for o in result.superseded)
        assert await store.get_registration("legacy-id") is None
        assert await store.get_registration("device-1") is not None

    @pytest.mark.asyncio
    async def test_token_keyed_row_removed_once_device_known(self, service, store):
        token = make_token("a")
        await service.register_token(token)

        await service.register_token(token, device_id="device-1")

        registrations = await store.list_registrations()
        assert [r.registration_id for r in registrations] == ["device-1"]

    @pytest.mark.asyncio
    async def test_suspicious_token_still_registered(self, service, store):
        await service.register_token("plain-token-without-marker")

        assert await store.get_registration("plain-token-without-marker") is not None

    @pytest.mark.asyncio
    async def test_short_token_never_logged_in_full(self, service, caplog):
        token = "secret-device-token-123"

        with caplog.at_level(logging.INFO, logger="alert_relay.services.registration"):
            await service.register_token(token)

        assert "Suspicious token format" in caplog.text
        assert "Token registered" in caplog.text
        assert token not in caplog.text


class TestCleanDuplicateTokens:
    """Tests for the duplicate token sweep."""

    @pytest.mark.asyncio
    async def test_keeps_one_per_token(self, service, store):
        shared = make_token("shared")
        for i in range(5):
            await store.upsert_registration(f"device-{i}", shared, device_id=f"device-{i}")
        await store.upsert_registration("other", make_token("other"))

        report = await service.clean_duplicate_tokens()

        assert report.total == 6
        assert report.duplicates_removed == 4
        remaining = await store.list_registrations()
        assert sorted(r.registration_id for r in remaining) == ["device-0", "other"]

    @pytest.mark.asyncio
    async def test_no_duplicates(self, service, store):
        await store.upsert_registration("a", make_token("a"))

        report = await service.clean_duplicate_tokens()

        assert report.duplicates_removed == 0
        assert report.removed_ids == []


class TestTokenSummaries:
    """Tests for the maintenance listing."""

    @pytest.mark.asyncio
    async def test_tokens_truncated(self, service, store):
        token = make_token("a")
        await store.upsert_registration("device-1", token)

        summaries = await service.list_token_summaries()

        assert len(summaries) == 1
        assert summaries[0]["id"] == "device-1"
        assert summaries[0]["token"] == token[:20] + "..."
        assert summaries[0]["lastUsed"] is None
