"""Tests for DeviceFingerprintRegistry."""

from unittest.mock import AsyncMock

import pytest

from referral_guard.common.exceptions import StorageError, ValidationError
from referral_guard.core.types import Severity
from referral_guard.detectors import DeviceFingerprintRegistry


@pytest.fixture
def registry(store, thresholds):
    return DeviceFingerprintRegistry(store, thresholds)


async def _sight(registry, fingerprint_hash, *accounts):
    for account in accounts:
        await registry.record_sighting(fingerprint_hash, account)


class TestRecordSighting:

    @pytest.mark.asyncio
    async def test_first_sighting_creates_fingerprint_and_link(self, registry, store):
        fingerprint_id = await registry.record_sighting("fp1", "a1", {"platform": "iOS"})

        fp = store.fingerprints[fingerprint_id]
        assert fp.fingerprint_hash == "fp1"
        assert fp.total_accounts == 1
        assert fp.fingerprint_components == {"platform": "iOS"}

    @pytest.mark.asyncio
    async def test_repeat_sighting_is_idempotent(self, registry, store):
        first = await registry.record_sighting("fp1", "a1")
        second = await registry.record_sighting("fp1", "a1")

        assert first == second
        assert len(store.links) == 1
        assert store.fingerprints[first].total_accounts == 1

    @pytest.mark.asyncio
    async def test_total_accounts_tracks_distinct_links(self, registry, store):
        await _sight(registry, "fp1", "a1", "a2", "a3", "a2")

        fp = await store.get_fingerprint_by_hash("fp1")
        assert fp.total_accounts == 3

    @pytest.mark.asyncio
    async def test_later_components_are_merged(self, registry, store):
        fingerprint_id = await registry.record_sighting("fp1", "a1", {"platform": "iOS"})
        await registry.record_sighting("fp1", "a2", {"timezone": "UTC"})

        assert store.fingerprints[fingerprint_id].fingerprint_components == {
            "platform": "iOS",
            "timezone": "UTC",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fingerprint_hash,account_id", [("", "a1"), ("fp1", "")])
    async def test_empty_arguments_rejected(self, registry, fingerprint_hash, account_id):
        with pytest.raises(ValidationError):
            await registry.record_sighting(fingerprint_hash, account_id)

    @pytest.mark.asyncio
    async def test_storage_failure_propagates(self, store):
        store.upsert_fingerprint_link = AsyncMock(side_effect=StorageError("down"))
        registry = DeviceFingerprintRegistry(store)

        with pytest.raises(StorageError):
            await registry.record_sighting("fp1", "a1")


class TestCheckSharedAccounts:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("linked,expected", [
        (0, None),
        (1, Severity.LOW),
        (2, Severity.MEDIUM),
        (3, Severity.MEDIUM),
        (4, Severity.HIGH),
        (5, Severity.HIGH),
    ])
    async def test_severity_by_account_count(self, registry, linked, expected):
        await _sight(registry, "fp1", *[f"other_{i}" for i in range(linked)])

        result = await registry.check_shared_accounts("fp1", "current")

        assert result.account_count == linked + 1
        assert result.severity == expected
        assert result.is_suspicious is (expected is not None)
        assert "current" in result.related_accounts

    @pytest.mark.asyncio
    async def test_current_account_not_double_counted(self, registry):
        await _sight(registry, "fp1", "a1", "current")

        result = await registry.check_shared_accounts("fp1", "current")

        assert result.account_count == 2
        assert sorted(result.related_accounts) == ["a1", "current"]

    @pytest.mark.asyncio
    async def test_unknown_fingerprint_is_not_suspicious(self, registry):
        result = await registry.check_shared_accounts("never-seen", "current")

        assert not result.is_suspicious
        assert result.account_count == 1

    @pytest.mark.asyncio
    async def test_storage_failure_fails_open(self, store):
        store.list_accounts_for_fingerprint = AsyncMock(side_effect=StorageError("down"))
        registry = DeviceFingerprintRegistry(store)

        result = await registry.check_shared_accounts("fp1", "current")

        assert not result.is_suspicious
        assert result.account_count == 1
        assert result.related_accounts == ["current"]
        assert result.severity is None


class TestIsPairOnSameDevice:

    @pytest.mark.asyncio
    async def test_both_linked(self, registry):
        await _sight(registry, "fp1", "referrer", "referred")

        assert await registry.is_pair_on_same_device("fp1", "referrer", "referred")

    @pytest.mark.asyncio
    async def test_one_linked(self, registry):
        await _sight(registry, "fp1", "referred")

        assert not await registry.is_pair_on_same_device("fp1", "referrer", "referred")

    @pytest.mark.asyncio
    async def test_storage_failure_is_false(self, store):
        store.list_accounts_for_fingerprint = AsyncMock(side_effect=StorageError("down"))
        registry = DeviceFingerprintRegistry(store)

        assert not await registry.is_pair_on_same_device("fp1", "a", "b")
