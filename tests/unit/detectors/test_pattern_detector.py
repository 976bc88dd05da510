"""Tests for AbnormalPatternDetector."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from referral_guard.common.config.thresholds import DetectionThresholds
from referral_guard.common.exceptions import StorageError
from referral_guard.core.types import Severity, TrackingEventType
from referral_guard.detectors import AbnormalPatternDetector


@pytest.fixture
def detector(store, thresholds, fixed_clock):
    return AbnormalPatternDetector(store, thresholds, clock=fixed_clock)


def _paid_and_cancelled(store, referrer, referred, paid_at, cancel_after):
    store.add_referral(referrer, referred, created_at=paid_at, first_payment_at=paid_at)
    store.set_subscription(referred, status="cancelled", cancelled_at=paid_at + cancel_after)


class TestVelocity:

    @pytest.mark.asyncio
    async def test_at_threshold_is_not_flagged(self, detector, seed_referrals, now):
        seed_referrals("r", 5, now)

        result = await detector.check_patterns("r")

        assert not result.rapid_referrals
        assert result.referral_count is None
        assert result.details == {}

    @pytest.mark.asyncio
    async def test_burst_in_24h(self, detector, seed_referrals, now):
        seed_referrals("r", 6, now)

        result = await detector.check_patterns("r")

        assert result.rapid_referrals
        assert result.referral_count == 6
        assert result.time_window_hours == 24
        assert result.rapid_referrals_severity == Severity.MEDIUM
        assert result.details == {"rapid_referrals_24h": 6, "threshold_24h": 5}

    @pytest.mark.asyncio
    async def test_both_windows_with_equal_counts_keep_24h(self, detector, seed_referrals, now):
        seed_referrals("r", 12, now)

        result = await detector.check_patterns("r")

        assert result.referral_count == 12
        assert result.time_window_hours == 24
        assert result.rapid_referrals_severity == Severity.HIGH
        assert result.details["rapid_referrals_7d"] == 12
        assert result.details["threshold_7d"] == 10

    @pytest.mark.asyncio
    async def test_larger_7d_count_wins(self, detector, seed_referrals, store, now):
        seed_referrals("r", 6, now)
        for i in range(5):
            store.add_referral("r", f"older_{i}", created_at=now - timedelta(days=3))

        result = await detector.check_patterns("r")

        assert result.referral_count == 11
        assert result.time_window_hours == 168
        assert result.rapid_referrals_severity == Severity.HIGH

    @pytest.mark.asyncio
    async def test_referrals_outside_7d_ignored(self, detector, store, now):
        for i in range(20):
            store.add_referral("r", f"old_{i}", created_at=now - timedelta(days=8))

        result = await detector.check_patterns("r")

        assert not result.rapid_referrals

    @pytest.mark.asyncio
    async def test_custom_thresholds(self, store, seed_referrals, now, fixed_clock):
        detector = AbnormalPatternDetector(
            store, DetectionThresholds(rapid_referrals_24h=1), clock=fixed_clock
        )
        seed_referrals("r", 2, now)

        result = await detector.check_patterns("r")

        assert result.rapid_referrals
        assert result.details["threshold_24h"] == 1


class TestQuickCancellations:

    @pytest.mark.asyncio
    async def test_two_quick_cancels_flagged_medium(self, detector, store, now):
        paid_at = now - timedelta(days=20)
        _paid_and_cancelled(store, "r", "a", paid_at, timedelta(days=1))
        _paid_and_cancelled(store, "r", "b", paid_at, timedelta(days=7))

        result = await detector.check_patterns("r")

        assert result.quick_cancellations
        assert result.cancel_count == 2
        assert result.quick_cancel_severity == Severity.MEDIUM
        assert result.details == {"quick_cancel_count": 2, "quick_cancel_threshold": 2}

    @pytest.mark.asyncio
    async def test_late_cancels_do_not_count(self, detector, store, now):
        paid_at = now - timedelta(days=20)
        _paid_and_cancelled(store, "r", "a", paid_at, timedelta(days=1))
        _paid_and_cancelled(store, "r", "b", paid_at, timedelta(days=8))
        store.add_referral("r", "c", first_payment_at=paid_at)

        result = await detector.check_patterns("r")

        assert not result.quick_cancellations
        assert result.cancel_count is None

    @pytest.mark.asyncio
    async def test_more_than_three_is_high(self, detector, store, now):
        paid_at = now - timedelta(days=20)
        for account in ("a", "b", "c", "d"):
            _paid_and_cancelled(store, "r", account, paid_at, timedelta(hours=6))

        result = await detector.check_patterns("r")

        assert result.cancel_count == 4
        assert result.quick_cancel_severity == Severity.HIGH


class TestFailureIsolation:

    @pytest.mark.asyncio
    async def test_velocity_failure_keeps_cancel_check(self, store, fixed_clock, now):
        paid_at = now - timedelta(days=20)
        _paid_and_cancelled(store, "r", "a", paid_at, timedelta(days=1))
        _paid_and_cancelled(store, "r", "b", paid_at, timedelta(days=1))
        store.count_referrals_since = AsyncMock(side_effect=StorageError("down"))

        result = await AbnormalPatternDetector(store, clock=fixed_clock).check_patterns("r")

        assert not result.rapid_referrals
        assert result.quick_cancellations

    @pytest.mark.asyncio
    async def test_cancel_failure_keeps_velocity_check(self, store, seed_referrals, fixed_clock, now):
        seed_referrals("r", 6, now)
        store.list_paid_referrals_with_subscriptions = AsyncMock(side_effect=StorageError("down"))

        result = await AbnormalPatternDetector(store, clock=fixed_clock).check_patterns("r")

        assert result.rapid_referrals
        assert not result.quick_cancellations


class TestSharedIp:

    @pytest.mark.asyncio
    async def test_above_threshold(self, detector, store):
        for _ in range(6):
            store.add_tracking_event("10.0.0.1")

        result = await detector.check_shared_ip("r", "10.0.0.1")

        assert result.is_suspicious
        assert result.count == 6

    @pytest.mark.asyncio
    async def test_at_threshold_and_other_event_types(self, detector, store):
        for _ in range(5):
            store.add_tracking_event("10.0.0.1")
        store.add_tracking_event("10.0.0.1", TrackingEventType.CLICK)

        result = await detector.check_shared_ip("r", "10.0.0.1")

        assert not result.is_suspicious
        assert result.count == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ip_address", [None, ""])
    async def test_missing_ip(self, detector, ip_address):
        result = await detector.check_shared_ip("r", ip_address)

        assert not result.is_suspicious
        assert result.count == 0

    @pytest.mark.asyncio
    async def test_storage_failure(self, store, thresholds):
        store.count_tracking_events = AsyncMock(side_effect=StorageError("down"))

        result = await AbnormalPatternDetector(store, thresholds).check_shared_ip("r", "10.0.0.1")

        assert not result.is_suspicious
        assert result.count == 0
