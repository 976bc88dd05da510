"""Shared fixtures for ReferralGuard tests."""

from datetime import datetime, timedelta, timezone

import pytest

from referral_guard.common.config.thresholds import DetectionThresholds
from referral_guard.storage.memory import InMemoryReferralStore


FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def store() -> InMemoryReferralStore:
    """Fresh in-memory referral store."""
    return InMemoryReferralStore()


@pytest.fixture
def thresholds() -> DetectionThresholds:
    """Default detection thresholds."""
    return DetectionThresholds()


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def fixed_clock(now):
    """Clock pinned to FIXED_NOW for window-sensitive checks."""
    return lambda: now


@pytest.fixture
def seed_referrals(store):
    """Seed `count` referrals by a referrer, each `age` before `at`."""

    def _seed(referrer: str, count: int, at: datetime, age: timedelta = timedelta(minutes=30)):
        return [
            store.add_referral(referrer, f"{referrer}_ref_{i}", created_at=at - age)
            for i in range(count)
        ]

    return _seed


@pytest.fixture
def seed_chain(store):
    """Seed a parent chain: accounts[i] is referred by accounts[i + 1]."""

    def _seed(*accounts: str):
        for child, parent in zip(accounts, accounts[1:]):
            store.add_referral(parent, child)

    return _seed
