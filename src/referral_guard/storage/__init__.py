"""Storage - async persistence boundary for the fraud engine."""

from referral_guard.storage.base import ReferralStore
from referral_guard.storage.memory import InMemoryReferralStore
from referral_guard.storage.postgres import PostgresReferralStore

__all__ = [
    "ReferralStore",
    "InMemoryReferralStore",
    "PostgresReferralStore",
]
