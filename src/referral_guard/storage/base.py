"""Referral Store - Abstraction for referral-fraud persistence.

This module provides the interface the detectors and orchestrator use to
reach the relational store, decoupling detection logic from a specific
database.

Design principles:
- Async interface: every call is an I/O boundary
- Point lookups, range counts and a recursive chain walk
- Idempotent upserts for fingerprints, append-only suspicion inserts
- Backend failures surface as StorageError, never as driver exceptions
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from referral_guard.core.types import ReviewStatus, Severity, SuspicionType, TrackingEventType
from referral_guard.data.schemas import DeviceFingerprint, PaidReferral, SuspiciousReferral


class ReferralStore(ABC):
    """Abstract base class for referral-fraud storage backends."""

    #: Whether walk_referral_chain runs as a single server-side query.
    supports_recursive_queries: bool = True

    # ----- Device fingerprints -----

    @abstractmethod
    async def get_fingerprint_by_hash(self, fingerprint_hash: str) -> Optional[DeviceFingerprint]:
        """Look up a fingerprint by its hash.

        Returns:
            The fingerprint, or None on first sighting
        """

    @abstractmethod
    async def create_fingerprint(
        self,
        fingerprint_hash: str,
        components: Optional[Dict[str, Any]] = None,
    ) -> DeviceFingerprint:
        """Create a fingerprint row.

        If a concurrent caller created the same hash first, the existing row
        is returned with its last_seen_at bumped.
        """

    @abstractmethod
    async def touch_fingerprint(
        self,
        fingerprint_id: str,
        components: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Bump last_seen_at, merging components when supplied."""

    @abstractmethod
    async def upsert_fingerprint_link(self, fingerprint_id: str, account_id: str) -> None:
        """Insert the (fingerprint, account) link or bump its last_seen_at."""

    @abstractmethod
    async def count_fingerprint_links(self, fingerprint_id: str) -> int:
        """Count distinct accounts linked to a fingerprint."""

    @abstractmethod
    async def set_fingerprint_total_accounts(self, fingerprint_id: str, total: int) -> None:
        """Store the denormalized account count."""

    @abstractmethod
    async def list_accounts_for_fingerprint(self, fingerprint_hash: str) -> List[str]:
        """List account ids linked to the fingerprint with this hash."""

    # ----- Referral graph -----

    @abstractmethod
    async def get_referrer_of(self, account_id: str) -> Optional[str]:
        """Return who referred this account, or None for a root."""

    @abstractmethod
    async def walk_referral_chain(
        self,
        start_account_id: str,
        stop_account_id: str,
        max_depth: int,
    ) -> List[str]:
        """Walk up the referrer chain in one recursive query.

        The chain starts at start_account_id and follows child -> parent
        edges for at most max_depth hops, ending early at a root or at
        stop_account_id. A node never appears twice.

        Raises:
            GraphQueryError: If the recursive query is unavailable or fails
        """

    @abstractmethod
    async def count_referrals_since(self, referrer_account_id: str, since: datetime) -> int:
        """Count referrals made by the referrer with created_at >= since."""

    @abstractmethod
    async def list_paid_referrals_with_subscriptions(
        self,
        referrer_account_id: str,
    ) -> List[PaidReferral]:
        """List the referrer's referrals that have a first payment, joined
        with the referred account's subscription."""

    # ----- Tracking log -----

    @abstractmethod
    async def count_tracking_events(
        self,
        ip_address: str,
        event_type: TrackingEventType = TrackingEventType.REGISTER,
    ) -> int:
        """Count tracking-log events of a type from an IP address."""

    # ----- Suspicious referrals -----

    @abstractmethod
    async def insert_suspicious_referral(self, record: SuspiciousReferral) -> str:
        """Append a suspicious-referral row.

        Returns:
            The row id
        """

    @abstractmethod
    async def list_suspicious_referrals(
        self,
        status: Optional[ReviewStatus] = None,
        suspicion_type: Optional[SuspicionType] = None,
        severity: Optional[Severity] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[SuspiciousReferral]:
        """List suspicious referrals, newest first, with optional filters."""

    async def close(self) -> None:
        """Release backend resources."""
