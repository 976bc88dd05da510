"""In-memory referral store.

Single-process backend used for local runs and tests. Mirrors the
PostgreSQL backend's semantics, including the unique
(fingerprint_id, account_id) link key and the bounded chain walk.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from referral_guard.core.types import ReviewStatus, Severity, SuspicionType, TrackingEventType
from referral_guard.data.schemas import (
    DeviceFingerprint,
    DeviceFingerprintAccountLink,
    PaidReferral,
    Referral,
    Subscription,
    SuspiciousReferral,
    TrackingEvent,
)
from referral_guard.storage.base import ReferralStore


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryReferralStore(ReferralStore):
    """Dictionary-backed store.

    Operations never await inside a mutation, so each call is atomic with
    respect to other coroutines on the same event loop.
    """

    def __init__(self):
        self.fingerprints: Dict[str, DeviceFingerprint] = {}
        self.links: Dict[Tuple[str, str], DeviceFingerprintAccountLink] = {}
        self.referrals: List[Referral] = []
        self.subscriptions: Dict[str, Subscription] = {}
        self.tracking_events: List[TrackingEvent] = []
        self.suspicious_referrals: List[SuspiciousReferral] = []

    # ----- Seeding helpers (collaborator-owned data) -----

    def add_referral(
        self,
        referrer_account_id: str,
        referred_account_id: str,
        created_at: Optional[datetime] = None,
        first_payment_at: Optional[datetime] = None,
    ) -> Referral:
        referral = Referral(
            referrer_account_id=referrer_account_id,
            referred_account_id=referred_account_id,
            created_at=created_at or _now(),
            first_payment_at=first_payment_at,
        )
        self.referrals.append(referral)
        return referral

    def set_subscription(
        self,
        account_id: str,
        status: str = "active",
        cancelled_at: Optional[datetime] = None,
    ) -> Subscription:
        subscription = Subscription(
            account_id=account_id, status=status, cancelled_at=cancelled_at
        )
        self.subscriptions[account_id] = subscription
        return subscription

    def add_tracking_event(
        self,
        ip_address: str,
        event_type: TrackingEventType = TrackingEventType.REGISTER,
        created_at: Optional[datetime] = None,
    ) -> TrackingEvent:
        event = TrackingEvent(
            ip_address=ip_address,
            event_type=event_type,
            created_at=created_at or _now(),
        )
        self.tracking_events.append(event)
        return event

    # ----- Device fingerprints -----

    def _fingerprint_by_hash(self, fingerprint_hash: str) -> Optional[DeviceFingerprint]:
        for fingerprint in self.fingerprints.values():
            if fingerprint.fingerprint_hash == fingerprint_hash:
                return fingerprint
        return None

    async def get_fingerprint_by_hash(self, fingerprint_hash: str) -> Optional[DeviceFingerprint]:
        fingerprint = self._fingerprint_by_hash(fingerprint_hash)
        return fingerprint.model_copy() if fingerprint else None

    async def create_fingerprint(
        self,
        fingerprint_hash: str,
        components: Optional[Dict[str, Any]] = None,
    ) -> DeviceFingerprint:
        existing = self._fingerprint_by_hash(fingerprint_hash)
        if existing is not None:
            existing.last_seen_at = _now()
            return existing.model_copy()

        now = _now()
        fingerprint = DeviceFingerprint(
            fingerprint_hash=fingerprint_hash,
            fingerprint_components=components,
            first_seen_at=now,
            last_seen_at=now,
        )
        self.fingerprints[fingerprint.id] = fingerprint
        return fingerprint.model_copy()

    async def touch_fingerprint(
        self,
        fingerprint_id: str,
        components: Optional[Dict[str, Any]] = None,
    ) -> None:
        fingerprint = self.fingerprints.get(fingerprint_id)
        if fingerprint is None:
            return
        fingerprint.last_seen_at = _now()
        if components:
            merged = dict(fingerprint.fingerprint_components or {})
            merged.update(components)
            fingerprint.fingerprint_components = merged

    async def upsert_fingerprint_link(self, fingerprint_id: str, account_id: str) -> None:
        key = (fingerprint_id, account_id)
        link = self.links.get(key)
        if link is None:
            self.links[key] = DeviceFingerprintAccountLink(
                fingerprint_id=fingerprint_id, account_id=account_id
            )
        else:
            link.last_seen_at = _now()

    async def count_fingerprint_links(self, fingerprint_id: str) -> int:
        return len({account for (fp_id, account) in self.links if fp_id == fingerprint_id})

    async def set_fingerprint_total_accounts(self, fingerprint_id: str, total: int) -> None:
        fingerprint = self.fingerprints.get(fingerprint_id)
        if fingerprint is not None:
            fingerprint.total_accounts = total

    async def list_accounts_for_fingerprint(self, fingerprint_hash: str) -> List[str]:
        fingerprint = self._fingerprint_by_hash(fingerprint_hash)
        if fingerprint is None:
            return []
        return [
            link.account_id
            for (fp_id, _), link in self.links.items()
            if fp_id == fingerprint.id
        ]

    # ----- Referral graph -----

    async def get_referrer_of(self, account_id: str) -> Optional[str]:
        for referral in self.referrals:
            if referral.referred_account_id == account_id:
                return referral.referrer_account_id
        return None

    async def walk_referral_chain(
        self,
        start_account_id: str,
        stop_account_id: str,
        max_depth: int,
    ) -> List[str]:
        parents = {r.referred_account_id: r.referrer_account_id for r in self.referrals}
        chain = [start_account_id]
        current = start_account_id
        while len(chain) - 1 < max_depth and current != stop_account_id:
            parent = parents.get(current)
            if parent is None or parent in chain:
                break
            chain.append(parent)
            current = parent
        return chain

    async def count_referrals_since(self, referrer_account_id: str, since: datetime) -> int:
        return sum(
            1
            for r in self.referrals
            if r.referrer_account_id == referrer_account_id and r.created_at >= since
        )

    async def list_paid_referrals_with_subscriptions(
        self,
        referrer_account_id: str,
    ) -> List[PaidReferral]:
        paid = []
        for referral in self.referrals:
            if referral.referrer_account_id != referrer_account_id:
                continue
            if referral.first_payment_at is None:
                continue
            subscription = self.subscriptions.get(referral.referred_account_id)
            paid.append(PaidReferral(
                referral_id=referral.id,
                referred_account_id=referral.referred_account_id,
                first_payment_at=referral.first_payment_at,
                subscription_status=subscription.status if subscription else None,
                cancelled_at=subscription.cancelled_at if subscription else None,
            ))
        return paid

    # ----- Tracking log -----

    async def count_tracking_events(
        self,
        ip_address: str,
        event_type: TrackingEventType = TrackingEventType.REGISTER,
    ) -> int:
        return sum(
            1
            for e in self.tracking_events
            if e.ip_address == ip_address and e.event_type == event_type
        )

    # ----- Suspicious referrals -----

    async def insert_suspicious_referral(self, record: SuspiciousReferral) -> str:
        self.suspicious_referrals.append(record.model_copy(deep=True))
        return record.id

    async def list_suspicious_referrals(
        self,
        status: Optional[ReviewStatus] = None,
        suspicion_type: Optional[SuspicionType] = None,
        severity: Optional[Severity] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[SuspiciousReferral]:
        rows = [
            r for r in self.suspicious_referrals
            if (status is None or r.status == status)
            and (suspicion_type is None or r.suspicion_type == suspicion_type)
            and (severity is None or r.severity == severity)
        ]
        rows.sort(key=lambda r: r.created_at, reverse=True)
        return rows[offset:offset + limit]
