"""Abnormal Pattern Detector - referral velocity and early cancellations.

Both checks run on every call and are independent: a storage failure in
one leaves it unflagged without affecting the other. Windows are trailing
wall-clock windows measured from the time of the call.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from referral_guard.common.config.thresholds import DetectionThresholds
from referral_guard.common.constants import WindowConstants
from referral_guard.common.exceptions import StorageError
from referral_guard.core.types import Severity, TrackingEventType
from referral_guard.data.schemas import PaidReferral
from referral_guard.detectors.patterns.schema import PatternCheckResult, SharedIpCheckResult
from referral_guard.storage.base import ReferralStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AbnormalPatternDetector:
    """Flags referrers with abnormal referral behavior.

    Velocity: more than 5 referrals in 24h or more than 10 in 7 days.
    Early cancellation: 2 or more paid referrals cancelled within 7 days
    of their first payment.
    """

    def __init__(
        self,
        store: ReferralStore,
        thresholds: Optional[DetectionThresholds] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize detector.

        Args:
            store: Referral store backend
            thresholds: Detection thresholds. Uses defaults if not provided.
            clock: Returns the current UTC time. Injectable for testing.
        """
        self._store = store
        self._thresholds = thresholds or DetectionThresholds()
        self._clock = clock or _utcnow

    @property
    def thresholds(self) -> DetectionThresholds:
        return self._thresholds

    async def check_patterns(self, referrer_account_id: str) -> PatternCheckResult:
        """Run the velocity and early-cancellation checks for a referrer."""
        result = PatternCheckResult()
        await self._check_velocity(referrer_account_id, result)
        await self._check_quick_cancellations(referrer_account_id, result)
        return result

    async def _check_velocity(self, referrer_account_id: str, result: PatternCheckResult) -> None:
        t = self._thresholds
        now = self._clock()

        try:
            count_24h = await self._store.count_referrals_since(
                referrer_account_id, now - timedelta(hours=WindowConstants.HOURS_24)
            )
            count_7d = await self._store.count_referrals_since(
                referrer_account_id, now - timedelta(hours=WindowConstants.HOURS_7D)
            )
        except StorageError as e:
            logger.warning(
                f"Velocity check failed for referrer={referrer_account_id}: {e.message}"
            )
            return

        if count_24h > t.rapid_referrals_24h:
            result.rapid_referrals = True
            result.referral_count = count_24h
            result.time_window_hours = WindowConstants.HOURS_24
            result.details["rapid_referrals_24h"] = count_24h
            result.details["threshold_24h"] = t.rapid_referrals_24h

        if count_7d > t.rapid_referrals_7d:
            result.rapid_referrals = True
            if result.referral_count is None or count_7d > result.referral_count:
                result.referral_count = count_7d
                result.time_window_hours = WindowConstants.HOURS_7D
            result.details["rapid_referrals_7d"] = count_7d
            result.details["threshold_7d"] = t.rapid_referrals_7d

        if result.rapid_referrals:
            result.rapid_referrals_severity = (
                Severity.HIGH
                if result.referral_count > t.rapid_referrals_high_severity
                else Severity.MEDIUM
            )

    async def _check_quick_cancellations(
        self,
        referrer_account_id: str,
        result: PatternCheckResult,
    ) -> None:
        t = self._thresholds

        try:
            paid = await self._store.list_paid_referrals_with_subscriptions(referrer_account_id)
        except StorageError as e:
            logger.warning(
                f"Early-cancellation check failed for referrer={referrer_account_id}: {e.message}"
            )
            return

        cancel_count = self._count_quick_cancels(paid, timedelta(days=t.quick_cancel_days))
        if cancel_count < t.quick_cancel_count:
            return

        result.quick_cancellations = True
        result.cancel_count = cancel_count
        result.details["quick_cancel_count"] = cancel_count
        result.details["quick_cancel_threshold"] = t.quick_cancel_count
        result.quick_cancel_severity = (
            Severity.HIGH if cancel_count > t.quick_cancel_high_severity else Severity.MEDIUM
        )

    @staticmethod
    def _count_quick_cancels(paid: List[PaidReferral], within: timedelta) -> int:
        return sum(
            1
            for referral in paid
            if referral.is_cancelled
            and referral.cancelled_at - referral.first_payment_at <= within
        )

    async def check_shared_ip(
        self,
        referrer_account_id: str,
        ip_address: Optional[str],
    ) -> SharedIpCheckResult:
        """Count registrations from an IP address.

        Suspicious when the count exceeds the shared-IP threshold. The result
        only corroborates other suspicions; it never originates one.
        """
        if not ip_address:
            return SharedIpCheckResult(is_suspicious=False, count=0)

        try:
            count = await self._store.count_tracking_events(
                ip_address, TrackingEventType.REGISTER
            )
        except StorageError as e:
            logger.warning(
                f"Shared-IP check failed for referrer={referrer_account_id}: {e.message}"
            )
            return SharedIpCheckResult(is_suspicious=False, count=0)

        return SharedIpCheckResult(
            is_suspicious=count > self._thresholds.shared_ip_registrations,
            count=count,
        )
