"""Device Fingerprint Registry - links accounts to the devices they use.

Writes are idempotent upserts so a retried sighting never duplicates a link.
Reads fail open: a storage outage means "no same-device signal", never an
error in the referral flow.
"""

import logging
from typing import Any, Dict, Optional

from referral_guard.common.config.thresholds import DetectionThresholds
from referral_guard.common.constants import DetectionConstants
from referral_guard.common.exceptions import StorageError, ValidationError
from referral_guard.core.types import Severity
from referral_guard.detectors.device.schema import SameDeviceCheckResult
from referral_guard.storage.base import ReferralStore

logger = logging.getLogger(__name__)


class DeviceFingerprintRegistry:
    """Records device sightings and answers same-device questions.

    Severity by distinct linked accounts (defaults):
        1     -> not suspicious
        2     -> low
        3..4  -> medium
        5+    -> high
    """

    def __init__(self, store: ReferralStore, thresholds: Optional[DetectionThresholds] = None):
        """Initialize registry.

        Args:
            store: Referral store backend
            thresholds: Detection thresholds. Uses defaults if not provided.
        """
        self._store = store
        self._thresholds = thresholds or DetectionThresholds()

    async def record_sighting(
        self,
        fingerprint_hash: str,
        account_id: str,
        components: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Record that an account was seen on a device.

        Args:
            fingerprint_hash: Opaque device hash
            account_id: Account seen on the device
            components: Optional raw device signals to merge into the record

        Returns:
            The fingerprint id

        Raises:
            ValidationError: If the hash or account id is empty
            StorageError: If any store write fails
        """
        if not fingerprint_hash or not account_id:
            raise ValidationError(
                "fingerprint_hash and account_id are required",
                details={"fingerprint_hash": fingerprint_hash, "account_id": account_id},
            )

        fingerprint = await self._store.get_fingerprint_by_hash(fingerprint_hash)
        if fingerprint is None:
            # Concurrent first sightings converge on one row via ON CONFLICT
            fingerprint = await self._store.create_fingerprint(fingerprint_hash, components)
        else:
            await self._store.touch_fingerprint(fingerprint.id, components)

        await self._store.upsert_fingerprint_link(fingerprint.id, account_id)

        total = await self._store.count_fingerprint_links(fingerprint.id)
        await self._store.set_fingerprint_total_accounts(fingerprint.id, total)

        logger.debug(
            f"Recorded sighting fingerprint={fingerprint.id} account={account_id} "
            f"total_accounts={total}"
        )
        return fingerprint.id

    async def check_shared_accounts(
        self,
        fingerprint_hash: str,
        current_account_id: str,
    ) -> SameDeviceCheckResult:
        """Collect every account linked to the device.

        Args:
            fingerprint_hash: Opaque device hash
            current_account_id: Account being checked; always included

        Returns:
            SameDeviceCheckResult, not suspicious on storage failure
        """
        try:
            related = await self._store.list_accounts_for_fingerprint(fingerprint_hash)
        except StorageError as e:
            logger.warning(
                f"Same-device lookup failed for account={current_account_id}, "
                f"treating as no signal: {e.message}"
            )
            return SameDeviceCheckResult(
                is_suspicious=False,
                account_count=1,
                related_accounts=[current_account_id],
                severity=None,
                fingerprint_hash=fingerprint_hash,
            )

        related_accounts = list(related)
        if current_account_id not in related_accounts:
            related_accounts.append(current_account_id)

        account_count = len(related_accounts)
        severity = self._severity_for(account_count)

        return SameDeviceCheckResult(
            is_suspicious=severity is not None,
            account_count=account_count,
            related_accounts=related_accounts,
            severity=severity,
            fingerprint_hash=fingerprint_hash,
        )

    async def is_pair_on_same_device(
        self,
        fingerprint_hash: str,
        account_a: str,
        account_b: str,
    ) -> bool:
        """True iff both accounts are linked to the device. False on storage failure."""
        try:
            linked = set(await self._store.list_accounts_for_fingerprint(fingerprint_hash))
        except StorageError as e:
            logger.warning(f"Same-device pair lookup failed: {e.message}")
            return False

        return account_a in linked and account_b in linked

    def _severity_for(self, account_count: int) -> Optional[Severity]:
        if account_count < DetectionConstants.SAME_DEVICE_LOW_ACCOUNTS:
            return None
        if account_count >= self._thresholds.same_device_high_accounts:
            return Severity.HIGH
        if account_count >= self._thresholds.same_device_medium_accounts:
            return Severity.MEDIUM
        return Severity.LOW
