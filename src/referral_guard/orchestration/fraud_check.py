"""Fraud Check Orchestrator - concurrent, fail-open referral fraud checks.

Execution model:
1. Same-device, loop, pattern and shared-IP branches run concurrently
2. Each branch has its own timeout; a failing branch is "no signal"
3. Same-device severity escalates to critical when both ends of the
   referral are on the device
4. A positive shared-IP check attaches the IP to every suspicion

perform_fraud_check_and_record is the terminal error boundary: it never
raises into the referral-registration flow.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, List, Optional, TypeVar

from pydantic import BaseModel, Field

from referral_guard.common.config.settings import Config
from referral_guard.common.config.thresholds import DetectionThresholds
from referral_guard.common.constants import DetectionConstants, OrchestrationConstants
from referral_guard.common.exceptions import DetectorError, ReferralGuardException
from referral_guard.core.types import ReviewStatus, Severity, SuspicionType
from referral_guard.data.schemas import (
    FraudSuspicion,
    QuickCancelEvidence,
    RapidReferralsEvidence,
    ReferralLoopEvidence,
    SameDeviceEvidence,
    SuspiciousReferral,
)
from referral_guard.detectors.device import DeviceFingerprintRegistry
from referral_guard.detectors.loop import LOOP_SEVERITY, LoopDetector, build_loop_detector
from referral_guard.detectors.patterns import AbnormalPatternDetector, SharedIpCheckResult
from referral_guard.monitoring.metrics import MetricsCollector
from referral_guard.storage.base import ReferralStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUSPICION_ORDER = (
    SuspicionType.SAME_DEVICE,
    SuspicionType.REFERRAL_LOOP,
    SuspicionType.RAPID_REFERRALS,
    SuspicionType.QUICK_CANCEL,
)


class FraudCheckParams(BaseModel):
    """One referral event to check."""
    referral_id: Optional[str] = Field(default=None, description="Null if the referral row is not committed")
    referrer_account_id: str = Field(..., min_length=1)
    referred_account_id: str = Field(..., min_length=1)
    fingerprint_hash: Optional[str] = Field(default=None, description="Device of the referred account")
    ip_address: Optional[str] = Field(default=None, description="Registration IP of the referred account")


@dataclass
class BranchError:
    """Structured error from a detector branch."""
    detector_name: str
    error_type: str
    error_message: str


class FraudCheckResult(BaseModel):
    """Suspicions found for one referral event, ordered by type."""
    is_suspicious: bool = False
    suspicions: List[FraudSuspicion] = Field(default_factory=list)
    failed_branches: List[str] = Field(
        default_factory=list,
        description="Branches that timed out or failed and contributed no signal"
    )


class FraudCheckOrchestrator:
    """Runs the detectors for a referral event and records suspicions."""

    def __init__(
        self,
        store: ReferralStore,
        thresholds: Optional[DetectionThresholds] = None,
        registry: Optional[DeviceFingerprintRegistry] = None,
        loop_detector: Optional[LoopDetector] = None,
        pattern_detector: Optional[AbnormalPatternDetector] = None,
        metrics: Optional[MetricsCollector] = None,
        branch_timeout_seconds: float = OrchestrationConstants.BRANCH_TIMEOUT_SECONDS,
        loop_max_depth: int = DetectionConstants.LOOP_MAX_DEPTH,
    ):
        """Initialize orchestrator.

        Args:
            store: Referral store shared by all detectors
            thresholds: Detection thresholds. Uses defaults if not provided.
            registry: Device registry. Built from store if not provided.
            loop_detector: Loop detector. Recursive-with-fallback if not provided.
            pattern_detector: Pattern detector. Built from store if not provided.
            metrics: Optional CloudWatch metrics collector
            branch_timeout_seconds: Per-branch timeout
            loop_max_depth: Parent hops walked by the loop detector
        """
        thresholds = thresholds or DetectionThresholds()
        self._store = store
        self._metrics = metrics
        self._branch_timeout = branch_timeout_seconds
        self._loop_max_depth = loop_max_depth

        self.registry = registry or DeviceFingerprintRegistry(store, thresholds)
        self.loop_detector = loop_detector or build_loop_detector(store, metrics=metrics)
        self.pattern_detector = pattern_detector or AbnormalPatternDetector(store, thresholds)

    @classmethod
    def from_config(
        cls,
        config: Config,
        store: ReferralStore,
        metrics: Optional[MetricsCollector] = None,
    ) -> "FraudCheckOrchestrator":
        return cls(
            store,
            thresholds=config.load_thresholds(),
            metrics=metrics,
            branch_timeout_seconds=config.branch_timeout_seconds,
            loop_max_depth=config.loop_max_depth,
        )

    async def perform_fraud_check(self, params: FraudCheckParams) -> FraudCheckResult:
        """Run every applicable detector concurrently.

        Args:
            params: Referral event

        Returns:
            FraudCheckResult with suspicions in deterministic type order
        """
        started = time.perf_counter()
        errors: List[BranchError] = []

        branches = [
            ("loop", self._check_loop(params)),
            ("patterns", self._check_patterns(params)),
        ]
        if params.fingerprint_hash:
            branches.append(("same_device", self._check_same_device(params)))
        if params.ip_address:
            branches.append((
                "shared_ip",
                self.pattern_detector.check_shared_ip(
                    params.referrer_account_id, params.ip_address
                ),
            ))

        outcomes = await asyncio.gather(
            *(self._run_branch(name, coro, errors) for name, coro in branches)
        )

        suspicions: List[FraudSuspicion] = []
        shared_ip: Optional[SharedIpCheckResult] = None
        for outcome in outcomes:
            if isinstance(outcome, SharedIpCheckResult):
                shared_ip = outcome
            elif outcome:
                suspicions.extend(outcome)

        suspicions.sort(key=lambda s: SUSPICION_ORDER.index(s.suspicion_type))

        if shared_ip is not None and shared_ip.is_suspicious:
            for suspicion in suspicions:
                suspicion.evidence.ip_address = params.ip_address

        if self._metrics is not None:
            latency_ms = (time.perf_counter() - started) * 1000
            self._metrics.record_check_latency(latency_ms, len(suspicions))

        return FraudCheckResult(
            is_suspicious=bool(suspicions),
            suspicions=suspicions,
            failed_branches=[e.detector_name for e in errors],
        )

    async def _run_branch(
        self,
        name: str,
        coro: Awaitable[T],
        errors: List[BranchError],
    ) -> Optional[T]:
        """Await one branch under the branch timeout. Failures yield None."""
        try:
            return await asyncio.wait_for(coro, timeout=self._branch_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Detector {name} timed out after {self._branch_timeout}s")
            errors.append(BranchError(
                detector_name=name,
                error_type="TimeoutError",
                error_message=f"timed out after {self._branch_timeout}s",
            ))
            if self._metrics is not None:
                self._metrics.record_branch_timeout(name)
            return None
        except Exception as e:
            error = DetectorError(
                f"Detector {name} failed: {type(e).__name__}: {e}",
                detector_name=name,
                details={"error_type": type(e).__name__},
            )
            logger.warning(
                error.message,
                extra={"error_code": error.code, "details": error.details},
            )
            errors.append(BranchError(
                detector_name=name,
                error_type=type(e).__name__,
                error_message=str(e),
            ))
            if self._metrics is not None:
                self._metrics.record_detector_error(name, type(e).__name__)
            return None

    async def _check_same_device(self, params: FraudCheckParams) -> List[FraudSuspicion]:
        device = await self.registry.check_shared_accounts(
            params.fingerprint_hash, params.referred_account_id
        )
        if not device.is_suspicious:
            return []

        severity = device.severity
        if await self.registry.is_pair_on_same_device(
            params.fingerprint_hash,
            params.referrer_account_id,
            params.referred_account_id,
        ):
            severity = Severity.CRITICAL

        return [FraudSuspicion(
            severity=severity,
            evidence=SameDeviceEvidence(
                fingerprint_hash=device.fingerprint_hash,
                related_accounts=device.related_accounts,
                account_count=device.account_count,
            ),
        )]

    async def _check_loop(self, params: FraudCheckParams) -> List[FraudSuspicion]:
        loop = await self.loop_detector.detect_loop(
            params.referrer_account_id,
            params.referred_account_id,
            max_depth=self._loop_max_depth,
        )
        if not loop.is_loop:
            return []

        return [FraudSuspicion(
            severity=LOOP_SEVERITY,
            evidence=ReferralLoopEvidence(
                loop_chain=loop.loop_chain,
                loop_length=loop.loop_length,
            ),
        )]

    async def _check_patterns(self, params: FraudCheckParams) -> List[FraudSuspicion]:
        patterns = await self.pattern_detector.check_patterns(params.referrer_account_id)
        suspicions = []

        if patterns.rapid_referrals:
            suspicions.append(FraudSuspicion(
                severity=patterns.rapid_referrals_severity,
                evidence=RapidReferralsEvidence(
                    referral_count=patterns.referral_count,
                    time_window_hours=patterns.time_window_hours,
                    referrals_24h=patterns.details.get("rapid_referrals_24h"),
                    threshold_24h=patterns.details.get("threshold_24h"),
                    referrals_7d=patterns.details.get("rapid_referrals_7d"),
                    threshold_7d=patterns.details.get("threshold_7d"),
                ),
            ))

        if patterns.quick_cancellations:
            suspicions.append(FraudSuspicion(
                severity=patterns.quick_cancel_severity,
                evidence=QuickCancelEvidence(
                    cancel_count=patterns.cancel_count,
                    cancel_within_days=self.pattern_detector.thresholds.quick_cancel_days,
                    threshold=patterns.details.get("quick_cancel_threshold"),
                ),
            ))

        return suspicions

    async def create_suspicious_referral(
        self,
        params: FraudCheckParams,
        suspicion: FraudSuspicion,
    ) -> str:
        """Persist one suspicion as a pending review record.

        Returns:
            The new row id

        Raises:
            StorageError: If the insert fails
        """
        record = SuspiciousReferral(
            referral_id=params.referral_id,
            referrer_account_id=params.referrer_account_id,
            referred_account_id=params.referred_account_id,
            suspicion_type=suspicion.suspicion_type,
            severity=suspicion.severity,
            evidence=suspicion.evidence,
            status=ReviewStatus.PENDING,
        )
        record_id = await self._store.insert_suspicious_referral(record)

        if self._metrics is not None:
            self._metrics.record_suspicion(
                suspicion.suspicion_type.value, suspicion.severity.value
            )
        return record_id

    async def perform_fraud_check_and_record(self, params: FraudCheckParams) -> None:
        """Record the device sighting, run the check and persist suspicions.

        Never raises. Every failure is logged with the account ids and the
        step that failed.
        """
        accounts = f"referrer={params.referrer_account_id} referred={params.referred_account_id}"

        try:
            if params.fingerprint_hash:
                try:
                    await self.registry.record_sighting(
                        params.fingerprint_hash, params.referred_account_id
                    )
                except ReferralGuardException as e:
                    logger.error(f"Fingerprint sighting failed ({accounts}): {e.code}: {e.message}")

            result = await self.perform_fraud_check(params)
            if not result.is_suspicious:
                return

            recorded = 0
            for suspicion in result.suspicions:
                try:
                    await self.create_suspicious_referral(params, suspicion)
                    recorded += 1
                except ReferralGuardException as e:
                    logger.error(
                        f"Failed to record {suspicion.suspicion_type.value} suspicion "
                        f"({accounts}): {e.code}: {e.message}"
                    )
                    if self._metrics is not None:
                        self._metrics.record_suspicion_write_failure(
                            suspicion.suspicion_type.value
                        )

            logger.info(
                f"Fraud check found {len(result.suspicions)} suspicion(s), "
                f"recorded {recorded} ({accounts}): "
                f"{[f'{s.suspicion_type.value} ({s.severity.value})' for s in result.suspicions]}"
            )
        except Exception:
            logger.exception(f"Fraud check failed ({accounts})")
