"""Data schemas - canonical Pydantic definitions."""

from referral_guard.data.schemas.fingerprint import (
    DeviceFingerprint,
    DeviceFingerprintAccountLink,
)
from referral_guard.data.schemas.referral import (
    Referral,
    Subscription,
    TrackingEvent,
    PaidReferral,
)
from referral_guard.data.schemas.suspicion import (
    EvidenceBase,
    SameDeviceEvidence,
    ReferralLoopEvidence,
    RapidReferralsEvidence,
    QuickCancelEvidence,
    SuspicionEvidence,
    FraudSuspicion,
    SuspiciousReferral,
)

__all__ = [
    "DeviceFingerprint",
    "DeviceFingerprintAccountLink",
    "Referral",
    "Subscription",
    "TrackingEvent",
    "PaidReferral",
    "EvidenceBase",
    "SameDeviceEvidence",
    "ReferralLoopEvidence",
    "RapidReferralsEvidence",
    "QuickCancelEvidence",
    "SuspicionEvidence",
    "FraudSuspicion",
    "SuspiciousReferral",
]
