"""Data layer - schemas shared by the store, detectors and API."""

from referral_guard.data.schemas import (
    DeviceFingerprint,
    DeviceFingerprintAccountLink,
    Referral,
    Subscription,
    TrackingEvent,
    PaidReferral,
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
    "FraudSuspicion",
    "SuspiciousReferral",
]
