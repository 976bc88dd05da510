"""Device fingerprint registry - module init."""

from referral_guard.detectors.device.registry import DeviceFingerprintRegistry
from referral_guard.detectors.device.schema import SameDeviceCheckResult

__all__ = ["DeviceFingerprintRegistry", "SameDeviceCheckResult"]
