"""Detectors - same-device, referral loop and abnormal pattern checks."""

from referral_guard.detectors.device import DeviceFingerprintRegistry, SameDeviceCheckResult
from referral_guard.detectors.loop import (
    FallbackLoopDetector,
    IterativeLoopDetector,
    LoopCheckResult,
    LoopDetector,
    RecursiveQueryLoopDetector,
    build_loop_detector,
)
from referral_guard.detectors.patterns import (
    AbnormalPatternDetector,
    PatternCheckResult,
    SharedIpCheckResult,
)

__all__ = [
    "DeviceFingerprintRegistry",
    "SameDeviceCheckResult",
    "LoopDetector",
    "RecursiveQueryLoopDetector",
    "IterativeLoopDetector",
    "FallbackLoopDetector",
    "LoopCheckResult",
    "build_loop_detector",
    "AbnormalPatternDetector",
    "PatternCheckResult",
    "SharedIpCheckResult",
]
