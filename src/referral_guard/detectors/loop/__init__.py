"""Referral loop detection - module init."""

from referral_guard.detectors.loop.detector import (
    LOOP_SEVERITY,
    FallbackLoopDetector,
    IterativeLoopDetector,
    LoopDetector,
    RecursiveQueryLoopDetector,
    build_loop_detector,
)
from referral_guard.detectors.loop.schema import LoopCheckResult

__all__ = [
    "LOOP_SEVERITY",
    "LoopDetector",
    "RecursiveQueryLoopDetector",
    "IterativeLoopDetector",
    "FallbackLoopDetector",
    "build_loop_detector",
    "LoopCheckResult",
]
