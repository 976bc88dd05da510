"""Abnormal pattern detection - module init."""

from referral_guard.detectors.patterns.detector import AbnormalPatternDetector
from referral_guard.detectors.patterns.schema import PatternCheckResult, SharedIpCheckResult

__all__ = ["AbnormalPatternDetector", "PatternCheckResult", "SharedIpCheckResult"]
