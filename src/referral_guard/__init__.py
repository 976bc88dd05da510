"""ReferralGuard - referral fraud detection engine."""

__version__ = "0.1.0"
__author__ = "ReferralGuard Team"

# Core exports
from referral_guard.core.types import Severity, SuspicionType, ReviewStatus

__all__ = [
    "Severity",
    "SuspicionType",
    "ReviewStatus",
]
