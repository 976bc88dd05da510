"""Core types."""

from referral_guard.core.types import (
    SuspicionType,
    Severity,
    ReviewStatus,
    ActionTaken,
    TrackingEventType,
)

__all__ = [
    "SuspicionType",
    "Severity",
    "ReviewStatus",
    "ActionTaken",
    "TrackingEventType",
]
