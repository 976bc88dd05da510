"""Core types and enums."""

from enum import Enum


class SuspicionType(str, Enum):
    """Kinds of referral abuse a detector can report."""
    SAME_DEVICE = "same_device"          # Several accounts on one device
    REFERRAL_LOOP = "referral_loop"      # A -> B -> C -> A
    RAPID_REFERRALS = "rapid_referrals"  # Too many referrals in a short window
    QUICK_CANCEL = "quick_cancel"        # Referred accounts cancel right after paying


class Severity(str, Enum):
    """Severity of a suspicion, totally ordered low < medium < high < critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class ReviewStatus(str, Enum):
    """Review states of a suspicious referral.

    pending -> reviewing -> confirmed_fraud | false_positive | dismissed
    """
    PENDING = "pending"
    REVIEWING = "reviewing"
    CONFIRMED_FRAUD = "confirmed_fraud"
    FALSE_POSITIVE = "false_positive"
    DISMISSED = "dismissed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ReviewStatus.CONFIRMED_FRAUD,
            ReviewStatus.FALSE_POSITIVE,
            ReviewStatus.DISMISSED,
        )


class ActionTaken(str, Enum):
    """Action recorded by a reviewer on a confirmed case."""
    NONE = "none"
    REWARD_CANCELLED = "reward_cancelled"
    ACCOUNT_SUSPENDED = "account_suspended"
    ACCOUNT_TERMINATED = "account_terminated"


class TrackingEventType(str, Enum):
    """Events written to the referral tracking log."""
    CLICK = "click"
    REGISTER = "register"
    LOGIN = "login"
