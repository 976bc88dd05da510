"""Abnormal pattern check output schemas."""

from typing import Dict, Optional

from pydantic import BaseModel, Field

from referral_guard.core.types import Severity


class PatternCheckResult(BaseModel):
    """Referral velocity and early-cancellation statistics for one referrer.

    details only carries the keys of the checks that tripped:
    rapid_referrals_24h / threshold_24h, rapid_referrals_7d / threshold_7d,
    quick_cancel_count / quick_cancel_threshold.
    """

    rapid_referrals: bool = False
    quick_cancellations: bool = False
    referral_count: Optional[int] = Field(default=None, description="Larger triggering window count")
    time_window_hours: Optional[int] = Field(default=None, description="Window of referral_count")
    cancel_count: Optional[int] = None
    rapid_referrals_severity: Optional[Severity] = None
    quick_cancel_severity: Optional[Severity] = None
    details: Dict[str, int] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "example": {
                "rapid_referrals": True,
                "quick_cancellations": False,
                "referral_count": 12,
                "time_window_hours": 24,
                "cancel_count": None,
                "rapid_referrals_severity": "high",
                "quick_cancel_severity": None,
                "details": {
                    "rapid_referrals_24h": 12,
                    "threshold_24h": 5,
                    "rapid_referrals_7d": 12,
                    "threshold_7d": 10,
                },
            }
        }
    }


class SharedIpCheckResult(BaseModel):
    """Registrations seen from one IP address."""

    is_suspicious: bool = False
    count: int = Field(default=0, ge=0)
