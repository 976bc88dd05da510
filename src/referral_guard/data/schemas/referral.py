"""Referral-side schemas.

These records are owned by the referral and billing subsystems. The fraud
engine only reads them.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from referral_guard.core.types import TrackingEventType


class Referral(BaseModel):
    """A referrer -> referred edge. Each account has at most one referrer."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    referrer_account_id: str = Field(..., min_length=1)
    referred_account_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    first_payment_at: Optional[datetime] = Field(
        default=None, description="When the referred account first paid"
    )


class Subscription(BaseModel):
    """Subscription state of an account."""
    account_id: str = Field(..., min_length=1)
    status: str = Field(default="active", description="e.g. active, cancelled, expired")
    cancelled_at: Optional[datetime] = Field(default=None)


class TrackingEvent(BaseModel):
    """One row of the referral tracking log."""
    ip_address: str = Field(..., min_length=1)
    event_type: TrackingEventType = Field(...)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PaidReferral(BaseModel):
    """A paid referral joined with the referred account's subscription."""
    referral_id: str
    referred_account_id: str
    first_payment_at: datetime
    subscription_status: Optional[str] = None
    cancelled_at: Optional[datetime] = None

    @property
    def is_cancelled(self) -> bool:
        return self.subscription_status == "cancelled" and self.cancelled_at is not None
