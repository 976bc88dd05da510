"""Suspicion schemas - typed evidence and the persisted review record.

Evidence is a tagged union keyed by ``suspicion_type``: each detector has its
own evidence model, and all of them share the detection timestamp and the
optional corroborating IP address.
"""

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from referral_guard.core.types import (
    ActionTaken,
    ReviewStatus,
    Severity,
    SuspicionType,
)


class EvidenceBase(BaseModel):
    """Fields common to every evidence payload."""
    detection_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the detector produced this evidence"
    )
    ip_address: Optional[str] = Field(
        default=None,
        description="Registration IP, attached when the shared-IP check corroborates"
    )


class SameDeviceEvidence(EvidenceBase):
    """Several accounts were seen on the same device."""
    suspicion_type: Literal["same_device"] = "same_device"
    fingerprint_hash: str
    related_accounts: List[str] = Field(default_factory=list)
    account_count: int = Field(..., ge=1)


class ReferralLoopEvidence(EvidenceBase):
    """The new edge closes a cycle in the referral tree."""
    suspicion_type: Literal["referral_loop"] = "referral_loop"
    loop_chain: List[str] = Field(
        ..., description="Accounts from the referred account up to the referrer"
    )
    loop_length: int = Field(..., ge=1)


class RapidReferralsEvidence(EvidenceBase):
    """The referrer produced too many referrals in a short window."""
    suspicion_type: Literal["rapid_referrals"] = "rapid_referrals"
    referral_count: int = Field(..., ge=0)
    time_window_hours: int = Field(..., gt=0)
    referrals_24h: Optional[int] = None
    threshold_24h: Optional[int] = None
    referrals_7d: Optional[int] = None
    threshold_7d: Optional[int] = None


class QuickCancelEvidence(EvidenceBase):
    """Referred accounts cancelled shortly after their first payment."""
    suspicion_type: Literal["quick_cancel"] = "quick_cancel"
    cancel_count: int = Field(..., ge=0)
    cancel_within_days: int = Field(..., gt=0)
    threshold: Optional[int] = None


SuspicionEvidence = Annotated[
    Union[
        SameDeviceEvidence,
        ReferralLoopEvidence,
        RapidReferralsEvidence,
        QuickCancelEvidence,
    ],
    Field(discriminator="suspicion_type"),
]


class FraudSuspicion(BaseModel):
    """One typed, severity-ranked signal produced for one referral event."""
    severity: Severity
    evidence: SuspicionEvidence

    @property
    def suspicion_type(self) -> SuspicionType:
        return SuspicionType(self.evidence.suspicion_type)

    @property
    def detected_at(self) -> datetime:
        return self.evidence.detection_time


class SuspiciousReferral(BaseModel):
    """A suspicion persisted for human review.

    The engine only ever creates rows in ``pending``; review fields are
    owned by the external review workflow.
    """
    id: str = Field(default_factory=lambda: str(uuid4()))
    referral_id: Optional[str] = Field(
        default=None, description="Null when the referral row is not committed yet"
    )
    referrer_account_id: str = Field(..., min_length=1)
    referred_account_id: str = Field(..., min_length=1)
    suspicion_type: SuspicionType
    severity: Severity
    evidence: SuspicionEvidence
    status: ReviewStatus = Field(default=ReviewStatus.PENDING)

    # Review workflow
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    action_taken: Optional[ActionTaken] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def check_type_matches_evidence(self) -> "SuspiciousReferral":
        if self.suspicion_type != SuspicionType(self.evidence.suspicion_type):
            raise ValueError(
                f"suspicion_type {self.suspicion_type.value} does not match "
                f"evidence type {self.evidence.suspicion_type}"
            )
        return self

    def evidence_payload(self) -> dict:
        """Evidence as a JSON-ready dict, omitting empty fields."""
        return self.evidence.model_dump(mode="json", exclude_none=True)
