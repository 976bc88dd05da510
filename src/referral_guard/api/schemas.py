"""API Schemas - Request/Response models for the intake gateway."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from referral_guard.core.types import TrackingEventType


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class ReferralEventRequest(BaseModel):
    """Request body for POST /v1/referral-events."""
    referral_id: Optional[str] = Field(
        default=None, description="Referral row id, if already committed"
    )
    referrer_account_id: str = Field(..., min_length=1, description="Account making the referral")
    referred_account_id: str = Field(..., min_length=1, description="Account being referred")
    fingerprint_hash: Optional[str] = Field(
        default=None, min_length=1, description="Device fingerprint of the referred account"
    )
    ip_address: Optional[str] = Field(
        default=None, description="Registration IP of the referred account"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "referral_id": "7c1e0f5a-2d7b-4a43-8a4e-5b8f6e0d9a21",
                "referrer_account_id": "acct_referrer_01",
                "referred_account_id": "acct_new_42",
                "fingerprint_hash": "fp_3f9a1c",
                "ip_address": "203.0.113.7",
            }
        }
    }


class FingerprintSightingRequest(BaseModel):
    """Request body for POST /v1/fingerprints."""
    fingerprint_hash: str = Field(..., min_length=1, description="Device fingerprint hash")
    account_id: str = Field(..., min_length=1, description="Account seen on the device")
    fingerprint_components: Optional[Dict[str, Any]] = Field(
        default=None, description="Raw device signals the hash was derived from"
    )
    event_type: TrackingEventType = Field(
        default=TrackingEventType.REGISTER, description="Flow the sighting came from"
    )


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class ReferralEventResponse(BaseModel):
    """Response for POST /v1/referral-events."""
    accepted: bool = Field(..., description="False if the check was dropped under load")
    event_id: str = Field(..., description="Identifier for log correlation")


class FingerprintSightingResponse(BaseModel):
    """Response for POST /v1/fingerprints."""
    fingerprint_id: str


class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    request_id: Optional[str] = Field(
        default=None, description="Request ID for debugging"
    )
