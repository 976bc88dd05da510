"""Device fingerprint schemas - canonical definitions."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class DeviceFingerprint(BaseModel):
    """A device seen by the referral flow.

    fingerprint_hash is computed externally from device signals and is
    treated as an opaque identifier.
    """
    id: str = Field(default_factory=lambda: str(uuid4()), description="Fingerprint identifier")
    fingerprint_hash: str = Field(..., min_length=1, description="Stable device hash (unique)")
    fingerprint_components: Optional[Dict[str, Any]] = Field(
        default=None, description="Raw device signals the hash was derived from"
    )
    total_accounts: int = Field(default=0, ge=0, description="Distinct accounts linked to this device")
    first_seen_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_seen_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "0b7f6a1e-6b43-4a53-9a3e-0d8f2f1f0c11",
                "fingerprint_hash": "fp_3f9a1c",
                "fingerprint_components": {"platform": "MacIntel", "timezone": "Asia/Taipei"},
                "total_accounts": 2,
                "first_seen_at": "2026-01-10T08:00:00Z",
                "last_seen_at": "2026-01-12T09:30:00Z",
            }
        }
    }


class DeviceFingerprintAccountLink(BaseModel):
    """An account observed on a device. Unique per (fingerprint_id, account_id)."""
    fingerprint_id: str = Field(..., description="Linked fingerprint")
    account_id: str = Field(..., min_length=1, description="Account seen on the device")
    first_seen_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_seen_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
