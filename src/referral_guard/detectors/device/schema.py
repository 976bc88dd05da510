"""Same-device check output schema."""

from typing import List, Optional

from pydantic import BaseModel, Field

from referral_guard.core.types import Severity


class SameDeviceCheckResult(BaseModel):
    """Accounts linked to one device fingerprint.

    related_accounts always contains the account being checked.
    """

    is_suspicious: bool = Field(..., description="True when two or more accounts share the device")
    account_count: int = Field(..., ge=1, description="len(related_accounts)")
    related_accounts: List[str] = Field(default_factory=list)
    severity: Optional[Severity] = Field(default=None, description="None when not suspicious")
    fingerprint_hash: str

    model_config = {
        "json_schema_extra": {
            "example": {
                "is_suspicious": True,
                "account_count": 3,
                "related_accounts": ["acct_a", "acct_b", "acct_c"],
                "severity": "medium",
                "fingerprint_hash": "fp_3f9a1c",
            }
        }
    }
