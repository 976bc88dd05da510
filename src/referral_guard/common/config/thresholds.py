"""Detection thresholds.

Closed constants chosen once and documented in DetectionConstants. They are
carried as an explicit object passed into detector constructors so tests can
override them without touching module-level state.
"""

from pathlib import Path
from typing import Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, model_validator

from referral_guard.common.constants import DetectionConstants
from referral_guard.common.exceptions import ConfigurationError


class DetectionThresholds(BaseModel):
    """Thresholds for every detector, defaulted to the documented values."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Same-device
    same_device_medium_accounts: int = Field(
        default=DetectionConstants.SAME_DEVICE_MEDIUM_ACCOUNTS,
        ge=2,
        description="Linked account count at which same-device becomes medium"
    )
    same_device_high_accounts: int = Field(
        default=DetectionConstants.SAME_DEVICE_HIGH_ACCOUNTS,
        ge=2,
        description="Linked account count at which same-device becomes high"
    )

    # Referral velocity
    rapid_referrals_24h: int = Field(
        default=DetectionConstants.RAPID_REFERRALS_24H,
        ge=0,
        description="Referrals allowed in the trailing 24 hours"
    )
    rapid_referrals_7d: int = Field(
        default=DetectionConstants.RAPID_REFERRALS_7D,
        ge=0,
        description="Referrals allowed in the trailing 7 days"
    )
    rapid_referrals_high_severity: int = Field(
        default=DetectionConstants.RAPID_REFERRALS_HIGH_SEVERITY,
        ge=0,
        description="Referral count above which velocity severity is high"
    )

    # Early cancellation
    quick_cancel_days: int = Field(
        default=DetectionConstants.QUICK_CANCEL_DAYS,
        gt=0,
        description="Days after first payment within which a cancellation counts"
    )
    quick_cancel_count: int = Field(
        default=DetectionConstants.QUICK_CANCEL_COUNT,
        ge=1,
        description="Quick cancellations needed to flag the referrer"
    )
    quick_cancel_high_severity: int = Field(
        default=DetectionConstants.QUICK_CANCEL_HIGH_SEVERITY,
        ge=1,
        description="Cancellation count above which severity is high"
    )

    # Shared IP
    shared_ip_registrations: int = Field(
        default=DetectionConstants.SHARED_IP_REGISTRATIONS,
        ge=0,
        description="Registrations from one IP allowed before it corroborates"
    )

    @model_validator(mode="after")
    def _check_same_device_order(self) -> "DetectionThresholds":
        if self.same_device_high_accounts < self.same_device_medium_accounts:
            raise ValueError(
                "same_device_high_accounts must be >= same_device_medium_accounts"
            )
        return self

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "DetectionThresholds":
        """Load thresholds from a YAML file.

        The file holds a mapping under a top-level ``thresholds`` key. Keys
        that are absent keep their defaults.

        Raises:
            ConfigurationError: If the file is missing or malformed
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(
                f"Thresholds file not found: {path}",
                details={"path": str(path)},
            )

        try:
            with open(path, "r") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Malformed thresholds file {path}: {e}",
                details={"path": str(path)},
            ) from e

        values = raw.get("thresholds", raw) if isinstance(raw, dict) else None
        if not isinstance(values, dict):
            raise ConfigurationError(
                "Thresholds file must contain a mapping",
                details={"path": str(path)},
            )

        try:
            return cls(**values)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid thresholds in {path}",
                details={"path": str(path), "errors": e.errors(include_url=False)},
            ) from e
