"""Common utilities - logging, config, exceptions."""

from referral_guard.common.logging.logger import get_logger
from referral_guard.common.config import (
    Config,
    DetectionThresholds,
    get_config,
    reset_config,
)
from referral_guard.common.exceptions import (
    ReferralGuardException,
    ConfigurationError,
    ValidationError,
    StorageError,
    GraphQueryError,
    DetectorError,
)

__all__ = [
    # Logging
    "get_logger",
    # Config
    "Config",
    "DetectionThresholds",
    "get_config",
    "reset_config",
    # Exceptions
    "ReferralGuardException",
    "ConfigurationError",
    "ValidationError",
    "StorageError",
    "GraphQueryError",
    "DetectorError",
]
