"""Configuration module."""

from referral_guard.common.config.settings import (
    Config,
    Environment,
    LogLevel,
    get_config,
    reset_config,
)
from referral_guard.common.config.thresholds import DetectionThresholds

__all__ = [
    "Config",
    "Environment",
    "LogLevel",
    "get_config",
    "reset_config",
    "DetectionThresholds",
]
