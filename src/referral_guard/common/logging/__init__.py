"""Logging helpers."""

from referral_guard.common.logging.logger import PACKAGE_LOGGER, configure_logging, get_logger

__all__ = ["PACKAGE_LOGGER", "configure_logging", "get_logger"]
