"""Centralized logging configuration."""

import logging

PACKAGE_LOGGER = "referral_guard"


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Get a configured logger instance."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def configure_logging(level: str) -> logging.Logger:
    """Apply a level to every referral_guard.* module logger."""
    return get_logger(PACKAGE_LOGGER, level)
