"""Configuration management - Centralized configuration for ReferralGuard.

Provides environment-aware configuration with sensible defaults.
All configuration is loaded from environment variables with fallbacks.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from referral_guard.common.config.thresholds import DetectionThresholds
from referral_guard.common.constants import (
    DetectionConstants,
    MonitoringConstants,
    OrchestrationConstants,
    StorageConstants,
)
from referral_guard.common.exceptions import ConfigurationError


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # settings.py -> config -> common -> referral_guard -> src -> project_root
    current = Path(__file__).resolve()
    return current.parent.parent.parent.parent.parent


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


def _optional_path(name: str) -> Optional[Path]:
    value = os.getenv(name)
    return Path(value) if value else None


@dataclass
class Config:
    """Central configuration object for ReferralGuard.

    All settings can be overridden via environment variables prefixed with REFGUARD_.

    Example:
        REFGUARD_ENVIRONMENT=production
        REFGUARD_DATABASE_URL=postgresql://app@db/referrals
        REFGUARD_BRANCH_TIMEOUT_SECONDS=2.5
    """

    # Core settings
    environment: Environment = field(
        default_factory=lambda: Environment(
            os.getenv("REFGUARD_ENVIRONMENT", "development")
        )
    )
    debug: bool = field(
        default_factory=lambda: _env_bool("REFGUARD_DEBUG")
    )
    log_level: LogLevel = field(
        default_factory=lambda: LogLevel(os.getenv("REFGUARD_LOG_LEVEL", "INFO"))
    )

    # Paths
    project_root: Path = field(default_factory=_get_project_root)

    # Database settings
    database_url: Optional[str] = field(
        default_factory=lambda: os.getenv("REFGUARD_DATABASE_URL")
    )
    db_pool_min_size: int = field(
        default_factory=lambda: int(
            os.getenv("REFGUARD_DB_POOL_MIN_SIZE", str(StorageConstants.POOL_MIN_SIZE))
        )
    )
    db_pool_max_size: int = field(
        default_factory=lambda: int(
            os.getenv("REFGUARD_DB_POOL_MAX_SIZE", str(StorageConstants.POOL_MAX_SIZE))
        )
    )

    # Detection settings
    branch_timeout_seconds: float = field(
        default_factory=lambda: float(
            os.getenv(
                "REFGUARD_BRANCH_TIMEOUT_SECONDS",
                str(OrchestrationConstants.BRANCH_TIMEOUT_SECONDS),
            )
        )
    )
    loop_max_depth: int = field(
        default_factory=lambda: int(
            os.getenv("REFGUARD_LOOP_MAX_DEPTH", str(DetectionConstants.LOOP_MAX_DEPTH))
        )
    )
    thresholds_file: Optional[Path] = field(
        default_factory=lambda: _optional_path("REFGUARD_THRESHOLDS_FILE")
    )
    dispatch_max_pending: int = field(
        default_factory=lambda: int(
            os.getenv(
                "REFGUARD_DISPATCH_MAX_PENDING",
                str(OrchestrationConstants.DISPATCH_MAX_PENDING),
            )
        )
    )

    # Monitoring settings
    metrics_enabled: bool = field(
        default_factory=lambda: _env_bool("REFGUARD_METRICS_ENABLED")
    )
    cloudwatch_namespace: str = field(
        default_factory=lambda: os.getenv(
            "REFGUARD_CLOUDWATCH_NAMESPACE", MonitoringConstants.DEFAULT_NAMESPACE
        )
    )
    aws_region: str = field(
        default_factory=lambda: os.getenv("AWS_DEFAULT_REGION", "us-east-1")
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.branch_timeout_seconds <= 0:
            raise ConfigurationError(
                "REFGUARD_BRANCH_TIMEOUT_SECONDS must be positive",
                details={"branch_timeout_seconds": self.branch_timeout_seconds},
            )

        if self.loop_max_depth < 1:
            raise ConfigurationError(
                "REFGUARD_LOOP_MAX_DEPTH must be at least 1",
                details={"loop_max_depth": self.loop_max_depth},
            )

        if self.db_pool_min_size < 0 or self.db_pool_max_size < max(1, self.db_pool_min_size):
            raise ConfigurationError(
                "Database pool sizes are inconsistent",
                details={
                    "db_pool_min_size": self.db_pool_min_size,
                    "db_pool_max_size": self.db_pool_max_size,
                },
            )

        if self.dispatch_max_pending < 1:
            raise ConfigurationError(
                "REFGUARD_DISPATCH_MAX_PENDING must be at least 1",
                details={"dispatch_max_pending": self.dispatch_max_pending},
            )

        if self.is_production and not self.database_url:
            raise ConfigurationError(
                "REFGUARD_DATABASE_URL must be set in production"
            )

        # Warn about debug in production
        if self.environment == Environment.PRODUCTION and self.debug:
            import warnings
            warnings.warn(
                "Debug mode is enabled in production environment",
                RuntimeWarning,
                stacklevel=2
            )

    def load_thresholds(self) -> DetectionThresholds:
        """Load detection thresholds from the configured file, or defaults."""
        if self.thresholds_file is None:
            return DetectionThresholds()
        path = self.thresholds_file
        if not path.is_absolute():
            path = self.project_root / path
        return DetectionThresholds.from_yaml(path)

    @property
    def config_dir(self) -> Path:
        """Get the config directory path."""
        return self.project_root / "config"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def effective_log_level(self) -> str:
        """Log level to apply; REFGUARD_DEBUG forces DEBUG."""
        if self.debug:
            return LogLevel.DEBUG.value
        return self.log_level.value


# Singleton instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config: The global configuration singleton.
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
