"""Custom exceptions for ReferralGuard.

Provides a hierarchy of exceptions for different error types.
All ReferralGuard exceptions inherit from ReferralGuardException.
"""

from typing import Any, Dict, Optional


class ReferralGuardException(Exception):
    """Base exception for all ReferralGuard errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: str = "REFGUARD_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(ReferralGuardException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class ValidationError(ReferralGuardException):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class StorageError(ReferralGuardException):
    """Raised when the persistence layer cannot be reached or rejects a query.

    Covers connection failures, constraint violations and timeouts.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: str = "STORAGE_ERROR",
    ):
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, code=code, details=details)


class GraphQueryError(StorageError):
    """Raised when the recursive referral-chain query is unavailable or fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = "walk_referral_chain",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            operation=operation,
            details=details,
            code="GRAPH_QUERY_ERROR",
        )


class DetectorError(ReferralGuardException):
    """Raised when a detector branch fails unexpectedly."""

    def __init__(
        self,
        message: str,
        detector_name: str,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        details["detector_name"] = detector_name
        super().__init__(message, code="DETECTOR_ERROR", details=details)
