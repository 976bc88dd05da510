"""Centralized constants for ReferralGuard system configuration."""


# ===== DETECTION THRESHOLDS (defaults) =====
class DetectionConstants:
    # Same-device account counts
    SAME_DEVICE_LOW_ACCOUNTS = 2
    SAME_DEVICE_MEDIUM_ACCOUNTS = 3
    SAME_DEVICE_HIGH_ACCOUNTS = 5

    # Referral velocity (strictly greater than)
    RAPID_REFERRALS_24H = 5
    RAPID_REFERRALS_7D = 10
    RAPID_REFERRALS_HIGH_SEVERITY = 10

    # Early cancellation
    QUICK_CANCEL_DAYS = 7
    QUICK_CANCEL_COUNT = 2
    QUICK_CANCEL_HIGH_SEVERITY = 3

    # Shared IP (strictly greater than)
    SHARED_IP_REGISTRATIONS = 5

    # Referral loop traversal
    LOOP_MAX_DEPTH = 10


# ===== TIME WINDOWS =====
class WindowConstants:
    HOURS_24 = 24
    HOURS_7D = 24 * 7


# ===== ORCHESTRATION =====
class OrchestrationConstants:
    BRANCH_TIMEOUT_SECONDS = 3.0
    DISPATCH_MAX_PENDING = 1000
    DRAIN_TIMEOUT_SECONDS = 10.0


# ===== STORAGE =====
class StorageConstants:
    POOL_MIN_SIZE = 1
    POOL_MAX_SIZE = 10
    COMMAND_TIMEOUT_SECONDS = 5.0
    DEFAULT_QUERY_LIMIT = 50
    MAX_QUERY_LIMIT = 500


# ===== MONITORING =====
class MonitoringConstants:
    DEFAULT_BATCH_SIZE = 20
    DEFAULT_NAMESPACE = "ReferralGuard"
    FRAUD_CHECK_LATENCY_WARNING_MS = 1000
    MAX_BUFFERED_METRICS = 1000
    FLUSH_INTERVAL_SECONDS = 10.0
    SHUTDOWN_TIMEOUT_SECONDS = 5.0
