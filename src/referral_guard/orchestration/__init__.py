"""Orchestration - fraud check fan-out, recording and background dispatch."""

from referral_guard.orchestration.dispatcher import FraudCheckDispatcher
from referral_guard.orchestration.fraud_check import (
    BranchError,
    FraudCheckOrchestrator,
    FraudCheckParams,
    FraudCheckResult,
)

__all__ = [
    "BranchError",
    "FraudCheckDispatcher",
    "FraudCheckOrchestrator",
    "FraudCheckParams",
    "FraudCheckResult",
]
