"""Referral Loop Detector - finds referral edges that close a cycle.

Adding referrer -> referred closes a loop iff walking up the parent chain
from the referred account reaches the referrer. Two strategies share one
interface:

- RecursiveQueryLoopDetector: a single server-side recursive query
- IterativeLoopDetector: one "who referred this account" lookup per hop

FallbackLoopDetector composes them so callers never know which one ran.
Any detected loop is high severity; the depth bound is a safety valve and
reaching it reports no loop rather than an error.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from referral_guard.common.constants import DetectionConstants
from referral_guard.common.exceptions import GraphQueryError, StorageError
from referral_guard.core.types import Severity
from referral_guard.detectors.loop.schema import LoopCheckResult
from referral_guard.monitoring.metrics import MetricsCollector
from referral_guard.storage.base import ReferralStore

logger = logging.getLogger(__name__)

LOOP_SEVERITY = Severity.HIGH


class LoopDetector(ABC):
    """Interface for referral loop detection strategies."""

    async def detect_loop(
        self,
        referrer_account_id: str,
        referred_account_id: str,
        max_depth: int = DetectionConstants.LOOP_MAX_DEPTH,
    ) -> LoopCheckResult:
        """Check whether the edge referrer -> referred closes a loop.

        Args:
            referrer_account_id: Account making the referral
            referred_account_id: Account being referred
            max_depth: Maximum parent hops to walk from the referred account

        Returns:
            LoopCheckResult. A self-referral is a loop of length 1.
        """
        if referrer_account_id == referred_account_id:
            return LoopCheckResult.found([referrer_account_id])

        return await self._walk(referrer_account_id, referred_account_id, max_depth)

    @abstractmethod
    async def _walk(
        self,
        referrer_account_id: str,
        referred_account_id: str,
        max_depth: int,
    ) -> LoopCheckResult:
        """Strategy-specific ascent from the referred account."""


class RecursiveQueryLoopDetector(LoopDetector):
    """Walks the chain with one recursive store query.

    Raises GraphQueryError when the store cannot run the query.
    """

    def __init__(self, store: ReferralStore):
        self._store = store

    async def _walk(self, referrer_account_id, referred_account_id, max_depth):
        if not self._store.supports_recursive_queries:
            raise GraphQueryError(
                f"{type(self._store).__name__} does not support recursive queries"
            )

        chain = await self._store.walk_referral_chain(
            referred_account_id, referrer_account_id, max_depth
        )
        if chain and chain[-1] == referrer_account_id:
            return LoopCheckResult.found(chain)
        return LoopCheckResult.no_loop()


class IterativeLoopDetector(LoopDetector):
    """Walks the chain one parent lookup at a time.

    Stops at the root, at the referrer, at a repeated node, or after
    max_depth hops. A repeated node means the stored tree already contains
    a cycle unrelated to this edge; it is reported as no loop, logged and
    counted as a data-integrity problem.
    """

    def __init__(self, store: ReferralStore, metrics: Optional[MetricsCollector] = None):
        self._store = store
        self._metrics = metrics

    async def _walk(self, referrer_account_id, referred_account_id, max_depth):
        chain = [referred_account_id]
        visited = {referred_account_id}
        current = referred_account_id

        for _ in range(max_depth):
            parent = await self._store.get_referrer_of(current)
            if parent is None:
                return LoopCheckResult.no_loop()

            if parent == referrer_account_id:
                chain.append(parent)
                return LoopCheckResult.found(chain)

            if parent in visited:
                logger.warning(
                    f"Referral chain from {referred_account_id} revisits {parent}; "
                    f"stored referral tree is inconsistent"
                )
                if self._metrics is not None:
                    self._metrics.record_chain_corruption()
                return LoopCheckResult.no_loop()

            visited.add(parent)
            chain.append(parent)
            current = parent

        logger.debug(
            f"Loop walk from {referred_account_id} hit max_depth={max_depth} "
            f"without reaching {referrer_account_id}"
        )
        return LoopCheckResult.no_loop()


class FallbackLoopDetector(LoopDetector):
    """Runs the primary strategy and falls back on GraphQueryError.

    If the fallback also fails with a storage error, the result is no loop.
    """

    def __init__(
        self,
        primary: LoopDetector,
        fallback: LoopDetector,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._primary = primary
        self._fallback = fallback
        self._metrics = metrics

    async def _walk(self, referrer_account_id, referred_account_id, max_depth):
        try:
            return await self._primary._walk(
                referrer_account_id, referred_account_id, max_depth
            )
        except GraphQueryError as e:
            logger.info(f"Recursive loop query unavailable, using iterative walk: {e.message}")
            if self._metrics is not None:
                self._metrics.record_loop_fallback()

        try:
            return await self._fallback._walk(
                referrer_account_id, referred_account_id, max_depth
            )
        except StorageError as e:
            logger.warning(
                f"Iterative loop walk failed for {referrer_account_id} -> "
                f"{referred_account_id}, treating as no loop: {e.message}"
            )
            return LoopCheckResult.no_loop()


def build_loop_detector(
    store: ReferralStore,
    metrics: Optional[MetricsCollector] = None,
) -> LoopDetector:
    """Default detector: recursive query first, iterative walk as fallback."""
    return FallbackLoopDetector(
        primary=RecursiveQueryLoopDetector(store),
        fallback=IterativeLoopDetector(store, metrics=metrics),
        metrics=metrics,
    )
