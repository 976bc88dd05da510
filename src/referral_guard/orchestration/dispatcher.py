"""Fraud Check Dispatcher - fire-and-forget fraud checks on the event loop."""

import asyncio
import logging
from typing import Optional, Set

from referral_guard.common.constants import OrchestrationConstants
from referral_guard.monitoring.metrics import MetricsCollector
from referral_guard.orchestration.fraud_check import FraudCheckOrchestrator, FraudCheckParams

logger = logging.getLogger(__name__)


class FraudCheckDispatcher:
    """Schedules perform_fraud_check_and_record as background tasks.

    In-flight tasks are bounded; submissions beyond the bound are dropped
    and logged so a slow store never grows memory without limit.
    """

    DEFAULT_MAX_PENDING = OrchestrationConstants.DISPATCH_MAX_PENDING
    DEFAULT_DRAIN_TIMEOUT = OrchestrationConstants.DRAIN_TIMEOUT_SECONDS

    def __init__(
        self,
        orchestrator: FraudCheckOrchestrator,
        max_pending: int = DEFAULT_MAX_PENDING,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize dispatcher.

        Args:
            orchestrator: Orchestrator that runs each check
            max_pending: Maximum in-flight checks
            metrics: Optional metrics collector for dropped submissions
        """
        self.orchestrator = orchestrator
        self.max_pending = max_pending
        self._metrics = metrics
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

        # Statistics
        self._submitted = 0
        self._dropped = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, params: FraudCheckParams) -> bool:
        """Schedule a fraud check and return immediately.

        Must be called from a running event loop.

        Returns:
            True if scheduled, False if dropped (dispatcher full or closed)
        """
        if self._closed:
            logger.warning(
                f"Dispatcher closed, dropping fraud check for referred={params.referred_account_id}"
            )
            self._record_drop()
            return False

        if len(self._tasks) >= self.max_pending:
            logger.error(
                f"Fraud check queue full ({self.max_pending}), dropping check for "
                f"referrer={params.referrer_account_id} referred={params.referred_account_id}"
            )
            self._record_drop()
            return False

        task = asyncio.get_running_loop().create_task(
            self.orchestrator.perform_fraud_check_and_record(params),
            name=f"fraud-check-{params.referred_account_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._submitted += 1
        return True

    def _record_drop(self) -> None:
        self._dropped += 1
        if self._metrics is not None:
            self._metrics.record_dispatch_dropped()

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Stop accepting checks and wait for in-flight ones.

        Args:
            timeout: Maximum time to wait. Uses default if None.

        Returns:
            True if every check finished, False if the timeout expired
        """
        self._closed = True
        timeout = timeout if timeout is not None else self.DEFAULT_DRAIN_TIMEOUT

        if not self._tasks:
            return True

        logger.info(f"Draining {len(self._tasks)} in-flight fraud checks...")
        _, still_pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_pending:
            logger.warning(f"{len(still_pending)} fraud checks still running after {timeout}s")

        logger.info(
            f"Dispatcher drained. Submitted: {self._submitted}, Dropped: {self._dropped}"
        )
        return not still_pending
