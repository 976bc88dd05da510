"""Monitoring - track suspicions, detector failures, timeouts and chain integrity."""

import atexit
import logging
import os
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from referral_guard.common.constants import MonitoringConstants

logger = logging.getLogger(__name__)

# CloudWatch accepts at most 20 metric datums per PutMetricData call
_CLOUDWATCH_MAX_BATCH = 20


class MetricType(str, Enum):
    SUSPICION_RECORDED = "suspicion_recorded"
    SUSPICION_WRITE_FAILED = "suspicion_write_failed"
    DETECTOR_ERROR = "detector_error"
    BRANCH_TIMEOUT = "branch_timeout"
    CHAIN_CORRUPTION = "referral_chain_corruption"
    LOOP_FALLBACK_USED = "loop_fallback_used"
    FRAUD_CHECK_LATENCY = "fraud_check_latency"
    DISPATCH_DROPPED = "dispatch_dropped"


@dataclass
class MetricPoint:
    metric_name: str
    value: float
    unit: str = "None"
    timestamp: Optional[datetime] = None
    dimensions: Optional[Dict[str, str]] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)


class MetricsCollector:
    """Buffers fraud-engine metrics and publishes them to CloudWatch.

    Recording only appends to a bounded buffer. A background writer thread
    publishes when a batch fills or the flush interval passes, so callers on
    the event loop never wait on CloudWatch. When the buffer is full the
    oldest point is dropped; a batch CloudWatch rejects is logged and dropped.
    """

    DEFAULT_REGION = "us-east-1"
    DEFAULT_NAMESPACE = MonitoringConstants.DEFAULT_NAMESPACE

    def __init__(
        self,
        namespace: Optional[str] = None,
        region: Optional[str] = None,
        aws_profile: Optional[str] = None,
        batch_size: int = MonitoringConstants.DEFAULT_BATCH_SIZE,
        max_buffer_size: int = MonitoringConstants.MAX_BUFFERED_METRICS,
        flush_interval: float = MonitoringConstants.FLUSH_INTERVAL_SECONDS,
        background: bool = True,
    ):
        """Initialize the collector.

        Args:
            namespace: CloudWatch namespace. Falls back to REFGUARD_CLOUDWATCH_NAMESPACE.
            region: AWS region. Falls back to AWS_DEFAULT_REGION.
            aws_profile: Optional named AWS profile.
            batch_size: Buffered points that wake the writer.
            max_buffer_size: Points retained before the oldest are dropped.
            flush_interval: Seconds between periodic flushes.
            background: Start the writer thread. Without it, only explicit
                flush() and shutdown() publish.
        """
        self.namespace = namespace or os.environ.get("REFGUARD_CLOUDWATCH_NAMESPACE", self.DEFAULT_NAMESPACE)
        self.region = region or os.environ.get("AWS_DEFAULT_REGION", self.DEFAULT_REGION)
        self.batch_size = batch_size
        self.max_buffer_size = max_buffer_size
        self.flush_interval = flush_interval
        self.metric_buffer: Deque[MetricPoint] = deque(maxlen=max_buffer_size)

        if aws_profile:
            session = boto3.Session(profile_name=aws_profile)
            self.cloudwatch = session.client("cloudwatch", region_name=self.region)
        else:
            self.cloudwatch = boto3.client("cloudwatch", region_name=self.region)

        self._buffer_lock = threading.Lock()
        self._publish_lock = threading.Lock()
        self._wake_event = threading.Event()
        self._shutdown_event = threading.Event()
        self._writer_thread: Optional[threading.Thread] = None

        self._metrics_published = 0
        self._metrics_dropped = 0

        if background:
            self._start_writer()
            atexit.register(self.shutdown)

        logger.info(f"Initialized MetricsCollector: namespace={self.namespace}")

    def _start_writer(self) -> None:
        self._writer_thread = threading.Thread(
            target=self._writer_loop,
            name="MetricsWriter",
            daemon=True,
        )
        self._writer_thread.start()

    def _writer_loop(self) -> None:
        """Publish on wake-up or every flush interval until shutdown."""
        while not self._shutdown_event.is_set():
            self._wake_event.wait(timeout=self.flush_interval)
            self._wake_event.clear()
            try:
                self.flush()
            except Exception as e:
                logger.error(f"Unexpected error in metrics writer: {e}")

    def record_metric(self, metric: MetricPoint) -> None:
        """Buffer a metric point and wake the writer when a batch is ready."""
        with self._buffer_lock:
            if len(self.metric_buffer) == self.max_buffer_size:
                self._metrics_dropped += 1
            self.metric_buffer.append(metric)
            ready = len(self.metric_buffer) >= self.batch_size

        if ready:
            self._wake_event.set()

    def record_suspicion(self, suspicion_type: str, severity: str) -> None:
        """Count one persisted suspicious-referral row."""
        self.record_metric(MetricPoint(
            metric_name=MetricType.SUSPICION_RECORDED.value,
            value=1.0,
            unit="Count",
            dimensions={"suspicion_type": suspicion_type, "severity": severity},
        ))

    def record_suspicion_write_failure(self, suspicion_type: str) -> None:
        self.record_metric(MetricPoint(
            metric_name=MetricType.SUSPICION_WRITE_FAILED.value,
            value=1.0,
            unit="Count",
            dimensions={"suspicion_type": suspicion_type},
        ))

    def record_detector_error(self, detector_name: str, error_type: str) -> None:
        """Count a detector branch that failed and was treated as no signal.

        Args:
            detector_name: Branch name (same_device, loop, patterns, shared_ip)
            error_type: Exception class name
        """
        self.record_metric(MetricPoint(
            metric_name=MetricType.DETECTOR_ERROR.value,
            value=1.0,
            unit="Count",
            dimensions={"detector_name": detector_name, "error_type": error_type},
        ))

    def record_branch_timeout(self, detector_name: str) -> None:
        self.record_metric(MetricPoint(
            metric_name=MetricType.BRANCH_TIMEOUT.value,
            value=1.0,
            unit="Count",
            dimensions={"detector_name": detector_name},
        ))

    def record_chain_corruption(self) -> None:
        """Count a repeated node found while walking the referral tree.

        The tree invariant (one referrer per account, no cycles) is owned by
        the referral subsystem; a repeat means its data is inconsistent. The
        offending account ids go to the log, not to metric dimensions.
        """
        self.record_metric(MetricPoint(
            metric_name=MetricType.CHAIN_CORRUPTION.value,
            value=1.0,
            unit="Count",
        ))

    def record_loop_fallback(self) -> None:
        self.record_metric(MetricPoint(
            metric_name=MetricType.LOOP_FALLBACK_USED.value,
            value=1.0,
            unit="Count",
        ))

    def record_dispatch_dropped(self) -> None:
        self.record_metric(MetricPoint(
            metric_name=MetricType.DISPATCH_DROPPED.value,
            value=1.0,
            unit="Count",
        ))

    def record_check_latency(self, latency_ms: float, suspicion_count: int) -> None:
        """Record end-to-end fraud check latency.

        Args:
            latency_ms: Wall time of perform_fraud_check in milliseconds
            suspicion_count: Number of suspicions produced
        """
        if latency_ms > MonitoringConstants.FRAUD_CHECK_LATENCY_WARNING_MS:
            logger.warning(f"Slow fraud check: {latency_ms:.0f}ms")

        self.record_metric(MetricPoint(
            metric_name=MetricType.FRAUD_CHECK_LATENCY.value,
            value=latency_ms,
            unit="Milliseconds",
            dimensions={"suspicious": "true" if suspicion_count else "false"},
        ))

    def _take_buffered(self) -> List[MetricPoint]:
        with self._buffer_lock:
            points = list(self.metric_buffer)
            self.metric_buffer.clear()
        return points

    def flush(self) -> None:
        """Publish buffered metrics to CloudWatch on the calling thread.

        The buffer is emptied up front. Batches CloudWatch rejects are
        logged and dropped.
        """
        with self._publish_lock:
            points = self._take_buffered()
            if not points:
                return

            metric_data = []
            for metric in points:
                metric_dict = {
                    "MetricName": metric.metric_name,
                    "Value": metric.value,
                    "Unit": metric.unit,
                    "Timestamp": metric.timestamp,
                }

                if metric.dimensions:
                    metric_dict["Dimensions"] = [
                        {"Name": k, "Value": str(v)}
                        for k, v in metric.dimensions.items()
                    ]

                metric_data.append(metric_dict)

            sent = 0
            for i in range(0, len(metric_data), _CLOUDWATCH_MAX_BATCH):
                batch = metric_data[i:i + _CLOUDWATCH_MAX_BATCH]
                try:
                    self.cloudwatch.put_metric_data(
                        Namespace=self.namespace,
                        MetricData=batch,
                    )
                    sent += len(batch)
                except (ClientError, BotoCoreError) as e:
                    logger.error(f"Failed to publish {len(batch)} metrics, dropping batch: {e}")
                    with self._buffer_lock:
                        self._metrics_dropped += len(batch)

            self._metrics_published += sent
            logger.debug(f"Published {sent} metrics to CloudWatch")

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the writer thread and flush remaining metrics.

        Args:
            timeout: Maximum time to wait for the writer thread.
        """
        if self._shutdown_event.is_set():
            return

        timeout = timeout if timeout is not None else MonitoringConstants.SHUTDOWN_TIMEOUT_SECONDS
        self._shutdown_event.set()
        self._wake_event.set()

        if self._writer_thread and self._writer_thread.is_alive():
            self._writer_thread.join(timeout=timeout)
            if self._writer_thread.is_alive():
                logger.warning("Metrics writer did not stop cleanly")

        self.flush()
        logger.info(
            f"Metrics collector shutdown complete. "
            f"Published: {self._metrics_published}, "
            f"Dropped: {self._metrics_dropped}"
        )

    def get_stats(self) -> dict:
        """Get collector statistics."""
        with self._buffer_lock:
            buffered = len(self.metric_buffer)
        return {
            "metrics_published": self._metrics_published,
            "metrics_dropped": self._metrics_dropped,
            "buffer_size": buffered,
            "max_buffer_size": self.max_buffer_size,
        }

    @property
    def is_running(self) -> bool:
        """Whether the background writer is running."""
        return self._writer_thread is not None and self._writer_thread.is_alive()
