"""Monitoring - CloudWatch metrics for the fraud engine."""

from referral_guard.monitoring.metrics import MetricPoint, MetricsCollector, MetricType

__all__ = ["MetricPoint", "MetricsCollector", "MetricType"]
