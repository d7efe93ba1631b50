"""
Report and metrics emitter.

Aggregates a run's results into one RecoveryReport, publishes summary
counters and appends the report to the audit history.
"""

from autorecovery.models import success_rate
from autorecovery.reporting.history import (
    DynamoDBHistoryStore,
    HistoryQuery,
    HistoryStore,
    InMemoryHistoryStore,
)
from autorecovery.reporting.metrics import (
    CloudWatchMetricsBackend,
    LoggingMetricsBackend,
    MetricsBackend,
    publish_error_metric,
    publish_notification_metrics,
    publish_recovery_metrics,
)
from autorecovery.reporting.report import build_report, timeline

__all__ = [
    "CloudWatchMetricsBackend",
    "DynamoDBHistoryStore",
    "HistoryQuery",
    "HistoryStore",
    "InMemoryHistoryStore",
    "LoggingMetricsBackend",
    "MetricsBackend",
    "build_report",
    "publish_error_metric",
    "publish_notification_metrics",
    "publish_recovery_metrics",
    "success_rate",
    "timeline",
]
