"""Summary counters published after each recovery run."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from typing import Any, Protocol

from autorecovery.models import ChannelKind, NotificationOutcome, NotificationStatus, RecoveryReport

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "TodoApp/AutoRecovery"

# Values of the Type dimension on the notification counters
_NOTIFICATION_TYPE = {
    ChannelKind.EMAIL: "Email",
    ChannelKind.SMS: "SMS",
    ChannelKind.SLACK: "Slack",
    ChannelKind.PAGERDUTY: "PagerDuty",
    ChannelKind.WEBHOOK: "Webhook",
}


class MetricsBackend(Protocol):
    def publish(
        self,
        name: str,
        value: float,
        unit: str,
        dimensions: dict[str, str] | None = None,
    ) -> None: ...


class CloudWatchMetricsBackend:
    """Publishes one datum per call via put_metric_data."""

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        region_name: str = "us-east-1",
        client: Any | None = None,
    ) -> None:
        self._namespace = namespace
        self._region_name = region_name
        self._client = client

    def publish(
        self,
        name: str,
        value: float,
        unit: str,
        dimensions: dict[str, str] | None = None,
    ) -> None:
        if self._client is None:
            import boto3

            self._client = boto3.client("cloudwatch", region_name=self._region_name)
        datum: dict[str, Any] = {"MetricName": name, "Value": float(value), "Unit": unit}
        if dimensions:
            datum["Dimensions"] = [{"Name": k, "Value": v} for k, v in dimensions.items()]
        self._client.put_metric_data(Namespace=self._namespace, MetricData=[datum])


class LoggingMetricsBackend:
    """Stub backend: logs metrics and keeps the most recent ones for inspection."""

    def __init__(self, max_kept: int = 1000) -> None:
        self.published: deque[tuple[str, float, str, dict[str, str]]] = deque(maxlen=max_kept)

    def publish(
        self,
        name: str,
        value: float,
        unit: str,
        dimensions: dict[str, str] | None = None,
    ) -> None:
        self.published.append((name, value, unit, dict(dimensions or {})))
        logger.info("metric %s=%s %s", name, value, unit, extra={"dimensions": dimensions or {}})


def _safe_publish(
    backend: MetricsBackend,
    name: str,
    value: float,
    unit: str,
    dimensions: dict[str, str] | None = None,
) -> bool:
    try:
        backend.publish(name, value, unit, dimensions)
        return True
    except Exception as e:
        logger.warning("Metric %s publish failed: %s", name, e, exc_info=True)
        return False


def publish_recovery_metrics(backend: MetricsBackend, report: RecoveryReport) -> int:
    """Publish actions-executed, success-rate and run-duration; returns how many went out."""
    executed = report.successful_actions + report.failed_actions
    sent = 0
    sent += _safe_publish(
        backend, "RecoveryActionsExecuted", executed, "Count", {"Trigger": report.trigger.value}
    )
    sent += _safe_publish(backend, "RecoverySuccessRate", report.success_rate, "Percent")
    sent += _safe_publish(backend, "RecoveryExecutionTime", report.duration_ms, "Milliseconds")
    return sent


def publish_error_metric(backend: MetricsBackend, component: str) -> None:
    _safe_publish(backend, "RecoveryErrors", 1, "Count", {"Component": component})


def publish_notification_metrics(backend: MetricsBackend, outcomes: Iterable[NotificationOutcome]) -> int:
    """
    SentNotifications / FailedNotifications per channel type for one batch of
    outcomes. Suppressed outcomes were never attempted and are not counted.
    """
    counts: dict[ChannelKind, list[int]] = {}
    for outcome in outcomes:
        if outcome.status == NotificationStatus.SUPPRESSED:
            continue
        sent_failed = counts.setdefault(outcome.kind, [0, 0])
        sent_failed[0 if outcome.status == NotificationStatus.SENT else 1] += 1
    published = 0
    for kind, (sent, failed) in counts.items():
        dimensions = {"Type": _NOTIFICATION_TYPE[kind]}
        published += _safe_publish(backend, "SentNotifications", sent, "Count", dimensions)
        published += _safe_publish(backend, "FailedNotifications", failed, "Count", dimensions)
    return published
