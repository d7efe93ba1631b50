"""Tests for report assembly, metrics and recovery history."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from autorecovery.errors import HistoryStoreError
from autorecovery.models import (
    ActionKind,
    ChannelKind,
    IncidentSignal,
    NotificationOutcome,
    NotificationStatus,
    RecoveryActionSpec,
    RecoveryResult,
    ResultStatus,
    TriggerKind,
)
from autorecovery.reporting import (
    CloudWatchMetricsBackend,
    DynamoDBHistoryStore,
    HistoryQuery,
    InMemoryHistoryStore,
    LoggingMetricsBackend,
    build_report,
    publish_error_metric,
    publish_notification_metrics,
    publish_recovery_metrics,
    timeline,
)

START = datetime.now(timezone.utc) - timedelta(minutes=1)


def _result(kind, target, status, **details):
    return RecoveryResult(
        action=RecoveryActionSpec(kind=kind, target=target, priority=1),
        status=status,
        details=details,
    )


def _report(trigger=TriggerKind.ALARM, results=(), start=START):
    signal = IncidentSignal(trigger=trigger)
    return build_report(signal, list(results), start, start + timedelta(seconds=2))


def test_build_report_counts_results():
    report = _report(
        results=[
            _result(ActionKind.RESTART_SERVICE, "lambda-functions", ResultStatus.SUCCESS),
            _result(ActionKind.CLEAR_CACHE, "api-gateway", ResultStatus.FAILED, error="boom"),
            _result(ActionKind.FAILOVER, "backup-endpoint", ResultStatus.SKIPPED, reason="cooldown active"),
        ]
    )
    assert (report.total_actions, report.successful_actions, report.failed_actions, report.skipped_actions) == (
        3,
        1,
        1,
        1,
    )
    assert timeline(report) == [
        "restart-service lambda-functions: success",
        "clear-cache api-gateway: failed (boom)",
        "failover backup-endpoint: skipped (cooldown active)",
    ]


def test_empty_run_has_zero_success_rate():
    report = _report()
    assert report.total_actions == 0
    assert report.success_rate == 0.0


def test_publish_recovery_metrics():
    backend = LoggingMetricsBackend()
    report = _report(
        results=[
            _result(ActionKind.RESTART_SERVICE, "lambda-functions", ResultStatus.SUCCESS),
            _result(ActionKind.CLEAR_CACHE, "api-gateway", ResultStatus.SKIPPED),
        ]
    )
    assert publish_recovery_metrics(backend, report) == 3
    by_name = {name: (value, unit, dims) for name, value, unit, dims in backend.published}
    assert by_name["RecoveryActionsExecuted"] == (1, "Count", {"Trigger": "alarm"})
    assert by_name["RecoverySuccessRate"][:2] == (50.0, "Percent")
    assert by_name["RecoveryExecutionTime"][:2] == (2000.0, "Milliseconds")


def test_metric_publish_failure_is_contained():
    backend = MagicMock()
    backend.publish.side_effect = RuntimeError("throttled")
    assert publish_recovery_metrics(backend, _report()) == 0


def test_publish_notification_metrics_per_type():
    backend = LoggingMetricsBackend()
    outcomes = [
        NotificationOutcome(channel="ops-team", kind=ChannelKind.EMAIL, status=NotificationStatus.SENT),
        NotificationOutcome(channel="dev-alerts", kind=ChannelKind.EMAIL, status=NotificationStatus.SUPPRESSED),
        NotificationOutcome(channel="on-call-sms", kind=ChannelKind.SMS, status=NotificationStatus.FAILED),
    ]
    assert publish_notification_metrics(backend, outcomes) == 4
    assert list(backend.published) == [
        ("SentNotifications", 1, "Count", {"Type": "Email"}),
        ("FailedNotifications", 0, "Count", {"Type": "Email"}),
        ("SentNotifications", 0, "Count", {"Type": "SMS"}),
        ("FailedNotifications", 1, "Count", {"Type": "SMS"}),
    ]


def test_publish_notification_metrics_nothing_attempted():
    backend = LoggingMetricsBackend()
    assert publish_notification_metrics(backend, []) == 0
    assert not backend.published


def test_logging_backend_keeps_only_recent_metrics():
    backend = LoggingMetricsBackend(max_kept=2)
    for i in range(5):
        backend.publish("RecoveryErrors", i, "Count")
    assert [value for _, value, _, _ in backend.published] == [3, 4]


def test_cloudwatch_backend_put_metric_data():
    client = MagicMock()
    backend = CloudWatchMetricsBackend("TodoApp/AutoRecovery", client=client)
    publish_error_metric(backend, "AutoRecoveryOrchestrator")
    client.put_metric_data.assert_called_once_with(
        Namespace="TodoApp/AutoRecovery",
        MetricData=[
            {
                "MetricName": "RecoveryErrors",
                "Value": 1.0,
                "Unit": "Count",
                "Dimensions": [{"Name": "Component", "Value": "AutoRecoveryOrchestrator"}],
            }
        ],
    )


def test_history_query_filters_and_orders_newest_first():
    store = InMemoryHistoryStore()
    older = _report(trigger=TriggerKind.MANUAL, start=START - timedelta(minutes=5))
    newer = _report(
        results=[_result(ActionKind.CLEAR_CACHE, "api-gateway", ResultStatus.FAILED, error="x")]
    )
    store.put(older)
    store.put(newer)

    assert [r.trigger_id for r in store.query()] == [newer.trigger_id, older.trigger_id]
    assert [r.trigger_id for r in store.query(HistoryQuery(trigger=TriggerKind.MANUAL))] == [older.trigger_id]
    assert [r.trigger_id for r in store.query(HistoryQuery(only_failed=True))] == [newer.trigger_id]
    assert [r.trigger_id for r in store.query(HistoryQuery(trigger_id=older.trigger_id))] == [older.trigger_id]
    assert len(store.query(HistoryQuery(limit=1))) == 1


def test_history_file_persistence(tmp_path):
    store = InMemoryHistoryStore(data_dir=str(tmp_path))
    report = _report(results=[_result(ActionKind.SCALE_UP, "dynamodb-capacity", ResultStatus.SUCCESS)])
    store.put(report)
    assert (tmp_path / "recovery_history.json").is_file()

    reloaded = InMemoryHistoryStore(data_dir=str(tmp_path)).query()
    assert [r.trigger_id for r in reloaded] == [report.trigger_id]
    assert reloaded[0].results[0].action.kind == ActionKind.SCALE_UP


def test_history_prunes_past_retention():
    store = InMemoryHistoryStore(retention_days=30)
    store.put(_report(start=datetime.now(timezone.utc) - timedelta(days=31)))
    assert store.query() == []


def test_dynamodb_history_put_and_query():
    client = MagicMock()
    store = DynamoDBHistoryStore("history", client=client)
    report = _report()
    store.put(report)
    item = client.put_item.call_args.kwargs["Item"]
    assert item["id"] == {"S": report.trigger_id}
    assert item["trigger"] == {"S": "alarm"}

    client.scan.side_effect = [
        {"Items": [item], "LastEvaluatedKey": {"id": {"S": report.trigger_id}}},
        {"Items": [{"id": {"S": "broken"}}]},
    ]
    found = store.query(HistoryQuery(trigger=TriggerKind.ALARM, only_failed=False))
    assert [r.trigger_id for r in found] == [report.trigger_id]
    first_scan = client.scan.call_args_list[0].kwargs
    assert first_scan["FilterExpression"] == "#trigger = :trigger"
    assert client.scan.call_args_list[1].kwargs["ExclusiveStartKey"] == {"id": {"S": report.trigger_id}}


def test_dynamodb_history_put_error():
    client = MagicMock()
    client.put_item.side_effect = ClientError({"Error": {"Code": "ResourceNotFoundException"}}, "PutItem")
    with pytest.raises(HistoryStoreError):
        DynamoDBHistoryStore("history", client=client).put(_report())
