"""Tests for incident signal builders."""

import json

import pytest

from autorecovery.incident_detection import (
    DEFAULT_COMPOSITE_ALARMS,
    alarm_details_from_payload,
    manual_signal,
    parse_component,
    signal_from_alarm,
    signal_from_composite_alarm,
    signal_from_health,
)
from autorecovery.models import (
    ComponentHealth,
    HealthStatus,
    Severity,
    SystemHealth,
    TriggerKind,
)

ALARM = {
    "AlarmName": "TodoApiHealth",
    "NewStateValue": "ALARM",
    "NewStateReason": "Threshold Crossed: 3 datapoints > 5.0",
    "StateChangeTime": "2025-02-11T10:00:00.000+0000",
    "Trigger": {
        "MetricName": "Errors",
        "Namespace": "AWS/Lambda",
        "Dimensions": [{"name": "FunctionName", "value": "TodoApp-Create"}],
    },
}


def test_signal_from_health_lists_unhealthy_components_in_order():
    health = SystemHealth(
        score=40,
        status=HealthStatus.CRITICAL,
        components={
            "TodoApiHealth": ComponentHealth(status=HealthStatus.CRITICAL),
            "DynamoDBHealth": ComponentHealth(status=HealthStatus.HEALTHY),
            "MemoryUsage": ComponentHealth(status=HealthStatus.DEGRADED),
        },
    )
    signal = signal_from_health(health)
    assert signal.trigger == TriggerKind.HEALTH_CHECK
    assert [c.name for c in signal.unhealthy_components] == ["TodoApiHealth", "MemoryUsage"]
    assert signal.severity == Severity.CRITICAL
    assert signal.system_health == health


def test_alarm_details_from_sns_envelope():
    details = alarm_details_from_payload({"Type": "Notification", "Message": json.dumps(ALARM)})
    assert details.alarm_name == "TodoApiHealth"
    assert details.metric_name == "Errors"
    assert details.dimensions == {"FunctionName": "TodoApp-Create"}
    assert details.timestamp.year == 2025 and details.timestamp.utcoffset().total_seconds() == 0


def test_alarm_details_invalid_payload_returns_none():
    assert alarm_details_from_payload("not json") is None
    assert alarm_details_from_payload({"NewStateValue": "ALARM"}) is None


def test_signal_from_alarm_maps_components():
    signal = signal_from_alarm(
        ALARM,
        component_map={"TodoApiHealth": ["TodoApiHealth", "MemoryUsage"]},
        severities={"TodoApiHealth": Severity.WARNING},
    )
    assert signal.trigger == TriggerKind.ALARM
    assert [c.name for c in signal.unhealthy_components] == ["TodoApiHealth", "MemoryUsage"]
    assert all(c.status == HealthStatus.DEGRADED for c in signal.unhealthy_components)
    assert signal.alarm_details.reason.startswith("Threshold Crossed")


def test_signal_from_alarm_ignores_ok_transition():
    assert signal_from_alarm({**ALARM, "NewStateValue": "OK"}) is None


def test_unmapped_alarm_is_its_own_component():
    signal = signal_from_alarm(json.dumps(ALARM))
    assert [(c.name, c.status) for c in signal.unhealthy_components] == [
        ("TodoApiHealth", HealthStatus.CRITICAL)
    ]


def test_signal_from_composite_alarm():
    signal = signal_from_composite_alarm(DEFAULT_COMPOSITE_ALARMS[0])
    assert signal.is_critical
    assert [c.name for c in signal.unhealthy_components] == ["TodoApiHealth", "MemoryUsage"]
    assert signal.alarm_details.alarm_name == "SystemHealthDegraded"


def test_parse_component():
    assert parse_component("TodoApiHealth").status == HealthStatus.CRITICAL
    assert parse_component("MemoryUsage:degraded").status == HealthStatus.DEGRADED
    with pytest.raises(ValueError):
        parse_component(":critical")


def test_manual_signal():
    signal = manual_signal(["TodoApiHealth:critical"], severity=Severity.CRITICAL)
    assert signal.trigger == TriggerKind.MANUAL
    assert signal.is_critical
