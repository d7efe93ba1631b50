"""Builders turning health reports, CloudWatch alarms and operator requests into IncidentSignals."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from autorecovery.incident_detection.alarm_rules import CompositeAlarm
from autorecovery.models import (
    AlarmDetails,
    HealthStatus,
    IncidentSignal,
    Severity,
    SystemHealth,
    TriggerKind,
    UnhealthyComponent,
)

logger = logging.getLogger(__name__)


def signal_from_health(
    system_health: SystemHealth,
    trigger: TriggerKind = TriggerKind.HEALTH_CHECK,
) -> IncidentSignal:
    """List every non-healthy component of a health report, in report order."""
    unhealthy = tuple(
        UnhealthyComponent(name=name, status=component.status, details=component)
        for name, component in system_health.components.items()
        if component.status != HealthStatus.HEALTHY
    )
    severity = Severity.CRITICAL if system_health.status == HealthStatus.CRITICAL else None
    return IncidentSignal(
        trigger=trigger,
        system_health=system_health,
        unhealthy_components=unhealthy,
        severity=severity,
    )


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value:
        try:
            # CloudWatch sends e.g. 2025-02-11T10:00:00.000+0000
            text = value.replace("Z", "+00:00")
            if len(text) > 5 and text[-5] in "+-" and text[-3] != ":":
                text = f"{text[:-2]}:{text[-2:]}"
            parsed = datetime.fromisoformat(text)
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        except ValueError:
            logger.debug("Unparseable alarm timestamp %r", value)
    return datetime.now(timezone.utc)


def _alarm_dimensions(trigger: Mapping[str, Any]) -> dict[str, str]:
    dims: dict[str, str] = {}
    for dim in trigger.get("Dimensions") or []:
        # SNS alarm payloads use lower-case keys; describe_alarms uses Name/Value
        name = dim.get("name") or dim.get("Name")
        value = dim.get("value") or dim.get("Value")
        if name:
            dims[str(name)] = str(value or "")
    return dims


def alarm_details_from_payload(
    payload: Mapping[str, Any] | str,
    severities: Mapping[str, Severity] | None = None,
) -> AlarmDetails | None:
    """Parse a CloudWatch alarm state-change notification (SNS message body)."""
    try:
        data = json.loads(payload) if isinstance(payload, str) else dict(payload)
        # SNS envelope: the alarm is JSON inside "Message"
        if "Message" in data and "AlarmName" not in data:
            message = data["Message"]
            data = json.loads(message) if isinstance(message, str) else dict(message)
        name = data.get("AlarmName") or ""
        if not name:
            logger.warning("Alarm payload has no AlarmName; ignoring")
            return None
        trigger = data.get("Trigger") or {}
        severity = (severities or {}).get(name)
        if severity is None and data.get("Severity"):
            severity = Severity(str(data["Severity"]).upper())
        return AlarmDetails(
            alarm_name=name,
            state=data.get("NewStateValue") or data.get("StateValue") or "ALARM",
            reason=data.get("NewStateReason") or data.get("StateReason") or "",
            timestamp=_parse_timestamp(
                data.get("StateChangeTime") or data.get("StateUpdatedTimestamp")
            ),
            metric_name=trigger.get("MetricName") or data.get("MetricName"),
            namespace=trigger.get("Namespace") or data.get("Namespace"),
            dimensions=_alarm_dimensions(trigger) or _alarm_dimensions(data),
            severity=severity,
        )
    except (ValueError, TypeError, ValidationError) as e:
        logger.warning("Skip alarm (invalid): %s", e, exc_info=True)
        return None


def signal_from_alarm(
    payload: Mapping[str, Any] | str,
    component_map: Mapping[str, Iterable[str]] | None = None,
    severities: Mapping[str, Severity] | None = None,
) -> IncidentSignal | None:
    """
    Build an alarm-triggered signal from a CloudWatch alarm notification.

    Only ALARM transitions produce a signal; OK / INSUFFICIENT_DATA return None.
    Alarm names map to catalog components through component_map; an unmapped
    alarm is treated as a component of the same name.
    """
    details = alarm_details_from_payload(payload, severities=severities)
    if details is None or details.state.upper() != "ALARM":
        return None
    names = list((component_map or {}).get(details.alarm_name, [details.alarm_name]))
    status = HealthStatus.DEGRADED if details.severity == Severity.WARNING else HealthStatus.CRITICAL
    return IncidentSignal(
        trigger=TriggerKind.ALARM,
        unhealthy_components=tuple(UnhealthyComponent(name=n, status=status) for n in names),
        alarm_details=details,
    )


def signal_from_composite_alarm(alarm: CompositeAlarm) -> IncidentSignal:
    """Alarm-triggered signal for a firing composite; every mapped component is unhealthy."""
    status = HealthStatus.CRITICAL if alarm.severity == Severity.CRITICAL else HealthStatus.DEGRADED
    return IncidentSignal(
        trigger=TriggerKind.ALARM,
        unhealthy_components=tuple(
            UnhealthyComponent(name=name, status=status) for name in alarm.components
        ),
        alarm_details=AlarmDetails(
            alarm_name=alarm.name,
            reason=f"{alarm.description}: {alarm.rule}" if alarm.description else str(alarm.rule),
            severity=alarm.severity,
        ),
    )


def parse_component(text: str) -> UnhealthyComponent:
    """Parse an operator's NAME[:STATUS] pair; status defaults to critical."""
    name, _, status = text.partition(":")
    if not name.strip():
        raise ValueError(f"Invalid component {text!r}")
    return UnhealthyComponent(
        name=name.strip(),
        status=HealthStatus(status.strip() or HealthStatus.CRITICAL.value),
    )


def manual_signal(
    components: Iterable[str | UnhealthyComponent],
    severity: Severity | None = None,
) -> IncidentSignal:
    """Operator-requested recovery."""
    parsed = tuple(c if isinstance(c, UnhealthyComponent) else parse_component(c) for c in components)
    return IncidentSignal(
        trigger=TriggerKind.MANUAL,
        unhealthy_components=parsed,
        severity=severity,
    )
