"""
Incident detection layer.

Normalizes health-check failures, CloudWatch alarm transitions (single or
composite) and manual requests into IncidentSignal values.
"""

from autorecovery.incident_detection.alarm_rules import (
    DEFAULT_COMPOSITE_ALARMS,
    And,
    Atom,
    CompositeAlarm,
    Or,
    evaluate_composite_alarms,
    parse_rule,
)
from autorecovery.incident_detection.signals import (
    alarm_details_from_payload,
    manual_signal,
    parse_component,
    signal_from_alarm,
    signal_from_composite_alarm,
    signal_from_health,
)

__all__ = [
    "DEFAULT_COMPOSITE_ALARMS",
    "And",
    "Atom",
    "CompositeAlarm",
    "Or",
    "alarm_details_from_payload",
    "evaluate_composite_alarms",
    "manual_signal",
    "parse_component",
    "parse_rule",
    "signal_from_alarm",
    "signal_from_composite_alarm",
    "signal_from_health",
]
