"""Severity-specific message templates and per-channel rendering."""

from __future__ import annotations

import string
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel

from autorecovery.models import (
    ChannelKind,
    HealthCheckError,
    IncidentSignal,
    RecoveryReport,
    RenderedMessage,
    Severity,
)
from autorecovery.reporting.report import timeline


class NotificationTemplate(BaseModel):
    severity: Severity
    subject: str
    body: str
    slack_format: str | None = None
    sms_format: str | None = None
    message_type: str = "recovery-report"


TEMPLATES: dict[Severity, NotificationTemplate] = {
    Severity.CRITICAL: NotificationTemplate(
        severity=Severity.CRITICAL,
        subject="[CRITICAL] Todo app incident: {AlarmName}",
        body=(
            "Critical incident in the Todo app. Immediate action required.\n\n"
            "Alarm: {AlarmName}\n"
            "Reason: {AlarmReason}\n"
            "Run: {RunId} ({Trigger})\n"
            "Time: {Timestamp}\n"
            "Escalation: {EscalationLevel}\n"
            "Recovery: {Successful} succeeded, {Failed} failed, {Skipped} skipped of {Total}\n"
            "Health after recovery: {HealthAfter}\n\n"
            "Actions:\n{Actions}\n\n"
            "Dashboard: {DashboardURL}\n"
            "Logs: {LogsURL}"
        ),
        slack_format=(
            "*CRITICAL* :rotating_light: {AlarmName}\n"
            "*Run*: `{RunId}` ({Trigger}) at {Timestamp}\n"
            "*Recovery*: {Successful}/{Total} succeeded, {Failed} failed\n"
            "*Health after*: {HealthAfter}\n"
            "Immediate action required | <{DashboardURL}|Dashboard> | <{LogsURL}|Logs>"
        ),
        sms_format="CRITICAL: {AlarmName} run {RunId} {Successful}/{Total} ok, {Failed} failed. Check now.",
    ),
    Severity.WARNING: NotificationTemplate(
        severity=Severity.WARNING,
        subject="[WARNING] Todo app auto-recovery finished with {Failed} failed action(s)",
        body=(
            "Auto-recovery ran but some actions failed.\n\n"
            "Run: {RunId} ({Trigger})\n"
            "Alarm: {AlarmName}\n"
            "Time: {Timestamp}\n"
            "Duration: {DurationMs} ms\n"
            "Recovery: {Successful} succeeded, {Failed} failed, {Skipped} skipped of {Total} "
            "({SuccessRate}% success)\n"
            "Health after recovery: {HealthAfter}\n\n"
            "Actions:\n{Actions}\n\n"
            "Watch the system closely and intervene if needed.\n"
            "Dashboard: {DashboardURL}\n"
            "Logs: {LogsURL}"
        ),
        slack_format=(
            "*WARNING* :warning: auto-recovery `{RunId}` ({Trigger})\n"
            "*Recovery*: {Successful}/{Total} succeeded, {Failed} failed ({SuccessRate}%)\n"
            "*Health after*: {HealthAfter}\n"
            "<{DashboardURL}|Dashboard> | <{LogsURL}|Logs>"
        ),
        sms_format="WARNING: recovery {RunId} {Failed} failed of {Total}.",
    ),
    Severity.INFO: NotificationTemplate(
        severity=Severity.INFO,
        subject="[INFO] Todo app auto-recovery completed",
        body=(
            "Auto-recovery completed.\n\n"
            "Run: {RunId} ({Trigger})\n"
            "Time: {Timestamp}\n"
            "Recovery: {Successful} succeeded, {Skipped} skipped of {Total}\n"
            "Health after recovery: {HealthAfter}\n\n"
            "Actions:\n{Actions}\n\n"
            "For your information.\n"
            "Dashboard: {DashboardURL}"
        ),
        slack_format=(
            "*INFO* :information_source: auto-recovery `{RunId}` ({Trigger}): "
            "{Successful}/{Total} succeeded\n<{DashboardURL}|Dashboard>"
        ),
    ),
}


# Sent when the run itself breaks, regardless of the report severity
FAILURE_TEMPLATE = NotificationTemplate(
    severity=Severity.CRITICAL,
    subject="[CRITICAL] Todo app auto-recovery system failure",
    body=(
        "The auto-recovery run failed. Manual intervention is required.\n\n"
        "Run: {RunId} ({Trigger})\n"
        "Failed stage: {FailedStage}\n"
        "Error: {Error}\n"
        "Unhealthy components: {Components}\n"
        "Time: {Timestamp}\n"
        "Recovery so far: {Successful} succeeded, {Failed} failed, {Skipped} skipped of {Total}\n\n"
        "Dashboard: {DashboardURL}\n"
        "Logs: {LogsURL}"
    ),
    slack_format=(
        "*CRITICAL* :fire: auto-recovery `{RunId}` ({Trigger}) failed in {FailedStage}\n"
        "*Error*: {Error}\n"
        "*Components*: {Components}\n"
        "Manual intervention required | <{DashboardURL}|Dashboard> | <{LogsURL}|Logs>"
    ),
    sms_format="CRITICAL: auto-recovery {RunId} failed ({Error}). Components: {Components}.",
    message_type="recovery-failure",
)

class _Fields(dict):
    def __missing__(self, key: str) -> str:
        return "N/A"


def dashboard_link(base_url: str, alarm_name: str | None) -> str:
    if not alarm_name:
        return base_url
    return f"{base_url}&alarm={quote(alarm_name, safe='')}"


_CONSOLE_SAFE = frozenset(string.ascii_letters + string.digits + "-_.*")


def _console_escape(text: str, prefix: str, lower: bool = False) -> str:
    hex_format = "{:02x}" if lower else "{:02X}"
    return "".join(
        c if c in _CONSOLE_SAFE else "".join(prefix + hex_format.format(b) for b in c.encode("utf-8"))
        for c in text
    )


def logs_link(base_url: str, alarm_name: str | None) -> str:
    """
    Logs Insights link pre-filled with a query for the alarm name.

    The console keeps query state in the URL fragment: the editor text is
    escaped with '*', the query detail is percent-encoded twice with '$' in
    place of '%'.
    """
    if not alarm_name:
        return base_url
    query = f"fields @timestamp, @message\n| filter @message like /{alarm_name}/"
    detail = (
        "~(end~0~start~-3600~timeType~'RELATIVE'~unit~'seconds'~editorString~'"
        + _console_escape(query, "*", lower=True)
        + ")"
    )
    return f"{base_url}$3FqueryDetail$3D{_console_escape(detail, '$25')}"


def _health_summary(report: RecoveryReport) -> str:
    after = report.system_health_after
    if after is None:
        return "not checked"
    if isinstance(after, HealthCheckError):
        return f"verification failed ({after.error})"
    return f"{after.status.value} (score {after.score:.0f})"


def message_fields(
    report: RecoveryReport,
    signal: IncidentSignal | None = None,
    dashboard_url: str = "",
    logs_url: str = "",
    escalation: str | None = None,
) -> dict[str, Any]:
    alarm = signal.alarm_details if signal else None
    components = [c.name for c in signal.unhealthy_components] if signal else []
    alarm_name = alarm.alarm_name if alarm else ", ".join(components)
    actions = timeline(report)
    return _Fields(
        RunId=report.trigger_id,
        Trigger=report.trigger.value,
        Timestamp=report.end_time.isoformat(),
        Total=report.total_actions,
        Successful=report.successful_actions,
        Failed=report.failed_actions,
        Skipped=report.skipped_actions,
        SuccessRate=f"{report.success_rate:.0f}",
        DurationMs=f"{report.duration_ms:.0f}",
        Actions="\n".join(f"- {line}" for line in actions) or "- none",
        HealthAfter=_health_summary(report),
        AlarmName=alarm_name or "N/A",
        Components=", ".join(components) or "N/A",
        UnhealthyComponents=components,
        AlarmReason=(alarm.reason if alarm and alarm.reason else "N/A"),
        EscalationLevel=escalation or "initial",
        DashboardURL=dashboard_link(dashboard_url, alarm.alarm_name if alarm else None),
        LogsURL=logs_link(logs_url, alarm.alarm_name if alarm else None),
    )


def _slack_blocks(severity: Severity, text: str, fields: dict[str, Any]) -> list[dict]:
    blocks: list[dict] = [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": f"Auto-recovery {severity.value}", "emoji": True},
        },
        {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Run:*\n`{fields['RunId']}`"},
                {
                    "type": "mrkdwn",
                    "text": f"*Result:*\n{fields['Successful']}/{fields['Total']} succeeded",
                },
            ],
        },
        {"type": "section", "text": {"type": "mrkdwn", "text": text}},
    ]
    if fields.get("Actions"):
        blocks.append(
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*Actions:*\n{fields['Actions']}"}}
        )
    return blocks


def _structured_payload(
    template: NotificationTemplate,
    subject: str,
    fields: dict[str, Any],
    report: RecoveryReport,
) -> dict:
    payload = {
        "severity": template.severity.value,
        "type": template.message_type,
        "summary": subject,
        "details": {
            "triggerId": report.trigger_id,
            "trigger": report.trigger.value,
            "executionTime": report.duration_ms,
            "escalation": fields["EscalationLevel"],
            "actions": [
                {
                    "type": r.action.kind.value,
                    "target": r.action.target,
                    "status": r.status.value,
                }
                for r in report.results
            ],
            "dashboardUrl": fields["DashboardURL"],
            "logsUrl": fields["LogsURL"],
        },
        "timestamp": report.end_time.isoformat(),
    }
    if template.message_type == FAILURE_TEMPLATE.message_type:
        payload["details"]["error"] = fields["Error"]
        payload["details"]["unhealthyComponents"] = list(fields.get("UnhealthyComponents") or [])
    return payload


def render(
    severity: Severity,
    kind: ChannelKind,
    report: RecoveryReport,
    fields: dict[str, Any],
    template: NotificationTemplate | None = None,
) -> RenderedMessage:
    """
    Render a template in the compact or verbose form the channel kind wants.
    Without an explicit template the severity's report template is used.
    """
    template = template or TEMPLATES[severity]
    subject = template.subject.format_map(fields)
    if kind == ChannelKind.SMS:
        body = (template.sms_format or template.subject).format_map(fields)
    elif kind == ChannelKind.SLACK:
        body = (template.slack_format or template.body).format_map(fields)
    else:
        body = template.body.format_map(fields)
    message = RenderedMessage(severity=severity, subject=subject, body=body)
    if kind == ChannelKind.SLACK:
        message.blocks = _slack_blocks(severity, body, fields)
    if kind in (ChannelKind.PAGERDUTY, ChannelKind.WEBHOOK):
        message.payload = _structured_payload(template, subject, fields, report)
    return message
