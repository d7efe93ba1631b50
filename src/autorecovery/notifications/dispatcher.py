"""Routes recovery reports to severity-scoped channels and runs escalation levels."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone

from autorecovery.models import (
    ChannelKind,
    EscalationCondition,
    EscalationPolicy,
    IncidentSignal,
    IncidentState,
    NotificationChannel,
    NotificationOutcome,
    NotificationStatus,
    RecoveryReport,
    Severity,
)
from autorecovery.notifications.config import (
    DEFAULT_NOTIFICATION_CONFIG,
    BusinessHours,
    NotificationConfig,
)
from autorecovery.notifications.templates import FAILURE_TEMPLATE, NotificationTemplate, message_fields, render
from autorecovery.notifications.transports import Transport

logger = logging.getLogger(__name__)


def condition_holds(condition: EscalationCondition, state: IncidentState) -> bool:
    """Acknowledged incidents never escalate further."""
    if state.acknowledged:
        return False
    if condition == EscalationCondition.UNACKNOWLEDGED:
        return True
    if condition == EscalationCondition.STILL_FIRING:
        return state.still_firing
    return state.escalated


def due_levels(policy: EscalationPolicy, elapsed_minutes: float) -> list[int]:
    """Indices of the levels whose delay has elapsed since the first notification."""
    return [i for i, level in enumerate(policy.levels) if level.delay_minutes <= elapsed_minutes]


class RateLimitLedger:
    """Last successful send per channel name. Shared by concurrent runs."""

    def __init__(self) -> None:
        self._last_sent: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def reserve(self, channel: str, window_minutes: float, now: datetime) -> tuple[bool, datetime | None]:
        """Claim the channel's window; returns (allowed, previous value for release)."""
        with self._lock:
            previous = self._last_sent.get(channel)
            if previous is not None and now - previous < timedelta(minutes=window_minutes):
                return False, previous
            self._last_sent[channel] = now
            return True, previous

    def release(self, channel: str, reserved_at: datetime, previous: datetime | None) -> None:
        """Undo a reservation after a failed send, unless someone sent since."""
        with self._lock:
            if self._last_sent.get(channel) != reserved_at:
                return
            if previous is None:
                del self._last_sent[channel]
            else:
                self._last_sent[channel] = previous


class NotificationDispatcher:
    """
    Sends a run's report to every channel whose severities include the run
    severity, applying business-hours and per-channel rate-limit filters.

    Escalation timers live in the external scheduler; notify_level() is the
    stateless hook it calls once a level's delay has elapsed.
    """

    def __init__(
        self,
        transports: Mapping[ChannelKind, Transport],
        config: NotificationConfig | None = None,
        business_hours: BusinessHours | None = None,
        critical_policy: str = "critical-escalation",
        dashboard_url: str = "",
        logs_url: str = "",
        clock: Callable[[], datetime] | None = None,
        ledger: RateLimitLedger | None = None,
    ) -> None:
        self._transports = dict(transports)
        self.config = config or DEFAULT_NOTIFICATION_CONFIG
        self._business_hours = business_hours or BusinessHours()
        self._critical_policy = critical_policy
        self._dashboard_url = dashboard_url
        self._logs_url = logs_url
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._ledger = ledger or RateLimitLedger()

    def select_channels(self, severity: Severity) -> list[NotificationChannel]:
        return [c for c in self.config.channels if severity in c.severities]

    def dispatch(
        self,
        report: RecoveryReport,
        signal: IncidentSignal | None = None,
    ) -> list[NotificationOutcome]:
        """Notify for a finished run. Critical signals also fire escalation level 0."""
        severity = report.severity
        fields = message_fields(report, signal, self._dashboard_url, self._logs_url)
        outcomes = [
            self._deliver(channel, severity, report, fields)
            for channel in self.select_channels(severity)
        ]
        if signal is not None and signal.is_critical:
            outcomes.extend(
                self.notify_level(self._critical_policy, 0, report, IncidentState(), signal)
            )
        sent = sum(1 for o in outcomes if o.status == NotificationStatus.SENT)
        logger.info(
            "Recovery report dispatched",
            extra={"trigger_id": report.trigger_id, "severity": severity.value, "sent": sent},
        )
        return outcomes

    def notify_failure(
        self,
        report: RecoveryReport,
        signal: IncidentSignal | None,
        error: BaseException | str,
    ) -> list[NotificationOutcome]:
        """Tell the CRITICAL channels that the recovery run itself failed."""
        fields = message_fields(report, signal, self._dashboard_url, self._logs_url)
        fields["Error"] = str(error) or type(error).__name__
        fields["FailedStage"] = report.stage.value
        outcomes = [
            self._deliver(channel, Severity.CRITICAL, report, fields, template=FAILURE_TEMPLATE)
            for channel in self.select_channels(Severity.CRITICAL)
        ]
        logger.info(
            "Recovery failure notification dispatched",
            extra={
                "trigger_id": report.trigger_id,
                "sent": sum(1 for o in outcomes if o.status == NotificationStatus.SENT),
            },
        )
        return outcomes

    def notify_level(
        self,
        policy_name: str,
        level: int,
        report: RecoveryReport,
        state: IncidentState | None = None,
        signal: IncidentSignal | None = None,
        severity: Severity = Severity.CRITICAL,
    ) -> list[NotificationOutcome]:
        """Notify the channel set of one escalation level if its condition holds."""
        policy = self.config.policy(policy_name)
        if policy is None or not 0 <= level < len(policy.levels):
            logger.warning("Unknown escalation policy/level %s[%s]", policy_name, level)
            return []
        escalation_level = policy.levels[level]
        state = state or IncidentState()
        if not condition_holds(escalation_level.condition, state):
            logger.info(
                "Escalation %s level %s not fired: condition %s does not hold",
                policy_name,
                level,
                escalation_level.condition.value,
            )
            return []
        fields = message_fields(
            report,
            signal,
            self._dashboard_url,
            self._logs_url,
            escalation=f"{policy_name} level {level}",
        )
        outcomes = []
        for name in escalation_level.channels:
            channel = self.config.channel(name)
            if channel is None:
                logger.warning("Escalation %s references unknown channel %s", policy_name, name)
                continue
            outcomes.append(self._deliver(channel, severity, report, fields, escalation_level=level))
        return outcomes

    def _deliver(
        self,
        channel: NotificationChannel,
        severity: Severity,
        report: RecoveryReport,
        fields: dict,
        escalation_level: int | None = None,
        template: NotificationTemplate | None = None,
    ) -> NotificationOutcome:
        now = self._clock()

        def outcome(status: NotificationStatus, reason: str = "") -> NotificationOutcome:
            return NotificationOutcome(
                channel=channel.name,
                kind=channel.kind,
                status=status,
                reason=reason,
                escalation_level=escalation_level,
                timestamp=now,
            )

        if channel.business_hours_only and not self._business_hours.contains(now):
            logger.info("Channel %s suppressed outside business hours", channel.name)
            return outcome(NotificationStatus.SUPPRESSED, "outside business hours")

        transport = self._transports.get(channel.kind)
        if transport is None:
            logger.warning("No transport for channel kind %s (%s)", channel.kind.value, channel.name)
            return outcome(NotificationStatus.FAILED, f"no transport for {channel.kind.value}")

        previous: datetime | None = None
        if channel.rate_limit_minutes:
            allowed, previous = self._ledger.reserve(channel.name, channel.rate_limit_minutes, now)
            if not allowed:
                logger.info("Channel %s suppressed by rate limit", channel.name)
                return outcome(NotificationStatus.SUPPRESSED, "rate limited")

        try:
            message = render(severity, channel.kind, report, fields, template)
            ok = transport.send(message, channel.endpoint)
            reason = "" if ok else "transport declined"
        except Exception as e:
            logger.warning("Notification via %s failed: %s", channel.name, e, exc_info=True)
            ok, reason = False, str(e) or type(e).__name__

        if not ok:
            if channel.rate_limit_minutes:
                self._ledger.release(channel.name, now, previous)
            return outcome(NotificationStatus.FAILED, reason)
        return outcome(NotificationStatus.SENT)
