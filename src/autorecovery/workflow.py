"""
Recovery run workflow.

  Signal → Plan → Cooldown filter → Execute (sequential) → Verify health
    → Report + metrics → Notify → History

Stages advance strictly in order; a stage's failure is recorded as data and
the run moves on. Nothing raises out of run_recovery(); an unexpected error
ends the run with a CRITICAL recovery-failure notification instead.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from collections.abc import Mapping, Sequence
from functools import lru_cache

from autorecovery.config import Settings, get_settings
from autorecovery.cooldown import CooldownStore, DynamoDBCooldownStore, InMemoryCooldownStore
from autorecovery.incident_detection import (
    DEFAULT_COMPOSITE_ALARMS,
    CompositeAlarm,
    evaluate_composite_alarms,
    signal_from_composite_alarm,
)
from autorecovery.models import (
    ChannelKind,
    HealthCheckError,
    IncidentSignal,
    IncidentState,
    NotificationOutcome,
    RecoveryActionSpec,
    RecoveryReport,
    RecoveryResult,
    ResultStatus,
    RunStage,
    SystemHealth,
    TriggerKind,
)
from autorecovery.notifications import (
    DEFAULT_NOTIFICATION_CONFIG,
    BusinessHours,
    EmailTransport,
    LogTransport,
    NotificationDispatcher,
    PagerDutyTransport,
    SlackTransport,
    SmsTransport,
    WebhookTransport,
    load_notification_config,
)
from autorecovery.planner import DEFAULT_CATALOG, RecoveryPlanner, filter_by_cooldown, load_catalog
from autorecovery.recovery_verification import (
    HealthAssessor,
    HealthVerifier,
    HttpHealthAssessor,
    LambdaHealthAssessor,
    StaticHealthAssessor,
)
from autorecovery.remediation import ActionExecutor, HandlerRegistry, aws_handlers, stub_handlers
from autorecovery.reporting import (
    CloudWatchMetricsBackend,
    DynamoDBHistoryStore,
    HistoryQuery,
    HistoryStore,
    InMemoryHistoryStore,
    LoggingMetricsBackend,
    MetricsBackend,
    build_report,
    publish_error_metric,
    publish_notification_metrics,
    publish_recovery_metrics,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecoveryOrchestrator:
    """Runs one recovery per incident signal. Safe to share across concurrent runs."""

    def __init__(
        self,
        planner: RecoveryPlanner,
        cooldown_store: CooldownStore,
        handlers: HandlerRegistry,
        verifier: HealthVerifier,
        metrics: MetricsBackend,
        history: HistoryStore,
        dispatcher: NotificationDispatcher,
        notification_metrics: MetricsBackend | None = None,
    ) -> None:
        self.planner = planner
        self.cooldown_store = cooldown_store
        self.executor = ActionExecutor(handlers, cooldown_store)
        self.verifier = verifier
        self.metrics = metrics
        self.history = history
        self.dispatcher = dispatcher
        self.notification_metrics = notification_metrics or metrics

    def run_recovery(self, signal: IncidentSignal) -> RecoveryReport:
        """Run every stage for the signal and return its single report."""
        started_at = _utcnow()
        logger.info(
            "Auto-recovery started",
            extra={
                "trigger_id": signal.signal_id,
                "trigger": signal.trigger.value,
                "unhealthy_components": [c.name for c in signal.unhealthy_components],
            },
        )
        stage = RunStage.PLANNING
        plan: list[RecoveryActionSpec] = []
        results: list[RecoveryResult] = []
        health_after: SystemHealth | HealthCheckError | None = None
        report: RecoveryReport | None = None
        try:
            plan = self._plan(signal)

            stage = RunStage.FILTERING
            runnable, skipped = filter_by_cooldown(plan, self.cooldown_store, _utcnow())
            logger.info("Cooldown filter: %s of %s action(s) to run", len(runnable), len(plan))

            stage = RunStage.EXECUTING
            executed = {a.cooldown_key: r for a, r in zip(runnable, self._execute(runnable))}
            skipped_by_key = {r.action.cooldown_key: r for r in skipped}
            # Report keeps plan order, with cooldown skips in place
            results = [
                executed.get(a.cooldown_key) or skipped_by_key[a.cooldown_key]
                for a in plan
                if a.cooldown_key in executed or a.cooldown_key in skipped_by_key
            ]

            stage = RunStage.VERIFYING
            health_after = self.verifier.verify()

            stage = RunStage.REPORTING
            report = build_report(signal, results, started_at, _utcnow(), health_after, stage)
            publish_recovery_metrics(self.metrics, report)

            report.notifications = self._notify(report, signal)
            report.stage = RunStage.NOTIFIED
            publish_notification_metrics(self.notification_metrics, report.notifications)
        except Exception as e:
            logger.error(
                "Auto-recovery failed in stage %s: %s",
                stage.value,
                e,
                exc_info=True,
                extra={"trigger_id": signal.signal_id},
            )
            publish_error_metric(self.metrics, "AutoRecoveryOrchestrator")
            if report is None:
                report = build_report(signal, results, started_at, _utcnow(), health_after, stage)
            failure_outcomes = self._notify_failure(report, signal, e)
            report.notifications = [*report.notifications, *failure_outcomes]
            report.stage = RunStage.NOTIFIED
            publish_notification_metrics(self.notification_metrics, failure_outcomes)

        self._persist(report)
        if report.successful_actions == 0 and report.total_actions > 0 and report.notifications_sent == 0:
            logger.error(
                "Auto-recovery delivered no remediation and no notification",
                extra={"trigger_id": report.trigger_id},
            )
        logger.info(
            "Auto-recovery finished (%.0fms)",
            report.duration_ms,
            extra={
                "trigger_id": report.trigger_id,
                "success": report.successful_actions,
                "failed": report.failed_actions,
                "skipped": report.skipped_actions,
            },
        )
        return report

    def run_composite(
        self,
        states: Mapping[str, str | bool],
        alarms: Sequence[CompositeAlarm] = DEFAULT_COMPOSITE_ALARMS,
    ) -> list[RecoveryReport]:
        """Evaluate composite rules over current alarm states; one recovery per firing composite."""
        firing = evaluate_composite_alarms(alarms, states)
        if not firing:
            logger.info("No composite alarm firing", extra={"alarms": sorted(states)})
        return [self.run_recovery(signal_from_composite_alarm(alarm)) for alarm in firing]

    def notify_escalation(
        self,
        policy_name: str,
        level: int,
        trigger_id: str,
        state: IncidentState | None = None,
    ) -> list[NotificationOutcome]:
        """Scheduler hook: notify escalation level N for a past run's report."""
        report: RecoveryReport | None = None
        try:
            found = self.history.query(HistoryQuery(trigger_id=trigger_id, limit=1))
            report = found[0] if found else None
        except Exception as e:
            logger.warning("History lookup for %s failed: %s", trigger_id, e, exc_info=True)
        if report is None:
            logger.warning("No recovery report for %s; escalating without run details", trigger_id)
            now = _utcnow()
            report = RecoveryReport(
                trigger_id=trigger_id,
                trigger=TriggerKind.ALARM,
                start_time=now,
                end_time=now,
                stage=RunStage.NOTIFIED,
            )
        try:
            outcomes = self.dispatcher.notify_level(policy_name, level, report, state)
        except Exception as e:
            logger.warning("Escalation %s[%s] failed: %s", policy_name, level, e, exc_info=True)
            return []
        publish_notification_metrics(self.notification_metrics, outcomes)
        return outcomes

    def _plan(self, signal: IncidentSignal) -> list[RecoveryActionSpec]:
        try:
            plan = self.planner.plan(signal)
        except Exception as e:
            logger.warning("Planning failed; continuing with an empty plan: %s", e, exc_info=True)
            return []
        logger.info("Recovery plan: %s action(s)", len(plan), extra={"plan": [a.cooldown_key for a in plan]})
        return plan

    def _execute(self, runnable: list[RecoveryActionSpec]) -> list[RecoveryResult]:
        results = []
        for action in runnable:
            try:
                results.append(self.executor.execute_action(action))
            except Exception as e:
                logger.warning("Executor error for %s: %s", action.cooldown_key, e, exc_info=True)
                results.append(
                    RecoveryResult(action=action, status=ResultStatus.FAILED, details={"error": str(e)})
                )
        return results

    def _notify(self, report: RecoveryReport, signal: IncidentSignal) -> list[NotificationOutcome]:
        try:
            return self.dispatcher.dispatch(report, signal)
        except Exception as e:
            logger.warning("Notification dispatch failed: %s", e, exc_info=True)
            return []

    def _notify_failure(
        self,
        report: RecoveryReport,
        signal: IncidentSignal,
        error: Exception,
    ) -> list[NotificationOutcome]:
        try:
            return self.dispatcher.notify_failure(report, signal, error)
        except Exception as e:
            logger.warning("Recovery failure notification failed: %s", e, exc_info=True)
            return []

    def _persist(self, report: RecoveryReport) -> None:
        try:
            self.history.put(report)
        except Exception as e:
            logger.warning("Failed to save recovery history: %s", e, exc_info=True)


def _health_assessor(settings: Settings) -> HealthAssessor:
    if settings.health_url:
        return HttpHealthAssessor(settings.health_url, timeout_seconds=settings.health_timeout_seconds)
    if settings.use_aws_integration and settings.health_function_name:
        return LambdaHealthAssessor(settings.health_function_name, region_name=settings.aws_region)
    return StaticHealthAssessor()


def build_dispatcher(settings: Settings) -> NotificationDispatcher:
    config = (
        load_notification_config(settings.notification_config_path)
        if settings.notification_config_path
        else DEFAULT_NOTIFICATION_CONFIG
    )
    if settings.use_aws_integration:
        transports = {
            ChannelKind.EMAIL: EmailTransport(settings.email_sender, region_name=settings.aws_region),
            ChannelKind.SMS: SmsTransport(region_name=settings.aws_region),
            ChannelKind.SLACK: SlackTransport(bot_token=settings.slack_bot_token),
            ChannelKind.PAGERDUTY: PagerDutyTransport(routing_key=settings.pagerduty_routing_key),
            ChannelKind.WEBHOOK: WebhookTransport(),
        }
    else:
        stub = LogTransport()
        transports = {kind: stub for kind in ChannelKind}
    return NotificationDispatcher(
        transports,
        config=config,
        business_hours=BusinessHours.from_settings(settings),
        critical_policy=settings.critical_escalation_policy,
        dashboard_url=settings.dashboard_url,
        logs_url=settings.logs_url,
    )


def build_history_store(settings: Settings) -> HistoryStore:
    if settings.use_aws_integration:
        return DynamoDBHistoryStore(
            settings.history_table_name,
            region_name=settings.aws_region,
            retention_days=settings.history_retention_days,
        )
    return InMemoryHistoryStore(
        data_dir=settings.history_data_dir or None,
        retention_days=settings.history_retention_days,
    )


def build_orchestrator(settings: Settings | None = None) -> RecoveryOrchestrator:
    """Wire collaborators from settings: boto3-backed when use_aws_integration, else stubs."""
    settings = settings or get_settings()
    catalog = load_catalog(settings.catalog_path) if settings.catalog_path else DEFAULT_CATALOG
    if settings.use_aws_integration:
        cooldown_store: CooldownStore = DynamoDBCooldownStore(
            settings.cooldown_table_name,
            region_name=settings.aws_region,
            ttl_days=settings.cooldown_ttl_days,
        )
        handlers = aws_handlers(settings)
        metrics: MetricsBackend = CloudWatchMetricsBackend(
            settings.metrics_namespace, region_name=settings.aws_region
        )
        notification_metrics: MetricsBackend = CloudWatchMetricsBackend(
            settings.notification_metrics_namespace, region_name=settings.aws_region
        )
    else:
        cooldown_store = InMemoryCooldownStore(ttl_days=settings.cooldown_ttl_days)
        handlers = stub_handlers()
        metrics = LoggingMetricsBackend()
        notification_metrics = metrics
    return RecoveryOrchestrator(
        planner=RecoveryPlanner(catalog),
        cooldown_store=cooldown_store,
        handlers=handlers,
        verifier=HealthVerifier(_health_assessor(settings)),
        metrics=metrics,
        history=build_history_store(settings),
        dispatcher=build_dispatcher(settings),
        notification_metrics=notification_metrics,
    )


@lru_cache(maxsize=1)
def default_orchestrator() -> RecoveryOrchestrator:
    """Process-wide orchestrator from environment settings, so cooldowns and rate limits are shared."""
    return build_orchestrator()


def run_recovery(signal: IncidentSignal, settings: Settings | None = None) -> RecoveryReport:
    """
    Entry point for invokers. With explicit settings a fresh orchestrator is
    built; otherwise the shared default one is used.
    """
    try:
        orchestrator = build_orchestrator(settings) if settings is not None else default_orchestrator()
    except Exception as e:
        logger.error("Could not configure auto-recovery: %s", e, exc_info=True)
        now = _utcnow()
        return build_report(signal, [], now, now, None, RunStage.PLANNING)
    return orchestrator.run_recovery(signal)
