"""Assemble the single RecoveryReport of a run."""

from __future__ import annotations

from datetime import datetime

from autorecovery.models import (
    HealthCheckError,
    IncidentSignal,
    RecoveryReport,
    RecoveryResult,
    ResultStatus,
    RunStage,
    SystemHealth,
)


def build_report(
    signal: IncidentSignal,
    results: list[RecoveryResult],
    started_at: datetime,
    ended_at: datetime,
    health_after: SystemHealth | HealthCheckError | None = None,
    stage: RunStage = RunStage.REPORTING,
) -> RecoveryReport:
    """Counts are derived from results; results keep plan order."""
    return RecoveryReport(
        trigger_id=signal.signal_id,
        trigger=signal.trigger,
        start_time=started_at,
        end_time=ended_at,
        total_actions=len(results),
        successful_actions=sum(1 for r in results if r.status == ResultStatus.SUCCESS),
        failed_actions=sum(1 for r in results if r.status == ResultStatus.FAILED),
        skipped_actions=sum(1 for r in results if r.status == ResultStatus.SKIPPED),
        results=list(results),
        system_health_before=signal.system_health,
        system_health_after=health_after,
        stage=stage,
    )


def timeline(report: RecoveryReport) -> list[str]:
    """Human-readable one-line-per-action summary used by notifications."""
    lines = []
    for result in report.results:
        line = f"{result.action.kind.value} {result.action.target}: {result.status.value}"
        if result.status == ResultStatus.FAILED and result.details.get("error"):
            line += f" ({result.details['error']})"
        elif result.status == ResultStatus.SKIPPED and result.details.get("reason"):
            line += f" ({result.details['reason']})"
        lines.append(line)
    return lines
