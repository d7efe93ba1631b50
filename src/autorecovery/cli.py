"""CLI entry point for auto-recovery."""

import argparse
import json
import logging
import sys
from pathlib import Path

from autorecovery import __version__
from autorecovery.incident_detection import manual_signal, signal_from_alarm, signal_from_health
from autorecovery.models import HealthCheckError, IncidentState, ResultStatus, Severity, TriggerKind
from autorecovery.reporting import HistoryQuery
from autorecovery.workflow import RecoveryOrchestrator, default_orchestrator

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autorecovery",
        description="Todo app auto-recovery: plan, execute, verify and report remediation runs",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one recovery for a manual or health-check signal")
    run.add_argument(
        "--trigger",
        choices=[TriggerKind.MANUAL.value, TriggerKind.HEALTH_CHECK.value],
        default=TriggerKind.MANUAL.value,
        help="manual: use --component; health-check: assess health now (default: manual)",
    )
    run.add_argument(
        "--component",
        action="append",
        default=[],
        metavar="NAME[:STATUS]",
        help="Unhealthy component, repeatable (status defaults to critical)",
    )
    run.add_argument("--severity", choices=[s.value for s in Severity], help="Override signal severity")

    alarm = sub.add_parser("alarm", help="Run recovery for a CloudWatch alarm notification JSON file")
    alarm.add_argument("file", help="Alarm notification JSON ('-' for stdin)")

    states = sub.add_parser(
        "alarm-states", help="Evaluate composite alarms over a JSON map of alarm states and recover"
    )
    states.add_argument("file", help="JSON object {alarm name: state} ('-' for stdin)")

    escalate = sub.add_parser("escalate", help="Notify one escalation level (scheduler hook)")
    escalate.add_argument("policy")
    escalate.add_argument("level", type=int)
    escalate.add_argument("--trigger-id", required=True, help="Run whose report is escalated")
    escalate.add_argument("--acknowledged", action="store_true")
    escalate.add_argument("--not-firing", action="store_true", help="Alarm no longer firing")
    escalate.add_argument("--escalated", action="store_true", help="Incident already escalated")

    history = sub.add_parser("history", help="Show recent recovery reports")
    history.add_argument("--trigger", choices=[t.value for t in TriggerKind])
    history.add_argument("--limit", type=int, default=10)
    history.add_argument("--only-failed", action="store_true")
    return parser


def _print_json(payload: str) -> None:
    sys.stdout.write(payload + "\n")


def _cmd_run(orchestrator: RecoveryOrchestrator, args: argparse.Namespace) -> int:
    severity = Severity(args.severity) if args.severity else None
    if args.trigger == TriggerKind.HEALTH_CHECK.value:
        health = orchestrator.verifier.verify()
        if isinstance(health, HealthCheckError):
            logger.error("Health assessment failed: %s", health.error)
            return 1
        signal = signal_from_health(health)
        if not signal.unhealthy_components:
            logger.info("All components healthy; nothing to recover")
            return 0
    else:
        if not args.component:
            logger.error("run --trigger manual needs at least one --component")
            return 1
        try:
            signal = manual_signal(args.component, severity=severity)
        except ValueError as e:
            logger.error("Invalid component: %s", e)
            return 1
    report = orchestrator.run_recovery(signal)
    _print_json(report.model_dump_json(indent=2))
    return 1 if report.failed_actions else 0


def _cmd_alarm(orchestrator: RecoveryOrchestrator, args: argparse.Namespace) -> int:
    try:
        text = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Cannot read %s: %s", args.file, e)
        return 1
    signal = signal_from_alarm(text)
    if signal is None:
        logger.info("Alarm is not in ALARM state (or invalid); no recovery started")
        return 0
    report = orchestrator.run_recovery(signal)
    _print_json(report.model_dump_json(indent=2))
    return 1 if report.failed_actions else 0


def _cmd_alarm_states(orchestrator: RecoveryOrchestrator, args: argparse.Namespace) -> int:
    try:
        text = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
        states = json.loads(text)
    except (OSError, ValueError) as e:
        logger.error("Cannot read alarm states from %s: %s", args.file, e)
        return 1
    if isinstance(states, dict) and isinstance(states.get("states"), dict):
        states = states["states"]
    if not isinstance(states, dict):
        logger.error("Alarm states must be a JSON object of alarm name to state")
        return 1
    reports = orchestrator.run_composite(states)
    if not reports:
        logger.info("No composite alarm firing; no recovery started")
        return 0
    _print_json(json.dumps([r.model_dump(mode="json") for r in reports], indent=2))
    return 1 if any(r.failed_actions for r in reports) else 0


def _cmd_escalate(orchestrator: RecoveryOrchestrator, args: argparse.Namespace) -> int:
    state = IncidentState(
        acknowledged=args.acknowledged,
        still_firing=not args.not_firing,
        escalated=args.escalated,
    )
    outcomes = orchestrator.notify_escalation(args.policy, args.level, args.trigger_id, state)
    _print_json(json.dumps([o.model_dump(mode="json") for o in outcomes], indent=2))
    return 0


def _cmd_history(orchestrator: RecoveryOrchestrator, args: argparse.Namespace) -> int:
    query = HistoryQuery(
        trigger=TriggerKind(args.trigger) if args.trigger else None,
        only_failed=args.only_failed,
        limit=args.limit,
    )
    for report in orchestrator.history.query(query):
        failed = [r for r in report.results if r.status == ResultStatus.FAILED]
        print(
            f"{report.start_time.isoformat()}  {report.trigger_id}  {report.trigger.value:<12} "
            f"{report.successful_actions}/{report.total_actions} ok  "
            f"{len(failed)} failed  {report.skipped_actions} skipped"
        )
    return 0


_COMMANDS = {
    "run": _cmd_run,
    "alarm": _cmd_alarm,
    "alarm-states": _cmd_alarm_states,
    "escalate": _cmd_escalate,
    "history": _cmd_history,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    orchestrator = default_orchestrator()
    return _COMMANDS[args.command](orchestrator, args)


if __name__ == "__main__":
    sys.exit(main())
