"""
Auto-recovery HTTP API.

Provides: recovery runs for explicit signals, CloudWatch alarm notifications
and composite-alarm evaluation over current alarm states. Also the escalation
scheduler hook, history lookup and a liveness check. The orchestrator is a
FastAPI dependency so tests can override it.
"""

from datetime import datetime
from typing import Any

from fastapi import Body, Depends, FastAPI, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from autorecovery import __version__
from autorecovery.incident_detection import signal_from_alarm
from autorecovery.models import IncidentSignal, IncidentState, NotificationOutcome, RecoveryReport, TriggerKind
from autorecovery.reporting import HistoryQuery
from autorecovery.workflow import RecoveryOrchestrator, default_orchestrator

app = FastAPI(title="Todo App Auto-Recovery", version=__version__)


def get_orchestrator() -> RecoveryOrchestrator:
    return default_orchestrator()


class AlarmStatesBody(BaseModel):
    """Current state per alarm name, e.g. {"HighLatency": "ALARM"}."""

    states: dict[str, str | bool]


class EscalationBody(BaseModel):
    """Escalation request from the scheduler."""

    trigger_id: str
    state: IncidentState = IncidentState()


@app.post("/api/recoveries", response_model=RecoveryReport)
def api_run_recovery(
    signal: IncidentSignal,
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Run one recovery for the signal and return its report."""
    return orchestrator.run_recovery(signal)


@app.post("/api/alarms")
def api_alarm(
    payload: dict[str, Any] = Body(...),
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """CloudWatch alarm notification (raw or SNS envelope). Non-ALARM states are accepted as no-ops."""
    signal = signal_from_alarm(payload)
    if signal is None:
        return JSONResponse(status_code=202, content={"started": False})
    report = orchestrator.run_recovery(signal)
    return JSONResponse(content=report.model_dump(mode="json"))


@app.post("/api/alarm-states")
def api_alarm_states(
    body: AlarmStatesBody,
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Evaluate the composite alarms; one recovery per firing composite."""
    reports = orchestrator.run_composite(body.states)
    if not reports:
        return JSONResponse(status_code=202, content={"started": False})
    return JSONResponse(content=[r.model_dump(mode="json") for r in reports])


@app.post("/api/escalations/{policy}/{level}", response_model=list[NotificationOutcome])
def api_escalate(
    policy: str,
    level: int,
    body: EscalationBody,
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Notify escalation level `level` of `policy` if its condition holds."""
    return orchestrator.notify_escalation(policy, level, body.trigger_id, body.state)


@app.get("/api/recoveries", response_model=list[RecoveryReport])
def api_history(
    trigger_id: str | None = None,
    trigger: TriggerKind | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    only_failed: bool = False,
    limit: int = Query(default=50, ge=1, le=1000),
    orchestrator: RecoveryOrchestrator = Depends(get_orchestrator),
):
    """Recent recovery reports, newest first."""
    query = HistoryQuery(
        trigger_id=trigger_id,
        trigger=trigger,
        since=since,
        until=until,
        only_failed=only_failed,
        limit=limit,
    )
    return orchestrator.history.query(query)


@app.get("/api/health")
def api_health():
    return {"status": "ok", "version": __version__}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3000)
