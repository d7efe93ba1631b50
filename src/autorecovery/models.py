"""Shared data models for the recovery workflow."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import (
    AliasChoices,
    AliasGenerator,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_signal_id() -> str:
    return f"inc-{uuid4().hex[:8]}"


# Inbound payloads from the health checks and alarm invokers use camelCase keys
_CAMEL_INPUT = ConfigDict(
    alias_generator=AliasGenerator(validation_alias=to_camel),
    populate_by_name=True,
)


class TriggerKind(str, Enum):
    """What produced the incident signal."""

    HEALTH_CHECK = "health-check"
    ALARM = "alarm"
    MANUAL = "manual"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"

    @classmethod
    def _missing_(cls, value: object) -> "HealthStatus | None":
        # Health checks report UNHEALTHY/DEGRADED/HEALTHY in upper case
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered == "unhealthy":
                return cls.CRITICAL
            for member in cls:
                if member.value == lowered:
                    return member
        return None


class Severity(str, Enum):
    """Coarse urgency classification driving notification routing."""

    CRITICAL = "CRITICAL"
    WARNING = "WARNING"
    INFO = "INFO"


class ComponentHealth(BaseModel):
    """Health of a single component as reported by the health-check subsystem."""

    model_config = _CAMEL_INPUT

    status: HealthStatus
    response_time_ms: float | None = Field(
        default=None,
        validation_alias=AliasChoices("response_time_ms", "responseTime", "responseTimeMs"),
    )
    error_rate: float | None = None
    last_check: datetime = Field(default_factory=utcnow)
    details: dict[str, Any] = Field(default_factory=dict)


class SystemHealth(BaseModel):
    """Output of assess_health(): overall score, status and per-component health."""

    model_config = _CAMEL_INPUT

    score: float = Field(ge=0.0, le=100.0)
    status: HealthStatus
    components: dict[str, ComponentHealth] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _from_orchestrator_report(cls, data: Any) -> Any:
        """Accept the health-check orchestrator report ({overallStatus, healthScore, components: [...]})."""
        if not isinstance(data, dict) or "overallStatus" not in data:
            return data
        components: dict[str, Any] = {}
        for check in data.get("components") or []:
            name = check.get("checkName") or check.get("name")
            if not name:
                continue
            fields: dict[str, Any] = {
                "status": check.get("status", HealthStatus.CRITICAL.value),
                "response_time_ms": check.get("responseTime"),
                "error_rate": check.get("errorRate"),
                "details": check.get("details") or {},
            }
            if check.get("timestamp"):
                fields["last_check"] = check["timestamp"]
            components[name] = fields
        return {
            "score": data.get("healthScore", 0),
            "status": data["overallStatus"],
            "components": components,
        }


class HealthCheckError(BaseModel):
    """Recorded in place of SystemHealth when a health assessment fails."""

    error: str
    error_type: str = "Exception"
    timestamp: datetime = Field(default_factory=utcnow)


class UnhealthyComponent(BaseModel):
    model_config = ConfigDict(**_CAMEL_INPUT, frozen=True)

    name: str
    status: HealthStatus
    details: ComponentHealth | None = None

    @model_validator(mode="before")
    @classmethod
    def _wrap_check_details(cls, data: Any) -> Any:
        # The health-check invoker sends the raw check details, not a ComponentHealth
        if isinstance(data, dict):
            details = data.get("details")
            if isinstance(details, dict) and "status" not in details:
                data = {**data, "details": {"status": data.get("status"), "details": details}}
        return data


class AlarmDetails(BaseModel):
    """Raw metadata of the alarm that triggered recovery."""

    model_config = ConfigDict(**_CAMEL_INPUT, frozen=True)

    alarm_name: str
    state: str = "ALARM"
    reason: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    metric_name: str | None = None
    namespace: str | None = None
    dimensions: dict[str, str] = Field(default_factory=dict)
    severity: Severity | None = None


class IncidentSignal(BaseModel):
    """Normalized description of unhealthy system state; one per trigger event."""

    model_config = ConfigDict(**_CAMEL_INPUT, frozen=True, extra="forbid")

    signal_id: str = Field(default_factory=new_signal_id)
    trigger: TriggerKind
    system_health: SystemHealth | None = None
    unhealthy_components: tuple[UnhealthyComponent, ...] = ()
    alarm_details: AlarmDetails | None = None
    severity: Severity | None = None
    received_at: datetime = Field(default_factory=utcnow)

    @property
    def is_critical(self) -> bool:
        """CRITICAL-class incidents get the escalation policy regardless of outcome."""
        if self.severity == Severity.CRITICAL:
            return True
        return self.alarm_details is not None and self.alarm_details.severity == Severity.CRITICAL


class ActionKind(str, Enum):
    """Remediation action kinds the executor can dispatch."""

    RESTART_SERVICE = "restart-service"
    SCALE_UP = "scale-up"
    CLEAR_CACHE = "clear-cache"
    FAILOVER = "failover"
    CUSTOM = "custom"

    @classmethod
    def _missing_(cls, value: object) -> "ActionKind | None":
        # Accept RESTART_SERVICE / restart_service spellings from older configs
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            for member in cls:
                if member.value == normalized:
                    return member
        return None


class RecoveryActionSpec(BaseModel):
    """Catalog entry: one remediation action against one target."""

    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    target: str = Field(min_length=1)
    priority: int = Field(ge=1)
    cooldown_minutes: float = Field(default=0.0, ge=0.0)
    max_retries: int = Field(default=0, ge=0)

    @property
    def cooldown_key(self) -> str:
        return f"{self.kind.value}:{self.target}"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class RecoveryResult(BaseModel):
    """Outcome of one planned action."""

    model_config = ConfigDict(frozen=True)

    action: RecoveryActionSpec
    status: ResultStatus
    duration_ms: float = 0.0
    attempts: int = 0
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class RunStage(str, Enum):
    """Stages of a recovery run, in order. No stage is ever revisited."""

    PLANNING = "planning"
    FILTERING = "filtering"
    EXECUTING = "executing"
    VERIFYING = "verifying"
    REPORTING = "reporting"
    NOTIFIED = "notified"


class ChannelKind(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    SLACK = "slack"
    PAGERDUTY = "pagerduty"
    WEBHOOK = "webhook"


class NotificationChannel(BaseModel):
    """A destination plus the severities it accepts and its delivery filters."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ChannelKind
    endpoint: str = ""
    severities: frozenset[Severity]
    business_hours_only: bool = False
    rate_limit_minutes: float | None = Field(default=None, gt=0)

    @field_validator("kind", mode="before")
    @classmethod
    def _lower_kind(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value


class EscalationCondition(str, Enum):
    UNACKNOWLEDGED = "unacknowledged"
    STILL_FIRING = "still-firing"
    ESCALATED = "escalated"


class EscalationLevel(BaseModel):
    model_config = ConfigDict(frozen=True)

    delay_minutes: float = Field(ge=0.0)
    channels: tuple[str, ...]
    condition: EscalationCondition


class EscalationPolicy(BaseModel):
    """Time-staged notification routing applied while an incident stays unresolved."""

    model_config = ConfigDict(frozen=True)

    name: str
    levels: tuple[EscalationLevel, ...]


class IncidentState(BaseModel):
    """What the scheduler knows about an incident when it invokes an escalation level."""

    acknowledged: bool = False
    still_firing: bool = True
    escalated: bool = False


class RenderedMessage(BaseModel):
    """Channel-specific rendering of a notification."""

    severity: Severity
    subject: str
    body: str
    blocks: list[dict[str, Any]] = Field(default_factory=list)
    payload: dict[str, Any] = Field(default_factory=dict)


class NotificationStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SUPPRESSED = "suppressed"


class NotificationOutcome(BaseModel):
    channel: str
    kind: ChannelKind
    status: NotificationStatus
    reason: str = ""
    escalation_level: int | None = None
    timestamp: datetime = Field(default_factory=utcnow)


def success_rate(successful: int, total: int) -> float:
    """Percent of actions that succeeded; 0 when nothing was attempted."""
    if total <= 0:
        return 0.0
    return successful / total * 100.0


class RecoveryReport(BaseModel):
    """Aggregate of one recovery run; persisted to history and used as notification payload."""

    trigger_id: str
    trigger: TriggerKind
    start_time: datetime
    end_time: datetime
    total_actions: int = 0
    successful_actions: int = 0
    failed_actions: int = 0
    skipped_actions: int = 0
    results: list[RecoveryResult] = Field(default_factory=list)
    system_health_before: SystemHealth | None = None
    system_health_after: SystemHealth | HealthCheckError | None = None
    stage: RunStage = RunStage.PLANNING
    notifications: list[NotificationOutcome] = Field(default_factory=list)

    @computed_field
    @property
    def success_rate(self) -> float:
        return success_rate(self.successful_actions, self.total_actions)

    @computed_field
    @property
    def duration_ms(self) -> float:
        return (self.end_time - self.start_time).total_seconds() * 1000.0

    @property
    def severity(self) -> Severity:
        return Severity.WARNING if self.failed_actions > 0 else Severity.INFO

    @property
    def notifications_sent(self) -> int:
        return sum(1 for n in self.notifications if n.status == NotificationStatus.SENT)
