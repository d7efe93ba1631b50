"""Notification channels, escalation policies and business hours."""

from __future__ import annotations

import json
import logging
from datetime import datetime, time, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field, model_validator

from autorecovery.config import Settings
from autorecovery.models import (
    ChannelKind,
    EscalationCondition,
    EscalationLevel,
    EscalationPolicy,
    NotificationChannel,
    Severity,
)

logger = logging.getLogger(__name__)


class BusinessHours(BaseModel):
    """
    Window in which business_hours_only channels deliver. end_hour is exclusive.

    A window whose start_hour is after its end_hour runs overnight: 22-6 covers
    22:00 of a listed weekday until 06:00 of the following day.
    """

    start_hour: int = Field(default=9, ge=0, le=23)
    end_hour: int = Field(default=18, ge=1, le=24)
    weekdays: frozenset[int] = frozenset({0, 1, 2, 3, 4})
    timezone: str = "UTC"

    @model_validator(mode="after")
    def _non_empty(self) -> BusinessHours:
        if self.start_hour == self.end_hour:
            raise ValueError(f"Empty business-hours window {self.start_hour}-{self.end_hour}")
        return self

    def contains(self, now: datetime) -> bool:
        aware = now if now.tzinfo else now.replace(tzinfo=timezone.utc)
        local = aware.astimezone(ZoneInfo(self.timezone))
        start = time(self.start_hour)
        if self.start_hour < self.end_hour:
            if local.weekday() not in self.weekdays:
                return False
            if self.end_hour >= 24:
                return local.time() >= start
            return start <= local.time() < time(self.end_hour)
        # Overnight: the early-morning part belongs to the previous day's window
        if local.time() >= start:
            return local.weekday() in self.weekdays
        return local.time() < time(self.end_hour) and (local.weekday() - 1) % 7 in self.weekdays

    @classmethod
    def from_settings(cls, settings: Settings) -> BusinessHours:
        return cls(
            start_hour=settings.business_hours_start,
            end_hour=settings.business_hours_end,
            weekdays=frozenset(settings.business_weekdays),
            timezone=settings.business_timezone,
        )


class NotificationConfig(BaseModel):
    channels: tuple[NotificationChannel, ...]
    escalation_policies: tuple[EscalationPolicy, ...] = ()

    def channel(self, name: str) -> NotificationChannel | None:
        return next((c for c in self.channels if c.name == name), None)

    def policy(self, name: str) -> EscalationPolicy | None:
        return next((p for p in self.escalation_policies if p.name == name), None)


DEFAULT_CHANNELS: tuple[NotificationChannel, ...] = (
    NotificationChannel(
        name="ops-critical",
        kind=ChannelKind.EMAIL,
        endpoint="ops-critical@company.com",
        severities=frozenset({Severity.CRITICAL}),
        rate_limit_minutes=5,
    ),
    NotificationChannel(
        name="ops-team",
        kind=ChannelKind.EMAIL,
        endpoint="ops-team@company.com",
        severities=frozenset({Severity.CRITICAL, Severity.WARNING}),
        rate_limit_minutes=15,
    ),
    NotificationChannel(
        name="dev-alerts",
        kind=ChannelKind.EMAIL,
        endpoint="dev-alerts@company.com",
        severities=frozenset({Severity.WARNING, Severity.INFO}),
        business_hours_only=True,
    ),
    NotificationChannel(
        name="on-call-sms",
        kind=ChannelKind.SMS,
        endpoint="+821012345678",
        severities=frozenset({Severity.CRITICAL}),
        rate_limit_minutes=10,
    ),
    NotificationChannel(
        name="slack-ops",
        kind=ChannelKind.SLACK,
        endpoint="#ops-alerts",
        severities=frozenset({Severity.CRITICAL, Severity.WARNING}),
        rate_limit_minutes=5,
    ),
    NotificationChannel(
        name="pagerduty-critical",
        kind=ChannelKind.PAGERDUTY,
        endpoint="https://events.pagerduty.com/v2/enqueue",
        severities=frozenset({Severity.CRITICAL}),
    ),
)

DEFAULT_ESCALATION_POLICIES: tuple[EscalationPolicy, ...] = (
    EscalationPolicy(
        name="critical-escalation",
        levels=(
            EscalationLevel(
                delay_minutes=0,
                channels=("ops-critical", "on-call-sms", "pagerduty-critical"),
                condition=EscalationCondition.UNACKNOWLEDGED,
            ),
            EscalationLevel(
                delay_minutes=15,
                channels=("ops-team", "slack-ops"),
                condition=EscalationCondition.STILL_FIRING,
            ),
            EscalationLevel(
                delay_minutes=30,
                channels=("ops-critical",),
                condition=EscalationCondition.ESCALATED,
            ),
        ),
    ),
    EscalationPolicy(
        name="warning-escalation",
        levels=(
            EscalationLevel(
                delay_minutes=0,
                channels=("ops-team", "slack-ops"),
                condition=EscalationCondition.UNACKNOWLEDGED,
            ),
            EscalationLevel(
                delay_minutes=60,
                channels=("ops-critical",),
                condition=EscalationCondition.STILL_FIRING,
            ),
        ),
    ),
)

DEFAULT_NOTIFICATION_CONFIG = NotificationConfig(
    channels=DEFAULT_CHANNELS,
    escalation_policies=DEFAULT_ESCALATION_POLICIES,
)


def load_notification_config(path: str | Path) -> NotificationConfig:
    """Load {"channels": [...], "escalation_policies": [...]} from a JSON file."""
    config = NotificationConfig.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))
    known = {c.name for c in config.channels}
    for policy in config.escalation_policies:
        for level in policy.levels:
            missing = set(level.channels) - known
            if missing:
                logger.warning(
                    "Escalation policy %s references unknown channels: %s",
                    policy.name,
                    sorted(missing),
                )
    return config
