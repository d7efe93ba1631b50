"""Planner: incident signal -> deduplicated, priority-ordered recovery plan."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from autorecovery.cooldown import CooldownStore
from autorecovery.models import (
    HealthStatus,
    IncidentSignal,
    RecoveryActionSpec,
    RecoveryResult,
    ResultStatus,
    UnhealthyComponent,
)
from autorecovery.planner.catalog import DEFAULT_CATALOG, RecoveryCatalog

logger = logging.getLogger(__name__)

# Degraded components only get the conservative tiers
DEGRADED_MAX_PRIORITY = 2

COOLDOWN_ACTIVE = "cooldown active"


def is_action_admitted(component: UnhealthyComponent, action: RecoveryActionSpec) -> bool:
    if component.status == HealthStatus.CRITICAL:
        return True
    if component.status == HealthStatus.DEGRADED:
        return action.priority <= DEGRADED_MAX_PRIORITY
    return False


class RecoveryPlanner:
    """Maps unhealthy components to an ordered list of remediation actions."""

    def __init__(self, catalog: RecoveryCatalog | None = None) -> None:
        self.catalog = catalog if catalog is not None else DEFAULT_CATALOG

    def plan(self, signal: IncidentSignal) -> list[RecoveryActionSpec]:
        """
        Admit each component's cataloged actions by its status, deduplicate by
        (kind, target) and sort ascending by priority.

        When two components share an action, the entry with the lower priority
        value is kept; on equal priority the first occurrence wins.
        """
        chosen: dict[tuple[str, str], RecoveryActionSpec] = {}
        for component in signal.unhealthy_components:
            actions = self.catalog.actions_for(component.name)
            if not actions:
                logger.debug("No cataloged actions for component %s", component.name)
                continue
            for action in actions:
                if not is_action_admitted(component, action):
                    continue
                key = (action.kind.value, action.target)
                existing = chosen.get(key)
                if existing is None or action.priority < existing.priority:
                    chosen[key] = action
        # dict keeps first-insertion order; sorted() is stable
        return sorted(chosen.values(), key=lambda a: a.priority)


def filter_by_cooldown(
    plan: list[RecoveryActionSpec],
    store: CooldownStore,
    now: datetime | None = None,
) -> tuple[list[RecoveryActionSpec], list[RecoveryResult]]:
    """
    Claim each action's cooldown slot; return (runnable actions, skipped results).

    A store failure fails open: the action stays runnable and a degraded-mode
    warning is logged.
    """
    now = now or datetime.now(timezone.utc)
    runnable: list[RecoveryActionSpec] = []
    skipped: list[RecoveryResult] = []
    for action in plan:
        key = action.cooldown_key
        try:
            eligible = store.claim(key, action.cooldown_minutes, now)
        except Exception as e:
            logger.warning(
                "Cooldown store unavailable; running %s without cooldown check (degraded mode): %s",
                key,
                e,
                exc_info=True,
                extra={"cooldown_key": key},
            )
            eligible = True
        if eligible:
            runnable.append(action)
            continue
        logger.info(
            "Skipping %s: %s",
            key,
            COOLDOWN_ACTIVE,
            extra={"cooldown_key": key, "cooldown_minutes": action.cooldown_minutes},
        )
        skipped.append(
            RecoveryResult(
                action=action,
                status=ResultStatus.SKIPPED,
                details={"reason": COOLDOWN_ACTIVE},
                timestamp=now,
            )
        )
    return runnable, skipped
