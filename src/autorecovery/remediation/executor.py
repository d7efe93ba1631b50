"""Runs a recovery plan against the remediation handlers, one action at a time."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from autorecovery.cooldown import CooldownStore
from autorecovery.errors import UnsupportedActionError
from autorecovery.models import RecoveryActionSpec, RecoveryResult, ResultStatus
from autorecovery.remediation.handlers import HandlerRegistry

logger = logging.getLogger(__name__)


class ActionExecutor:
    """
    Executes actions sequentially in plan order, never concurrently.

    A failed action does not abort the run: the next action (e.g. a fallback
    failover after a failed restart) is still attempted. Every attempt,
    successful or not, is recorded in the cooldown store.
    """

    def __init__(self, handlers: HandlerRegistry, cooldown_store: CooldownStore) -> None:
        self._handlers = handlers
        self._cooldown_store = cooldown_store

    def execute(self, plan: list[RecoveryActionSpec]) -> list[RecoveryResult]:
        return [self.execute_action(action) for action in plan]

    def execute_action(self, action: RecoveryActionSpec) -> RecoveryResult:
        """Invoke the handler, retrying immediately up to max_retries times."""
        logger.info(
            "Executing recovery action %s -> %s",
            action.kind.value,
            action.target,
            extra={"priority": action.priority, "max_retries": action.max_retries},
        )
        start = time.monotonic()
        attempts = 0
        status = ResultStatus.FAILED
        details: dict = {}

        if not self._handlers.supports(action.kind):
            attempts = 1
            details = {"error": f"Unsupported recovery action: {action.kind.value}"}
        else:
            for attempt in range(1 + action.max_retries):
                attempts = attempt + 1
                try:
                    details = dict(self._handlers.execute(action.kind, action.target))
                    status = ResultStatus.SUCCESS
                    break
                except UnsupportedActionError as e:
                    # Retrying an unknown target cannot succeed
                    details = {"error": str(e)}
                    break
                except Exception as e:
                    logger.warning(
                        "Recovery action %s attempt %s failed: %s",
                        action.cooldown_key,
                        attempts,
                        e,
                        exc_info=True,
                    )
                    details = {"error": str(e) or type(e).__name__}

        duration_ms = (time.monotonic() - start) * 1000.0
        finished = datetime.now(timezone.utc)
        self._record(action, finished)

        if status == ResultStatus.SUCCESS:
            logger.info(
                "Recovery action %s succeeded (%.0fms)",
                action.cooldown_key,
                duration_ms,
                extra={"attempts": attempts},
            )
        else:
            logger.warning(
                "Recovery action %s failed after %s attempt(s): %s",
                action.cooldown_key,
                attempts,
                details.get("error"),
            )
        return RecoveryResult(
            action=action,
            status=status,
            duration_ms=duration_ms,
            attempts=attempts,
            details=details,
            timestamp=finished,
        )

    def _record(self, action: RecoveryActionSpec, when: datetime) -> None:
        try:
            self._cooldown_store.record_execution(action.cooldown_key, when)
        except Exception as e:
            logger.warning(
                "Failed to record execution time for %s: %s",
                action.cooldown_key,
                e,
                exc_info=True,
            )
