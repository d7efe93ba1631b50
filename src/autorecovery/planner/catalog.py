"""Static recovery catalog: component name -> remediation actions."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

from pydantic import ValidationError

from autorecovery.models import ActionKind, RecoveryActionSpec

logger = logging.getLogger(__name__)


class RecoveryCatalog(Mapping[str, tuple[RecoveryActionSpec, ...]]):
    """Immutable mapping injected into the planner. Unknown components map to ()."""

    def __init__(self, entries: Mapping[str, Iterable[RecoveryActionSpec]] | None = None) -> None:
        self._entries = MappingProxyType(
            {name: tuple(actions) for name, actions in (entries or {}).items()}
        )

    def __getitem__(self, name: str) -> tuple[RecoveryActionSpec, ...]:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def actions_for(self, name: str) -> tuple[RecoveryActionSpec, ...]:
        return self._entries.get(name, ())

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> RecoveryCatalog:
        """Build from plain data; malformed entries are dropped with a warning."""
        entries: dict[str, list[RecoveryActionSpec]] = {}
        for name, actions in raw.items():
            if not isinstance(actions, list):
                logger.warning("Catalog entry for %s is not a list; ignoring", name)
                entries[name] = []
                continue
            valid: list[RecoveryActionSpec] = []
            for raw_action in actions:
                try:
                    valid.append(RecoveryActionSpec.model_validate(raw_action))
                except ValidationError as e:
                    logger.warning(
                        "Dropping malformed catalog action for %s: %s",
                        name,
                        e,
                        extra={"component": name},
                    )
            entries[name] = valid
        return cls(entries)


def load_catalog(path: str | Path) -> RecoveryCatalog:
    """Load a catalog from a JSON file of {component: [action, ...]}."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Catalog file {path} must contain a JSON object")
    return RecoveryCatalog.from_dict(data)


def _spec(kind: ActionKind, target: str, priority: int, cooldown: float, retries: int) -> RecoveryActionSpec:
    return RecoveryActionSpec(
        kind=kind,
        target=target,
        priority=priority,
        cooldown_minutes=cooldown,
        max_retries=retries,
    )


DEFAULT_CATALOG = RecoveryCatalog(
    {
        "TodoApiHealth": [
            _spec(ActionKind.RESTART_SERVICE, "lambda-functions", 1, 10, 3),
            _spec(ActionKind.CLEAR_CACHE, "api-gateway", 2, 5, 2),
        ],
        "DynamoDBHealth": [
            _spec(ActionKind.SCALE_UP, "dynamodb-capacity", 1, 15, 2),
        ],
        "MemoryUsage": [
            _spec(ActionKind.RESTART_SERVICE, "high-memory-functions", 1, 5, 3),
        ],
        "ApiGatewayHealth": [
            _spec(ActionKind.CLEAR_CACHE, "api-gateway", 1, 5, 2),
            _spec(ActionKind.FAILOVER, "backup-endpoint", 2, 30, 1),
        ],
    }
)
