"""Append-only audit history of recovery reports."""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from autorecovery.errors import HistoryStoreError
from autorecovery.models import RecoveryReport, TriggerKind

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30

_HISTORY_FILE = "recovery_history.json"


class HistoryQuery(BaseModel):
    """Filter criteria for history lookups; results are newest first."""

    trigger_id: str | None = None
    trigger: TriggerKind | None = None
    since: datetime | None = None
    until: datetime | None = None
    only_failed: bool = False
    limit: int = Field(default=50, ge=1, le=1000)

    def matches(self, report: RecoveryReport) -> bool:
        if self.trigger_id is not None and report.trigger_id != self.trigger_id:
            return False
        if self.trigger is not None and report.trigger != self.trigger:
            return False
        if self.since is not None and report.start_time < _aware(self.since):
            return False
        if self.until is not None and report.start_time > _aware(self.until):
            return False
        if self.only_failed and report.failed_actions == 0:
            return False
        return True


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class HistoryStore(ABC):
    @abstractmethod
    def put(self, report: RecoveryReport) -> None:
        """Append a report. Raises HistoryStoreError."""

    @abstractmethod
    def query(self, criteria: HistoryQuery | None = None) -> list[RecoveryReport]:
        """Return matching reports, newest first."""


class InMemoryHistoryStore(HistoryStore):
    """
    In-memory history with optional file persistence.

    If data_dir is set, reports are loaded on init and the file is rewritten
    after each put. Reports older than retention_days are pruned.
    """

    def __init__(self, data_dir: str | None = None, retention_days: int = DEFAULT_RETENTION_DAYS) -> None:
        self._data_dir = Path(data_dir) if data_dir else None
        self._retention = timedelta(days=retention_days)
        self._reports: list[RecoveryReport] = []
        self._lock = threading.Lock()
        if self._data_dir and self._data_dir.is_dir():
            self._load()

    def _load(self) -> None:
        path = self._data_dir / _HISTORY_FILE
        if not path.is_file():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Could not read recovery history %s: %s", path, e)
            return
        for raw in data if isinstance(data, list) else []:
            try:
                self._reports.append(RecoveryReport.model_validate(raw))
            except ValidationError as e:
                logger.warning("Skipping malformed history record: %s", e)
        self._prune(datetime.now(timezone.utc))

    def _prune(self, now: datetime) -> None:
        cutoff = now - self._retention
        self._reports = [r for r in self._reports if _aware(r.end_time) >= cutoff]

    def _save(self) -> None:
        if not self._data_dir:
            return
        payload = [r.model_dump(mode="json") for r in self._reports]
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            (self._data_dir / _HISTORY_FILE).write_text(json.dumps(payload, indent=0), encoding="utf-8")
        except OSError as e:
            raise HistoryStoreError(f"Could not write recovery history: {e}") from e

    def put(self, report: RecoveryReport) -> None:
        with self._lock:
            self._reports.append(report)
            self._prune(datetime.now(timezone.utc))
            self._save()

    def query(self, criteria: HistoryQuery | None = None) -> list[RecoveryReport]:
        criteria = criteria or HistoryQuery()
        with self._lock:
            self._prune(datetime.now(timezone.utc))
            matching = [r for r in self._reports if criteria.matches(r)]
        matching.sort(key=lambda r: _aware(r.start_time), reverse=True)
        return matching[: criteria.limit]


class DynamoDBHistoryStore(HistoryStore):
    """
    DynamoDB table keyed by ``id`` (the trigger id).

    The full report is stored as JSON next to a few filterable attributes and
    a ``ttl`` epoch for the retention window.
    """

    def __init__(
        self,
        table_name: str,
        region_name: str = "us-east-1",
        retention_days: int = DEFAULT_RETENTION_DAYS,
        client: Any | None = None,
    ) -> None:
        self._table_name = table_name
        self._region_name = region_name
        self._retention_seconds = retention_days * 24 * 60 * 60
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            import boto3

            self._client = boto3.client("dynamodb", region_name=self._region_name)
        return self._client

    def put(self, report: RecoveryReport) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        start_epoch = _aware(report.start_time).timestamp()
        item = {
            "id": {"S": report.trigger_id},
            "trigger": {"S": report.trigger.value},
            "startEpoch": {"N": repr(start_epoch)},
            "failedActions": {"N": str(report.failed_actions)},
            "report": {"S": report.model_dump_json()},
            "ttl": {"N": str(int(datetime.now(timezone.utc).timestamp()) + self._retention_seconds)},
        }
        try:
            self.client.put_item(TableName=self._table_name, Item=item)
        except (ClientError, BotoCoreError) as e:
            raise HistoryStoreError(f"put_item failed for {report.trigger_id}: {e}") from e

    def query(self, criteria: HistoryQuery | None = None) -> list[RecoveryReport]:
        from botocore.exceptions import BotoCoreError, ClientError

        criteria = criteria or HistoryQuery()
        clauses: list[str] = []
        values: dict[str, dict[str, str]] = {}
        names: dict[str, str] = {}
        if criteria.trigger_id is not None:
            clauses.append("id = :id")
            values[":id"] = {"S": criteria.trigger_id}
        if criteria.trigger is not None:
            clauses.append("#trigger = :trigger")
            names["#trigger"] = "trigger"
            values[":trigger"] = {"S": criteria.trigger.value}
        if criteria.since is not None:
            clauses.append("startEpoch >= :since")
            values[":since"] = {"N": repr(_aware(criteria.since).timestamp())}
        if criteria.until is not None:
            clauses.append("startEpoch <= :until")
            values[":until"] = {"N": repr(_aware(criteria.until).timestamp())}
        if criteria.only_failed:
            clauses.append("failedActions > :zero")
            values[":zero"] = {"N": "0"}
        kwargs: dict[str, Any] = {"TableName": self._table_name}
        if clauses:
            kwargs["FilterExpression"] = " AND ".join(clauses)
            kwargs["ExpressionAttributeValues"] = values
        if names:
            kwargs["ExpressionAttributeNames"] = names

        reports: list[RecoveryReport] = []
        try:
            while True:
                response = self.client.scan(**kwargs)
                for item in response.get("Items") or []:
                    try:
                        reports.append(RecoveryReport.model_validate_json(item["report"]["S"]))
                    except (KeyError, ValidationError) as e:
                        logger.warning("Skipping malformed history item: %s", e)
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            raise HistoryStoreError(f"scan failed: {e}") from e
        reports.sort(key=lambda r: _aware(r.start_time), reverse=True)
        return reports[: criteria.limit]
