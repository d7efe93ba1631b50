"""Durable record of when each remediation action last ran against each target."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any

from autorecovery.errors import CooldownStoreError

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 7


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class CooldownStore(ABC):
    """
    Keyed by ``kind:target``; value is the time of the last attempt.

    ``claim`` is the check-and-set used before execution: it must be atomic per
    key so overlapping runs cannot both fire the same action.
    """

    @abstractmethod
    def last_execution(self, key: str) -> datetime | None:
        """Return the last recorded attempt, or None. Raises CooldownStoreError."""

    @abstractmethod
    def record_execution(self, key: str, timestamp: datetime) -> None:
        """Record an attempt. Never moves a record backwards in time."""

    @abstractmethod
    def claim(self, key: str, cooldown_minutes: float, now: datetime) -> bool:
        """Record ``now`` and return True if the key is off cooldown; else False."""

    def is_eligible(self, key: str, cooldown_minutes: float, now: datetime) -> bool:
        last = self.last_execution(key)
        return is_after_cooldown(last, cooldown_minutes, now)


def is_after_cooldown(last: datetime | None, cooldown_minutes: float, now: datetime) -> bool:
    if last is None:
        return True
    return _aware(now) - _aware(last) >= timedelta(minutes=cooldown_minutes)


class InMemoryCooldownStore(CooldownStore):
    """Process-local store guarded by a lock; records expire after ttl_days."""

    def __init__(self, ttl_days: int = DEFAULT_TTL_DAYS) -> None:
        self._ttl = timedelta(days=ttl_days)
        self._records: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def _get(self, key: str, now: datetime) -> datetime | None:
        last = self._records.get(key)
        if last is not None and _aware(now) - last > self._ttl:
            del self._records[key]
            return None
        return last

    def last_execution(self, key: str) -> datetime | None:
        with self._lock:
            return self._get(key, datetime.now(timezone.utc))

    def record_execution(self, key: str, timestamp: datetime) -> None:
        ts = _aware(timestamp)
        with self._lock:
            current = self._records.get(key)
            if current is None or current <= ts:
                self._records[key] = ts

    def claim(self, key: str, cooldown_minutes: float, now: datetime) -> bool:
        now = _aware(now)
        with self._lock:
            if not is_after_cooldown(self._get(key, now), cooldown_minutes, now):
                return False
            self._records[key] = now
            return True


class DynamoDBCooldownStore(CooldownStore):
    """
    DynamoDB-backed store (table keyed by ``actionKey``).

    Items carry lastExecution (ISO), lastExecutionEpoch (number) and a ``ttl``
    epoch so DynamoDB expires stale records. claim() is a conditional put.
    """

    def __init__(
        self,
        table_name: str,
        region_name: str = "us-east-1",
        ttl_days: int = DEFAULT_TTL_DAYS,
        client: Any | None = None,
    ) -> None:
        self._table_name = table_name
        self._region_name = region_name
        self._ttl_seconds = ttl_days * 24 * 60 * 60
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            import boto3

            self._client = boto3.client("dynamodb", region_name=self._region_name)
        return self._client

    def _item(self, key: str, ts: datetime) -> dict[str, dict[str, str]]:
        epoch = ts.timestamp()
        return {
            "actionKey": {"S": key},
            "lastExecution": {"S": ts.isoformat()},
            "lastExecutionEpoch": {"N": repr(epoch)},
            "ttl": {"N": str(int(epoch) + self._ttl_seconds)},
        }

    def _conditional_put(self, key: str, ts: datetime, threshold: float) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self.client.put_item(
                TableName=self._table_name,
                Item=self._item(key, ts),
                ConditionExpression=(
                    "attribute_not_exists(actionKey) OR lastExecutionEpoch <= :threshold"
                ),
                ExpressionAttributeValues={":threshold": {"N": repr(threshold)}},
            )
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            raise CooldownStoreError(f"put_item failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise CooldownStoreError(f"put_item failed for {key}: {e}") from e

    def last_execution(self, key: str) -> datetime | None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self.client.get_item(
                TableName=self._table_name,
                Key={"actionKey": {"S": key}},
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as e:
            raise CooldownStoreError(f"get_item failed for {key}: {e}") from e
        item = response.get("Item")
        if not item:
            return None
        try:
            expires = int(item["ttl"]["N"]) if "ttl" in item else None
            if expires is not None and expires < datetime.now(timezone.utc).timestamp():
                # TTL deletion is lazy on DynamoDB's side
                return None
            return datetime.fromtimestamp(float(item["lastExecutionEpoch"]["N"]), tz=timezone.utc)
        except (KeyError, ValueError) as e:
            raise CooldownStoreError(f"Malformed cooldown record for {key}: {e}") from e

    def record_execution(self, key: str, timestamp: datetime) -> None:
        ts = _aware(timestamp)
        if not self._conditional_put(key, ts, ts.timestamp()):
            logger.debug("Newer cooldown record already stored for %s", key)

    def claim(self, key: str, cooldown_minutes: float, now: datetime) -> bool:
        now = _aware(now)
        threshold = (now - timedelta(minutes=cooldown_minutes)).timestamp()
        return self._conditional_put(key, now, threshold)
