"""Tests for cooldown stores (in-memory and DynamoDB with a mocked client)."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from autorecovery.cooldown import DynamoDBCooldownStore, InMemoryCooldownStore, is_after_cooldown
from autorecovery.errors import CooldownStoreError

NOW = datetime(2025, 2, 11, 10, 0, tzinfo=timezone.utc)


def test_is_after_cooldown():
    assert is_after_cooldown(None, 10, NOW)
    assert not is_after_cooldown(NOW - timedelta(minutes=5), 10, NOW)
    assert is_after_cooldown(NOW - timedelta(minutes=10), 10, NOW)


def test_claim_is_check_and_set():
    store = InMemoryCooldownStore()
    assert store.claim("restart-service:lambda-functions", 10, NOW)
    assert not store.claim("restart-service:lambda-functions", 10, NOW + timedelta(minutes=1))
    assert store.claim("restart-service:lambda-functions", 10, NOW + timedelta(minutes=10))


def test_zero_cooldown_always_eligible():
    store = InMemoryCooldownStore()
    assert store.claim("clear-cache:api-gateway", 0, NOW)
    assert store.claim("clear-cache:api-gateway", 0, NOW)


def test_record_execution_never_moves_backwards():
    store = InMemoryCooldownStore()
    store.record_execution("k", NOW)
    store.record_execution("k", NOW - timedelta(hours=1))
    assert store._records["k"] == NOW


def test_records_expire_after_ttl():
    store = InMemoryCooldownStore(ttl_days=7)
    store.record_execution("k", datetime.now(timezone.utc) - timedelta(days=8))
    assert store.last_execution("k") is None
    assert store.is_eligible("k", 60, datetime.now(timezone.utc))


def _conditional_failure():
    return ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "failed"}}, "PutItem"
    )


def test_dynamodb_claim_uses_conditional_put():
    client = MagicMock()
    store = DynamoDBCooldownStore("cooldowns", client=client)
    assert store.claim("scale-up:dynamodb-capacity", 15, NOW)
    kwargs = client.put_item.call_args.kwargs
    assert kwargs["TableName"] == "cooldowns"
    assert kwargs["Item"]["actionKey"] == {"S": "scale-up:dynamodb-capacity"}
    threshold = float(kwargs["ExpressionAttributeValues"][":threshold"]["N"])
    assert threshold == (NOW - timedelta(minutes=15)).timestamp()
    assert int(kwargs["Item"]["ttl"]["N"]) == int(NOW.timestamp()) + 7 * 24 * 3600


def test_dynamodb_claim_returns_false_when_condition_fails():
    client = MagicMock()
    client.put_item.side_effect = _conditional_failure()
    store = DynamoDBCooldownStore("cooldowns", client=client)
    assert not store.claim("scale-up:dynamodb-capacity", 15, NOW)


def test_dynamodb_other_errors_raise_store_error():
    client = MagicMock()
    client.put_item.side_effect = ClientError(
        {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}}, "PutItem"
    )
    store = DynamoDBCooldownStore("cooldowns", client=client)
    with pytest.raises(CooldownStoreError):
        store.claim("k", 5, NOW)


def test_dynamodb_last_execution():
    client = MagicMock()
    future_ttl = int(datetime.now(timezone.utc).timestamp()) + 3600
    client.get_item.return_value = {
        "Item": {
            "actionKey": {"S": "k"},
            "lastExecutionEpoch": {"N": repr(NOW.timestamp())},
            "ttl": {"N": str(future_ttl)},
        }
    }
    store = DynamoDBCooldownStore("cooldowns", client=client)
    assert store.last_execution("k") == NOW
    assert client.get_item.call_args.kwargs["ConsistentRead"] is True

    client.get_item.return_value = {}
    assert store.last_execution("k") is None


def test_dynamodb_ignores_expired_record():
    client = MagicMock()
    client.get_item.return_value = {
        "Item": {"lastExecutionEpoch": {"N": "1.0"}, "ttl": {"N": "2"}}
    }
    store = DynamoDBCooldownStore("cooldowns", client=client)
    assert store.last_execution("k") is None
