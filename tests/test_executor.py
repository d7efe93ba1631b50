"""Tests for the sequential action executor and remediation handlers."""

from unittest.mock import MagicMock

import pytest

from autorecovery.config import Settings
from autorecovery.cooldown import InMemoryCooldownStore
from autorecovery.errors import UnsupportedActionError
from autorecovery.models import ActionKind, RecoveryActionSpec, ResultStatus
from autorecovery.remediation import ActionExecutor, AWSRemediationHandlers, HandlerRegistry, stub_handlers


def _spec(kind, target, priority=1, retries=0):
    return RecoveryActionSpec(kind=kind, target=target, priority=priority, max_retries=retries)


def test_failed_action_does_not_stop_the_next_one():
    def restart(target):
        raise RuntimeError("lambda unreachable")

    registry = HandlerRegistry(
        {
            ActionKind.RESTART_SERVICE: restart,
            ActionKind.FAILOVER: lambda target: {"failover_to": target},
        }
    )
    executor = ActionExecutor(registry, InMemoryCooldownStore())
    results = executor.execute(
        [
            _spec(ActionKind.RESTART_SERVICE, "lambda-functions", 1),
            _spec(ActionKind.FAILOVER, "backup-endpoint", 2),
        ]
    )
    assert [r.status for r in results] == [ResultStatus.FAILED, ResultStatus.SUCCESS]
    assert results[0].details["error"] == "lambda unreachable"
    assert results[1].details == {"failover_to": "backup-endpoint"}


def test_retries_until_success():
    handler = MagicMock(side_effect=[RuntimeError("busy"), RuntimeError("busy"), {"ok": True}])
    executor = ActionExecutor(HandlerRegistry({ActionKind.CLEAR_CACHE: handler}), InMemoryCooldownStore())
    result = executor.execute_action(_spec(ActionKind.CLEAR_CACHE, "api-gateway", retries=2))
    assert result.status == ResultStatus.SUCCESS
    assert result.attempts == 3
    assert handler.call_count == 3


def test_retries_are_bounded():
    handler = MagicMock(side_effect=RuntimeError("down"))
    executor = ActionExecutor(HandlerRegistry({ActionKind.CLEAR_CACHE: handler}), InMemoryCooldownStore())
    result = executor.execute_action(_spec(ActionKind.CLEAR_CACHE, "api-gateway", retries=1))
    assert result.status == ResultStatus.FAILED
    assert result.attempts == 2


def test_unknown_target_is_not_retried():
    handler = MagicMock(side_effect=UnsupportedActionError("Unknown failover target: nowhere"))
    executor = ActionExecutor(HandlerRegistry({ActionKind.FAILOVER: handler}), InMemoryCooldownStore())
    result = executor.execute_action(_spec(ActionKind.FAILOVER, "nowhere", retries=3))
    assert result.status == ResultStatus.FAILED
    assert result.attempts == 1


def test_unsupported_kind_fails_without_handler_call():
    executor = ActionExecutor(HandlerRegistry(), InMemoryCooldownStore())
    result = executor.execute_action(_spec(ActionKind.CUSTOM, "purge-queue"))
    assert result.status == ResultStatus.FAILED
    assert "Unsupported recovery action" in result.details["error"]


def test_execution_time_recorded_for_success_and_failure():
    store = MagicMock()

    def boom(target):
        raise RuntimeError("x")

    registry = HandlerRegistry({ActionKind.SCALE_UP: lambda t: {}, ActionKind.FAILOVER: boom})
    ActionExecutor(registry, store).execute(
        [_spec(ActionKind.SCALE_UP, "dynamodb-capacity"), _spec(ActionKind.FAILOVER, "backup-endpoint")]
    )
    keys = [c.args[0] for c in store.record_execution.call_args_list]
    assert keys == ["scale-up:dynamodb-capacity", "failover:backup-endpoint"]


def test_cooldown_store_error_does_not_fail_the_action():
    store = MagicMock()
    store.record_execution.side_effect = RuntimeError("dynamodb down")
    executor = ActionExecutor(stub_handlers(), store)
    assert executor.execute_action(_spec(ActionKind.SCALE_UP, "dynamodb-capacity")).status == ResultStatus.SUCCESS


def test_registry_raises_for_missing_handler():
    with pytest.raises(UnsupportedActionError):
        HandlerRegistry().execute(ActionKind.FAILOVER, "backup-endpoint")


def _aws(**clients):
    settings = Settings(
        restart_function_names="TodoApp-Create,TodoApp-List",
        api_gateway_rest_api_id="abc123",
        dynamodb_table_name="TodoApp-Todos",
    )
    return AWSRemediationHandlers(settings, **clients)


def test_aws_restart_invokes_each_function():
    lambda_client = MagicMock()
    result = _aws(lambda_client=lambda_client).restart_service("lambda-functions")
    assert result["restarted"] == ["TodoApp-Create", "TodoApp-List"]
    assert lambda_client.invoke.call_count == 2
    assert lambda_client.invoke.call_args.kwargs["InvocationType"] == "Event"


def test_aws_restart_fails_when_no_function_reachable():
    lambda_client = MagicMock()
    lambda_client.invoke.side_effect = RuntimeError("throttled")
    with pytest.raises(RuntimeError):
        _aws(lambda_client=lambda_client).restart_service("lambda-functions")


def test_aws_scale_up_doubles_provisioned_capacity():
    dynamodb = MagicMock()
    dynamodb.describe_table.return_value = {
        "Table": {"ProvisionedThroughput": {"ReadCapacityUnits": 5, "WriteCapacityUnits": 30000}}
    }
    result = _aws(dynamodb_client=dynamodb).scale_up("dynamodb-capacity")
    dynamodb.update_table.assert_called_once_with(
        TableName="TodoApp-Todos",
        ProvisionedThroughput={"ReadCapacityUnits": 10, "WriteCapacityUnits": 40000},
    )
    assert result["changed"] is True


def test_aws_scale_up_on_demand_table_is_noop():
    dynamodb = MagicMock()
    dynamodb.describe_table.return_value = {"Table": {"BillingModeSummary": {"BillingMode": "PAY_PER_REQUEST"}}}
    assert _aws(dynamodb_client=dynamodb).scale_up("dynamodb-capacity")["changed"] is False
    dynamodb.update_table.assert_not_called()


def test_aws_clear_cache_flushes_stage():
    apigateway = MagicMock()
    _aws(apigateway_client=apigateway).clear_cache("api-gateway")
    apigateway.flush_stage_cache.assert_called_once_with(restApiId="abc123", stageName="prod")


def test_aws_unknown_target_raises_unsupported():
    with pytest.raises(UnsupportedActionError):
        _aws().clear_cache("cdn")


def test_aws_custom_action_raises_on_function_error():
    lambda_client = MagicMock()
    lambda_client.invoke.return_value = {"FunctionError": "Unhandled", "Payload": b'{"errorMessage": "boom"}'}
    with pytest.raises(RuntimeError):
        _aws(lambda_client=lambda_client).custom("purge-queue")
    assert lambda_client.invoke.call_args.kwargs["FunctionName"] == "TodoApp-CustomRecovery-purge-queue"
