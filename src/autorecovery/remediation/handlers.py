"""Remediation handlers: one callable per action kind, addressed by target."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from autorecovery.config import Settings, get_settings
from autorecovery.errors import UnsupportedActionError
from autorecovery.models import ActionKind

logger = logging.getLogger(__name__)

Handler = Callable[[str], dict[str, Any]]

MAX_DYNAMODB_CAPACITY = 40000


class HandlerRegistry:
    """Maps ActionKind to the handler that performs it."""

    def __init__(self, handlers: dict[ActionKind, Handler] | None = None) -> None:
        self._handlers: dict[ActionKind, Handler] = dict(handlers or {})

    def register(self, kind: ActionKind, handler: Handler) -> None:
        self._handlers[kind] = handler

    def supports(self, kind: ActionKind) -> bool:
        return kind in self._handlers

    def execute(self, kind: ActionKind, target: str) -> dict[str, Any]:
        handler = self._handlers.get(kind)
        if handler is None:
            raise UnsupportedActionError(f"No remediation handler registered for {kind.value}")
        return handler(target) or {}


class AWSRemediationHandlers:
    """
    boto3-backed remediation for the to-do stack.

    Each method raises on an unknown target or an AWS error; the executor turns
    that into a failed result.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        lambda_client: Any | None = None,
        dynamodb_client: Any | None = None,
        apigateway_client: Any | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._lambda = lambda_client
        self._dynamodb = dynamodb_client
        self._apigateway = apigateway_client

    def _client(self, name: str) -> Any:
        attr = f"_{name}"
        if getattr(self, attr) is None:
            import boto3

            setattr(self, attr, boto3.client(name, region_name=self._settings.aws_region))
        return getattr(self, attr)

    def restart_service(self, target: str) -> dict[str, Any]:
        if target == "lambda-functions":
            return self._warm_restart(self._settings.restart_functions)
        if target == "high-memory-functions":
            return self._recycle(self._settings.high_memory_functions)
        raise UnsupportedActionError(f"Unknown restart target: {target}")

    def _warm_restart(self, functions: list[str]) -> dict[str, Any]:
        """Async warm-up invoke of each function; fails only if none could be reached."""
        client = self._client("lambda")
        restarted: list[str] = []
        failed: dict[str, str] = {}
        for function_name in functions:
            try:
                client.invoke(
                    FunctionName=function_name,
                    InvocationType="Event",
                    Payload=json.dumps({"action": "warmup"}).encode("utf-8"),
                )
                restarted.append(function_name)
            except Exception as e:
                logger.warning("Lambda restart failed for %s: %s", function_name, e, exc_info=True)
                failed[function_name] = str(e)
        if functions and not restarted:
            raise RuntimeError(f"Could not restart any Lambda function: {failed}")
        return {"restarted": restarted, "failed": failed}

    def _recycle(self, functions: list[str]) -> dict[str, Any]:
        """Force fresh execution environments by touching each function's configuration."""
        if not functions:
            raise UnsupportedActionError("No high-memory functions configured")
        client = self._client("lambda")
        stamp = datetime.now(timezone.utc).isoformat()
        for function_name in functions:
            client.update_function_configuration(
                FunctionName=function_name,
                Description=f"recycled by auto-recovery at {stamp}",
            )
        return {"recycled": list(functions)}

    def scale_up(self, target: str) -> dict[str, Any]:
        if target == "dynamodb-capacity":
            return self._scale_dynamodb(self._settings.dynamodb_table_name)
        if target == "lambda-provisioned-concurrency":
            return self._raise_reserved_concurrency(self._settings.restart_functions)
        raise UnsupportedActionError(f"Unknown scale-up target: {target}")

    def _scale_dynamodb(self, table_name: str) -> dict[str, Any]:
        client = self._client("dynamodb")
        table = client.describe_table(TableName=table_name)["Table"]
        billing = (table.get("BillingModeSummary") or {}).get("BillingMode")
        if billing == "PAY_PER_REQUEST":
            return {"table": table_name, "billing_mode": billing, "changed": False}
        throughput = table.get("ProvisionedThroughput") or {}
        read = min(int(throughput.get("ReadCapacityUnits", 1)) * 2, MAX_DYNAMODB_CAPACITY)
        write = min(int(throughput.get("WriteCapacityUnits", 1)) * 2, MAX_DYNAMODB_CAPACITY)
        client.update_table(
            TableName=table_name,
            ProvisionedThroughput={"ReadCapacityUnits": read, "WriteCapacityUnits": write},
        )
        logger.info("DynamoDB capacity raised", extra={"table": table_name, "read": read, "write": write})
        return {"table": table_name, "read_capacity": read, "write_capacity": write, "changed": True}

    def _raise_reserved_concurrency(self, functions: list[str]) -> dict[str, Any]:
        client = self._client("lambda")
        raised: dict[str, int] = {}
        for function_name in functions:
            current = client.get_function_concurrency(FunctionName=function_name)
            reserved = current.get("ReservedConcurrentExecutions")
            if not reserved:
                # Unreserved functions already draw from the account pool
                continue
            client.put_function_concurrency(
                FunctionName=function_name,
                ReservedConcurrentExecutions=int(reserved) * 2,
            )
            raised[function_name] = int(reserved) * 2
        return {"reserved_concurrency": raised}

    def clear_cache(self, target: str) -> dict[str, Any]:
        if target != "api-gateway":
            raise UnsupportedActionError(f"Unknown cache target: {target}")
        rest_api_id = self._settings.api_gateway_rest_api_id
        if not rest_api_id:
            raise UnsupportedActionError("API Gateway rest API id not configured")
        stage = self._settings.api_gateway_stage_name
        self._client("apigateway").flush_stage_cache(restApiId=rest_api_id, stageName=stage)
        return {"flushed": f"{rest_api_id}/{stage}"}

    def failover(self, target: str) -> dict[str, Any]:
        if target != "backup-endpoint":
            raise UnsupportedActionError(f"Unknown failover target: {target}")
        return {"failover_to": self._settings.backup_endpoint}

    def custom(self, target: str) -> dict[str, Any]:
        function_name = f"{self._settings.custom_action_function_prefix}{target}"
        response = self._client("lambda").invoke(
            FunctionName=function_name,
            InvocationType="RequestResponse",
        )
        payload = response.get("Payload")
        body = payload.read().decode("utf-8") if hasattr(payload, "read") else payload
        if response.get("FunctionError"):
            raise RuntimeError(f"Custom action {function_name} failed: {body}")
        return {"custom_action": target, "result": body}

    def registry(self) -> HandlerRegistry:
        return HandlerRegistry(
            {
                ActionKind.RESTART_SERVICE: self.restart_service,
                ActionKind.SCALE_UP: self.scale_up,
                ActionKind.CLEAR_CACHE: self.clear_cache,
                ActionKind.FAILOVER: self.failover,
                ActionKind.CUSTOM: self.custom,
            }
        )


def aws_handlers(settings: Settings | None = None) -> HandlerRegistry:
    return AWSRemediationHandlers(settings).registry()


def stub_handlers() -> HandlerRegistry:
    """Handlers that succeed without side effects (demo / CI without AWS)."""

    def _make(kind: ActionKind) -> Handler:
        def _handler(target: str) -> dict[str, Any]:
            logger.info("Stub remediation %s -> %s", kind.value, target)
            return {"stub": True, "kind": kind.value, "target": target}

        return _handler

    return HandlerRegistry({kind: _make(kind) for kind in ActionKind})
