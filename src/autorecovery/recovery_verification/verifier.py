"""Re-assesses system health after remediation."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx

from autorecovery.models import HealthCheckError, HealthStatus, SystemHealth

logger = logging.getLogger(__name__)


class HealthAssessor(Protocol):
    """The health-assessment collaborator; also used to build health-check signals."""

    def assess_health(self) -> SystemHealth: ...


def parse_system_health(data: dict[str, Any]) -> SystemHealth:
    """
    Accept both our own SystemHealth shape and the health-check orchestrator's
    report ({overallStatus, healthScore, components: [{checkName, status, ...}]}).
    """
    return SystemHealth.model_validate(data)


class HttpHealthAssessor:
    """GETs a health endpoint returning SystemHealth JSON."""

    def __init__(self, url: str, timeout_seconds: float = 10.0) -> None:
        self._url = url
        self._timeout = timeout_seconds

    def assess_health(self) -> SystemHealth:
        with httpx.Client(timeout=self._timeout) as client:
            r = client.get(self._url)
            r.raise_for_status()
            return parse_system_health(r.json())


class LambdaHealthAssessor:
    """Invokes the health-check orchestrator Lambda synchronously."""

    def __init__(
        self,
        function_name: str,
        region_name: str = "us-east-1",
        client: Any | None = None,
    ) -> None:
        self._function_name = function_name
        self._region_name = region_name
        self._client = client

    def assess_health(self) -> SystemHealth:
        if self._client is None:
            import boto3

            self._client = boto3.client("lambda", region_name=self._region_name)
        response = self._client.invoke(
            FunctionName=self._function_name,
            InvocationType="RequestResponse",
            Payload=json.dumps({"checkType": "comprehensive"}).encode("utf-8"),
        )
        payload = response["Payload"]
        raw = payload.read() if hasattr(payload, "read") else payload
        if response.get("FunctionError"):
            raise RuntimeError(f"Health check function failed: {raw!r}")
        return parse_system_health(json.loads(raw))


class StaticHealthAssessor:
    """Returns a fixed health report (stub mode)."""

    def __init__(self, health: SystemHealth | None = None) -> None:
        self._health = health or SystemHealth(score=100.0, status=HealthStatus.HEALTHY)

    def assess_health(self) -> SystemHealth:
        return self._health


class HealthVerifier:
    """Wraps a HealthAssessor so verification failures become data, not exceptions."""

    def __init__(self, assessor: HealthAssessor) -> None:
        self._assessor = assessor

    def verify(self) -> SystemHealth | HealthCheckError:
        try:
            health = self._assessor.assess_health()
        except Exception as e:
            logger.warning("Post-recovery health verification failed: %s", e, exc_info=True)
            return HealthCheckError(error=str(e) or type(e).__name__, error_type=type(e).__name__)
        logger.info(
            "Post-recovery health: %s (score %.0f)",
            health.status.value,
            health.score,
            extra={"unhealthy": [n for n, c in health.components.items() if c.status != HealthStatus.HEALTHY]},
        )
        return health
