"""HTTP surface for invokers, the escalation scheduler and operators."""

from autorecovery.dashboard.app import app, get_orchestrator

__all__ = ["app", "get_orchestrator"]
