"""
Recovery planning.

Turns an IncidentSignal into an ordered recovery plan from the static catalog,
then drops actions still inside their cooldown window.
"""

from autorecovery.planner.catalog import DEFAULT_CATALOG, RecoveryCatalog, load_catalog
from autorecovery.planner.planner import RecoveryPlanner, filter_by_cooldown

__all__ = [
    "DEFAULT_CATALOG",
    "RecoveryCatalog",
    "RecoveryPlanner",
    "filter_by_cooldown",
    "load_catalog",
]
