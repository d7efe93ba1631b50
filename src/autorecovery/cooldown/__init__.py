"""
Cooldown store.

Remembers when each remediation action last ran against each target so the
same action is not fired repeatedly within its cooldown window.
"""

from autorecovery.cooldown.store import (
    CooldownStore,
    DynamoDBCooldownStore,
    InMemoryCooldownStore,
    is_after_cooldown,
)

__all__ = ["CooldownStore", "DynamoDBCooldownStore", "InMemoryCooldownStore", "is_after_cooldown"]
