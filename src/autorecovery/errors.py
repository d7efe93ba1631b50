"""Exceptions raised at collaborator seams. None of them escape run_recovery."""


class RecoveryError(Exception):
    """Base class for auto-recovery errors."""


class CooldownStoreError(RecoveryError):
    """Cooldown store could not be read or written."""


class HistoryStoreError(RecoveryError):
    """Recovery history could not be persisted or queried."""


class UnsupportedActionError(RecoveryError):
    """No remediation handler exists for an action kind or target."""


class RuleSyntaxError(RecoveryError, ValueError):
    """Composite alarm rule text could not be parsed."""

    def __init__(self, message: str, position: int | None = None) -> None:
        super().__init__(message if position is None else f"{message} (at {position})")
        self.position = position
