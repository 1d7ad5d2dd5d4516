"""Error taxonomy for automation rule execution."""

from __future__ import annotations


class AutomationExecutionError(RuntimeError):
    """Base error for failures that are reported on a firing, never re-raised to callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AutomationConfigurationError(AutomationExecutionError):
    """A rule or action config is structurally invalid."""


class DependencyUnavailable(AutomationExecutionError):
    """The store, notification channel, or mail collaborator failed or timed out."""


class TenantScopeViolation(AutomationExecutionError):
    """A resolved record does not belong to the tenant of the firing context."""
