"""Value types passed between trigger sources, the rule engine, and executors.

Invariants:
- Every context carries a tenant id; nothing is evaluated without one.
- Rule snapshots are immutable copies; the engine never writes rules back.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping


def _coerce_uuid(value: Any) -> uuid.UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


@dataclass(slots=True)
class AutomationContext:
    """Ephemeral event payload carried from trigger to executors."""

    tenant_id: uuid.UUID
    actor_user_id: uuid.UUID | None = None
    actor_email: str | None = None
    resource: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        tenant_id = _coerce_uuid(self.tenant_id)
        if tenant_id is None:
            raise ValueError("AutomationContext requires a tenant_id")
        self.tenant_id = tenant_id
        self.actor_user_id = _coerce_uuid(self.actor_user_id)
        if self.metadata is None:
            self.metadata = {}

    @property
    def resource_id(self) -> uuid.UUID | None:
        if not self.resource:
            return None
        try:
            return _coerce_uuid(self.resource.get("id"))
        except (TypeError, ValueError):
            return None

    def to_payload(self) -> dict[str, Any]:
        """Serialize into job kwargs for the worker queue."""
        return {
            "tenant_id": str(self.tenant_id),
            "actor_user_id": str(self.actor_user_id) if self.actor_user_id else None,
            "actor_email": self.actor_email,
            "resource": self.resource,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AutomationContext":
        return cls(
            tenant_id=payload["tenant_id"],
            actor_user_id=payload.get("actor_user_id"),
            actor_email=payload.get("actor_email"),
            resource=payload.get("resource"),
            metadata=dict(payload.get("metadata") or {}),
        )


@dataclass(frozen=True, slots=True)
class ActionSpec:
    """One declared action of a rule."""

    kind: str
    config: Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class RuleSnapshot:
    """Read-only copy of an enabled automation rule."""

    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    trigger: str
    conditions: Mapping[str, Any]
    actions: tuple[ActionSpec, ...]
    enabled: bool = True
