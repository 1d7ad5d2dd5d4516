"""Automation rule schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.automation import ActionKind, TriggerType
from app.schema.base import ORMModel


class ActionSpecPayload(BaseModel):
    """One ordered action of a rule."""
    kind: ActionKind
    config: dict[str, Any] = Field(default_factory=dict)


class AutomationRuleCreate(BaseModel):
    """Payload for creating an automation rule."""
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=500)
    enabled: bool = True
    trigger: TriggerType
    conditions: dict[str, Any] | None = None
    actions: list[ActionSpecPayload] = Field(min_length=1)


class AutomationRuleUpdate(BaseModel):
    """Payload for updating an automation rule."""
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    enabled: bool | None = None
    trigger: TriggerType | None = None
    conditions: dict[str, Any] | None = None
    actions: list[ActionSpecPayload] | None = None

    @field_validator("actions")
    @classmethod
    def _require_actions(cls, value: list[ActionSpecPayload] | None) -> list[ActionSpecPayload] | None:
        if value is not None and not value:
            raise ValueError("actions must not be empty")
        return value


class AutomationRuleRead(ORMModel):
    """Automation rule representation."""
    id: UUID
    tenant_id: UUID
    name: str
    description: str | None = None
    enabled: bool
    trigger: str
    conditions: dict[str, Any] | None = None
    actions: list[dict[str, Any]]
    created_at: datetime
    updated_at: datetime


class AutomationTemplateRead(BaseModel):
    """Catalogue template; an AutomationRule without identity or tenant."""
    name: str
    description: str | None = None
    trigger: str
    conditions: dict[str, Any] | None = None
    actions: list[dict[str, Any]]
    enabled: bool


class TemplateCatalogueRead(BaseModel):
    """Versioned template catalogue."""
    version: int
    templates: list[AutomationTemplateRead]


class TriggerRequest(BaseModel):
    """Context fields accepted by the trigger endpoint; the tenant comes from the path."""
    actor_user_id: UUID | None = None
    actor_email: str | None = None
    resource: dict[str, Any] | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TriggerDispatchResponse(BaseModel):
    """Outcome of submitting a trigger."""
    trigger: str
    mode: str
    job_id: str | None = None
    firings: list[dict[str, Any]] | None = None


class AuditRecordRead(BaseModel):
    """Rule firing audit entry."""
    rule_id: UUID
    rule_name: str
    trigger: str
    actions_count: int
    actions_failed: int
    fired_at: datetime
