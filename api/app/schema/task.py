"""Compliance task schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.task import TaskPriority
from app.schema.base import ORMModel


class TaskCreate(BaseModel):
    """Payload for creating a task."""
    title: str = Field(min_length=1, max_length=300)
    description: str | None = None
    assigned_to: UUID | None = None
    due_date: datetime | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    created_by: UUID | None = None


class TaskComplete(BaseModel):
    """Payload identifying who completed a task."""
    completed_by: UUID | None = None
    completed_by_email: str | None = None


class TaskRead(ORMModel):
    """Task representation."""
    id: UUID
    tenant_id: UUID
    title: str
    description: str | None = None
    assigned_to: UUID | None = None
    due_date: datetime | None = None
    priority: str
    status: str
    source_rule_id: UUID | None = None
    completed_at: datetime | None = None
    created_at: datetime
