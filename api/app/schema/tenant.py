"""Tenant and membership schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.tenant import MemberRole
from app.schema.base import ORMModel


class TenantCreate(BaseModel):
    """Payload for creating a tenant."""
    name: str = Field(min_length=1, max_length=200)
    seed_templates: bool = True


class TenantRead(ORMModel):
    """Tenant representation."""
    id: UUID
    name: str
    created_at: datetime


class MemberCreate(BaseModel):
    """Payload for adding a member to a tenant."""
    user_id: UUID
    email: str | None = None
    role: MemberRole = MemberRole.MEMBER
    added_by: UUID | None = None


class MemberRead(ORMModel):
    """Membership representation."""
    id: UUID
    tenant_id: UUID
    user_id: UUID
    email: str | None = None
    role: str
    created_at: datetime
