"""Automation rule models for event-driven and scanned compliance workflows."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base_class import Base

JSON_COMPATIBLE = JSON().with_variant(JSONB, "postgresql")


class TriggerType(str, enum.Enum):
    """Event kinds that activate rule evaluation."""
    MEMBER_ADDED = "member_added"
    TASK_CREATED = "task_created"
    TASK_COMPLETED = "task_completed"
    CERTIFICATE_EXPIRING = "certificate_expiring"
    CERTIFICATE_EXPIRED = "certificate_expired"
    TASK_OVERDUE = "task_overdue"
    SCHEDULE = "schedule"


class ActionKind(str, enum.Enum):
    """Side-effecting steps a rule can declare."""
    SEND_NOTIFICATION = "send_notification"
    ASSIGN_TASK = "assign_task"
    SEND_EMAIL = "send_email"
    UPDATE_STATUS = "update_status"
    CREATE_TASK = "create_task"
    ESCALATE = "escalate"


class AutomationRule(Base):
    """Tenant-configured trigger/conditions/actions rule."""

    __tablename__ = "automation_rules"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    trigger: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    conditions: Mapped[dict | None] = mapped_column(JSON_COMPATIBLE)
    # Ordered list of {"kind": ..., "config": {...}} entries.
    actions: Mapped[list] = mapped_column(JSON_COMPATIBLE, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
