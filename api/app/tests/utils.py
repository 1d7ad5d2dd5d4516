"""Shared helpers for automation tests."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity import ActivityLog
from app.models.automation import AutomationRule
from app.models.notification import Notification
from app.models.task import Task
from app.models.tenant import OrgMember, Tenant
from app.services.automation_audit import ActivityLogAuditSink
from app.services.automation_engine import RuleEngine
from app.services.automation_store import AutomationStore
from app.services.notification_service import DatabaseNotificationChannel


async def make_tenant(session: AsyncSession, name: str = "Acme Care") -> Tenant:
    tenant = Tenant(name=name)
    session.add(tenant)
    await session.commit()
    return tenant


async def make_member(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    role: str = "member",
    user_id: uuid.UUID | None = None,
    email: str | None = None,
) -> OrgMember:
    member = OrgMember(
        tenant_id=tenant_id,
        user_id=user_id or uuid.uuid4(),
        email=email or f"{role}_{uuid.uuid4().hex[:6]}@example.com",
        role=role,
    )
    session.add(member)
    await session.commit()
    return member


async def make_rule(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    trigger: str,
    actions: list[dict[str, Any]],
    conditions: dict[str, Any] | None = None,
    enabled: bool = True,
    name: str | None = None,
) -> AutomationRule:
    rule = AutomationRule(
        tenant_id=tenant_id,
        name=name or f"{trigger} rule",
        trigger=trigger,
        conditions=conditions or {},
        actions=actions,
        enabled=enabled,
    )
    session.add(rule)
    await session.commit()
    return rule


async def make_task(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    title: str = "Review incident log",
    assigned_to: uuid.UUID | None = None,
    due_date: datetime | None = None,
    status: str = "pending",
) -> Task:
    task = Task(
        tenant_id=tenant_id,
        title=title,
        assigned_to=assigned_to,
        due_date=due_date,
        status=status,
    )
    session.add(task)
    await session.commit()
    return task


class StubMailer:
    """Mailer double that records submissions instead of queueing them."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send(self, *, tenant_id: uuid.UUID, to: str, subject: str, body: str) -> dict[str, Any]:
        self.sent.append({"tenant_id": tenant_id, "to": to, "subject": subject, "body": body})
        return {"mode": "inline", "job_id": None, "result": None}


@dataclass
class CallRecorder:
    """Builds action handlers that append to a shared call log."""

    calls: list[str] = field(default_factory=list)

    def handler(self, label: str, *, fail: bool = False):
        async def _handler(deps, config, context, rule):
            self.calls.append(label)
            if fail:
                raise RuntimeError(f"{label} exploded")
            return {"status": "done", "label": label}

        return _handler


def build_test_engine(
    session: AsyncSession,
    *,
    handlers: dict | None = None,
    mailer: StubMailer | None = None,
    action_timeout_seconds: float | None = None,
) -> RuleEngine:
    store = AutomationStore(session)
    return RuleEngine(
        store=store,
        notifier=DatabaseNotificationChannel(store),
        mailer=mailer or StubMailer(),
        audit_sink=ActivityLogAuditSink(store),
        handlers=handlers,
        action_timeout_seconds=action_timeout_seconds,
    )


async def audit_rows(session: AsyncSession, tenant_id: uuid.UUID) -> list[ActivityLog]:
    result = await session.execute(
        select(ActivityLog).where(
            ActivityLog.tenant_id == tenant_id, ActivityLog.event_kind == "workflow_executed"
        )
    )
    return result.scalars().all()


async def notifications_for(session: AsyncSession, tenant_id: uuid.UUID) -> list[Notification]:
    result = await session.execute(select(Notification).where(Notification.tenant_id == tenant_id))
    return result.scalars().all()


async def tasks_for(session: AsyncSession, tenant_id: uuid.UUID, *, source_rule_id: uuid.UUID | None = None) -> list[Task]:
    query = select(Task).where(Task.tenant_id == tenant_id)
    if source_rule_id:
        query = query.where(Task.source_rule_id == source_rule_id)
    result = await session.execute(query)
    return result.scalars().all()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
