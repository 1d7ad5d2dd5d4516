"""Task helpers; creation and completion raise task_created / task_completed."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.automation import TriggerType
from app.models.task import Task, TaskStatus
from app.schema.task import TaskComplete, TaskCreate
from app.services import automation_service
from app.services.automation_store import record_to_dict
from app.services.automation_types import AutomationContext


async def list_tasks(
    session: AsyncSession,
    *,
    tenant_id: uuid.UUID,
    status_filter: TaskStatus | None = None,
    assigned_to: uuid.UUID | None = None,
) -> list[Task]:
    """List tasks for a tenant with optional filters."""
    query = select(Task).where(Task.tenant_id == tenant_id)
    if status_filter:
        query = query.where(Task.status == status_filter.value)
    if assigned_to:
        query = query.where(Task.assigned_to == assigned_to)
    result = await session.execute(query.order_by(Task.created_at))
    return result.scalars().all()


async def get_task(session: AsyncSession, *, tenant_id: uuid.UUID, task_id: uuid.UUID) -> Task:
    """Fetch a task scoped to the tenant."""
    result = await session.execute(select(Task).where(Task.id == task_id, Task.tenant_id == tenant_id))
    task = result.scalar_one_or_none()
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return task


async def create_task(session: AsyncSession, *, tenant_id: uuid.UUID, payload: TaskCreate) -> Task:
    """Create a pending task, then fire task_created."""
    task = Task(
        tenant_id=tenant_id,
        title=payload.title,
        description=payload.description,
        assigned_to=payload.assigned_to,
        due_date=payload.due_date,
        priority=payload.priority.value,
        status=TaskStatus.PENDING.value,
    )
    session.add(task)
    await session.commit()
    await session.refresh(task)

    context = AutomationContext(
        tenant_id=tenant_id,
        actor_user_id=payload.created_by or task.assigned_to,
        resource=record_to_dict(task),
        metadata={"taskId": str(task.id), "priority": task.priority},
    )
    await automation_service.dispatch_trigger(session, TriggerType.TASK_CREATED, context)
    return task


async def complete_task(
    session: AsyncSession, *, tenant_id: uuid.UUID, task_id: uuid.UUID, payload: TaskComplete
) -> Task:
    """Mark a task completed, then fire task_completed."""
    task = await get_task(session, tenant_id=tenant_id, task_id=task_id)
    if task.status == TaskStatus.COMPLETED.value:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Task already completed")
    task.status = TaskStatus.COMPLETED.value
    task.completed_at = datetime.now(timezone.utc)
    await session.commit()
    await session.refresh(task)

    context = AutomationContext(
        tenant_id=tenant_id,
        actor_user_id=payload.completed_by or task.assigned_to,
        actor_email=payload.completed_by_email,
        resource=record_to_dict(task),
        metadata={"taskId": str(task.id), "priority": task.priority},
    )
    await automation_service.dispatch_trigger(session, TriggerType.TASK_COMPLETED, context)
    return task
