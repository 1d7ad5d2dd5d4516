"""Compliance task endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_tenant
from app.models.task import TaskStatus
from app.models.tenant import Tenant
from app.schema.task import TaskComplete, TaskCreate, TaskRead
from app.services import task_service

router = APIRouter()


@router.get("/{tenant_id}/tasks", response_model=list[TaskRead])
async def list_tasks(
    status_filter: TaskStatus | None = None,
    assigned_to: uuid.UUID | None = None,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> list[TaskRead]:
    """List tasks for a tenant."""
    tasks = await task_service.list_tasks(
        session, tenant_id=tenant.id, status_filter=status_filter, assigned_to=assigned_to
    )
    return [TaskRead.model_validate(task) for task in tasks]


@router.post("/{tenant_id}/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> TaskRead:
    """Create a task."""
    task = await task_service.create_task(session, tenant_id=tenant.id, payload=payload)
    return TaskRead.model_validate(task)


@router.post("/{tenant_id}/tasks/{task_id}/complete", response_model=TaskRead)
async def complete_task(
    task_id: uuid.UUID,
    payload: TaskComplete | None = None,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> TaskRead:
    """Mark a task completed."""
    task = await task_service.complete_task(
        session, tenant_id=tenant.id, task_id=task_id, payload=payload or TaskComplete()
    )
    return TaskRead.model_validate(task)
