"""Tenant and membership helpers; adding a member raises member_added."""

from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.automation import TriggerType
from app.models.tenant import OrgMember, Tenant
from app.schema.tenant import MemberCreate, TenantCreate
from app.services import automation_service, automation_templates
from app.services.automation_store import record_to_dict
from app.services.automation_types import AutomationContext


async def create_tenant(session: AsyncSession, *, payload: TenantCreate) -> Tenant:
    """Create a tenant and seed the rule template catalogue."""
    tenant = Tenant(name=payload.name)
    session.add(tenant)
    await session.flush()
    if payload.seed_templates:
        await automation_templates.seed_tenant_rules(session, tenant_id=tenant.id, commit=False)
    await session.commit()
    await session.refresh(tenant)
    return tenant


async def get_tenant(session: AsyncSession, *, tenant_id: uuid.UUID) -> Tenant:
    """Fetch a tenant or raise 404."""
    tenant = await session.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return tenant


async def list_members(session: AsyncSession, *, tenant_id: uuid.UUID) -> list[OrgMember]:
    """List members of a tenant."""
    result = await session.execute(
        select(OrgMember).where(OrgMember.tenant_id == tenant_id).order_by(OrgMember.created_at)
    )
    return result.scalars().all()


async def add_member(session: AsyncSession, *, tenant_id: uuid.UUID, payload: MemberCreate) -> OrgMember:
    """Add a member, then fire member_added for the new member."""
    member = OrgMember(
        tenant_id=tenant_id,
        user_id=payload.user_id,
        email=payload.email,
        role=payload.role.value,
    )
    session.add(member)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User is already a member") from exc
    await session.refresh(member)

    context = AutomationContext(
        tenant_id=tenant_id,
        actor_user_id=member.user_id,
        actor_email=member.email,
        resource=record_to_dict(member),
        metadata={"role": member.role, "addedBy": str(payload.added_by) if payload.added_by else None},
    )
    await automation_service.dispatch_trigger(session, TriggerType.MEMBER_ADDED, context)
    return member
