"""Tenant and membership endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_tenant
from app.models.tenant import Tenant
from app.schema.tenant import MemberCreate, MemberRead, TenantCreate, TenantRead
from app.services import tenant_service

router = APIRouter()


@router.post("", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
async def create_tenant(payload: TenantCreate, session: AsyncSession = Depends(get_db)) -> TenantRead:
    """Create a tenant seeded with the rule template catalogue."""
    tenant = await tenant_service.create_tenant(session, payload=payload)
    return TenantRead.model_validate(tenant)


@router.get("/{tenant_id}/members", response_model=list[MemberRead])
async def list_members(
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> list[MemberRead]:
    """List members of a tenant."""
    members = await tenant_service.list_members(session, tenant_id=tenant.id)
    return [MemberRead.model_validate(member) for member in members]


@router.post("/{tenant_id}/members", response_model=MemberRead, status_code=status.HTTP_201_CREATED)
async def add_member(
    payload: MemberCreate,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> MemberRead:
    """Add a member to the tenant."""
    member = await tenant_service.add_member(session, tenant_id=tenant.id, payload=payload)
    return MemberRead.model_validate(member)
