import uuid

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_session
from app.models.tenant import Tenant
from app.services import tenant_service


async def get_db() -> AsyncSession:
    async for session in get_session():
        yield session


async def get_tenant(tenant_id: uuid.UUID, session: AsyncSession = Depends(get_db)) -> Tenant:
    """Resolve the path tenant; authentication and role checks happen upstream."""
    return await tenant_service.get_tenant(session, tenant_id=tenant_id)
