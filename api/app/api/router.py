"""API router composition for all route groups."""

from fastapi import APIRouter

from .routes import automations, ops, tasks, tenants

api_router = APIRouter()
api_router.include_router(tenants.router, prefix="/tenants", tags=["tenants"])
api_router.include_router(tasks.router, prefix="/tenants", tags=["tasks"])
api_router.include_router(automations.router, tags=["automations"])
api_router.include_router(ops.router, prefix="/ops", tags=["ops"])
