"""Automation rule endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_tenant
from app.models.automation import TriggerType
from app.models.tenant import Tenant
from app.schema.automation import (
    AuditRecordRead,
    AutomationRuleCreate,
    AutomationRuleRead,
    AutomationRuleUpdate,
    AutomationTemplateRead,
    TemplateCatalogueRead,
    TriggerDispatchResponse,
    TriggerRequest,
)
from app.services import automation_service, automation_templates
from app.services.automation_audit import ActivityLogAuditSink
from app.services.automation_store import AutomationStore
from app.services.automation_types import AutomationContext

router = APIRouter()


@router.get("/automations/templates", response_model=TemplateCatalogueRead)
async def list_automation_templates() -> TemplateCatalogueRead:
    """Return the rule template catalogue used to seed new tenants."""
    return TemplateCatalogueRead(
        version=automation_templates.TEMPLATE_CATALOGUE_VERSION,
        templates=[AutomationTemplateRead(**template) for template in automation_templates.list_templates()],
    )


@router.get("/tenants/{tenant_id}/automations", response_model=list[AutomationRuleRead])
async def list_automation_rules(
    include_disabled: bool = False,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> list[AutomationRuleRead]:
    """List rules; by default only the enabled rules the engine would load."""
    rules = await automation_service.list_rules(session, tenant_id=tenant.id)
    if not include_disabled:
        enabled_ids = {rule.id for rule in await automation_service.preview_rules(session, tenant_id=tenant.id)}
        rules = [rule for rule in rules if rule.id in enabled_ids]
    return [AutomationRuleRead.model_validate(rule) for rule in rules]


@router.post(
    "/tenants/{tenant_id}/automations",
    response_model=AutomationRuleRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_automation_rule(
    payload: AutomationRuleCreate,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> AutomationRuleRead:
    """Create a new automation rule."""
    rule = await automation_service.create_rule(session, tenant_id=tenant.id, payload=payload)
    return AutomationRuleRead.model_validate(rule)


@router.patch("/tenants/{tenant_id}/automations/{rule_id}", response_model=AutomationRuleRead)
async def update_automation_rule(
    rule_id: uuid.UUID,
    payload: AutomationRuleUpdate,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> AutomationRuleRead:
    """Update an automation rule."""
    rule = await automation_service.get_rule(session, tenant_id=tenant.id, rule_id=rule_id)
    rule = await automation_service.update_rule(session, rule=rule, payload=payload)
    return AutomationRuleRead.model_validate(rule)


@router.delete(
    "/tenants/{tenant_id}/automations/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    response_model=None,
)
async def delete_automation_rule(
    rule_id: uuid.UUID,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> None:
    """Delete an automation rule."""
    rule = await automation_service.get_rule(session, tenant_id=tenant.id, rule_id=rule_id)
    await automation_service.delete_rule(session, rule=rule)


@router.post("/tenants/{tenant_id}/automations/triggers/{trigger}", response_model=TriggerDispatchResponse)
async def dispatch_automation_trigger(
    trigger: TriggerType,
    payload: TriggerRequest,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> TriggerDispatchResponse:
    """Submit a trigger for the tenant's rules."""
    context = AutomationContext(
        tenant_id=tenant.id,
        actor_user_id=payload.actor_user_id,
        actor_email=payload.actor_email,
        resource=payload.resource,
        metadata=payload.metadata,
    )
    result = await automation_service.dispatch_trigger(session, trigger, context)
    return TriggerDispatchResponse(**result)


@router.get("/tenants/{tenant_id}/automations/audit", response_model=list[AuditRecordRead])
async def list_automation_audit(
    rule_id: uuid.UUID | None = None,
    tenant: Tenant = Depends(get_tenant),
    session: AsyncSession = Depends(get_db),
) -> list[AuditRecordRead]:
    """List rule firings recorded for the tenant, newest first."""
    sink = ActivityLogAuditSink(AutomationStore(session))
    records = await sink.list_records(tenant.id, rule_id=rule_id)
    return [
        AuditRecordRead(
            rule_id=record.rule_id,
            rule_name=record.rule_name,
            trigger=record.trigger,
            actions_count=record.actions_count,
            actions_failed=record.actions_failed,
            fired_at=record.fired_at,
        )
        for record in records
    ]
