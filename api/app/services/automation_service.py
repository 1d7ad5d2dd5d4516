"""Automation rule storage, preview, and trigger dispatch helpers."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.db.session import async_session
from app.jobs.automations import execute_trigger_job
from app.models.automation import AutomationRule, TriggerType
from app.schema.automation import AutomationRuleCreate, AutomationRuleUpdate
from app.services.automation_engine import build_engine
from app.services.automation_types import AutomationContext, RuleSnapshot
from app.services.task_queue import task_queue

logger = logging.getLogger("app.services.automation_service")


async def list_rules(session: AsyncSession, *, tenant_id: uuid.UUID) -> list[AutomationRule]:
    """List every automation rule for a tenant, enabled or not."""
    result = await session.execute(
        select(AutomationRule)
        .where(AutomationRule.tenant_id == tenant_id)
        .order_by(AutomationRule.created_at, AutomationRule.id)
    )
    return result.scalars().all()


async def preview_rules(session: AsyncSession, *, tenant_id: uuid.UUID) -> list[RuleSnapshot]:
    """Rules the engine would consider right now (enabled only)."""
    return await build_engine(session).load_rules(tenant_id)


async def get_rule(session: AsyncSession, *, tenant_id: uuid.UUID, rule_id: uuid.UUID) -> AutomationRule:
    """Fetch a single automation rule by ID."""
    result = await session.execute(
        select(AutomationRule).where(AutomationRule.id == rule_id, AutomationRule.tenant_id == tenant_id)
    )
    rule = result.scalar_one_or_none()
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Automation rule not found")
    return rule


def _dump_actions(actions) -> list[dict[str, Any]]:
    return [action.model_dump(mode="json") for action in actions]


async def create_rule(
    session: AsyncSession, *, tenant_id: uuid.UUID, payload: AutomationRuleCreate
) -> AutomationRule:
    """Create a new automation rule."""
    rule = AutomationRule(
        tenant_id=tenant_id,
        name=payload.name,
        description=payload.description,
        enabled=payload.enabled,
        trigger=payload.trigger.value,
        conditions=payload.conditions or {},
        actions=_dump_actions(payload.actions),
    )
    session.add(rule)
    await session.commit()
    await session.refresh(rule)
    return rule


async def update_rule(
    session: AsyncSession, *, rule: AutomationRule, payload: AutomationRuleUpdate
) -> AutomationRule:
    """Update an automation rule."""
    fields = payload.model_fields_set
    if "name" in fields and payload.name is not None:
        rule.name = payload.name
    if "description" in fields:
        rule.description = payload.description
    if "enabled" in fields and payload.enabled is not None:
        rule.enabled = payload.enabled
    if "trigger" in fields and payload.trigger is not None:
        rule.trigger = payload.trigger.value
    if "conditions" in fields:
        rule.conditions = payload.conditions or {}
    if "actions" in fields and payload.actions is not None:
        rule.actions = _dump_actions(payload.actions)
    await session.commit()
    await session.refresh(rule)
    return rule


async def delete_rule(session: AsyncSession, *, rule: AutomationRule) -> None:
    """Delete an automation rule."""
    await session.delete(rule)
    await session.commit()


async def _execute_detached(trigger: str, payload: dict[str, Any]) -> list[dict[str, Any]]:
    # Runs after the request returned, so it cannot borrow the request session.
    async with async_session() as session:
        return await build_engine(session).execute_trigger(trigger, AutomationContext.from_payload(payload))


async def dispatch_trigger(
    session: AsyncSession,
    trigger: TriggerType | str,
    context: AutomationContext,
) -> dict[str, Any]:
    """Hand a trigger to the automations queue without waiting on its actions.

    When no queue is reachable the engine runs in the background on its own
    session, detached from the request. Only the test environment runs it
    inline on ``session`` and returns the firings. Never raises: the domain
    write that raised the trigger has already committed and must not fail
    because automation did.
    """
    trigger_value = TriggerType(trigger).value
    payload = context.to_payload()
    detach = settings.environment.lower() != "test"

    async def _fallback() -> list[dict[str, Any]]:
        if detach:
            return await _execute_detached(trigger_value, payload)
        return await build_engine(session).execute_trigger(trigger_value, context)

    try:
        submission = await task_queue.submit(
            execute_trigger_job,
            fallback=_fallback,
            queue_name="automations",
            timeout_seconds=120,
            description=f"trigger:{trigger_value}:{context.tenant_id}",
            detach=detach,
            trigger=trigger_value,
            context=payload,
        )
    except Exception:
        logger.exception("Failed to dispatch %s for tenant %s", trigger_value, context.tenant_id)
        return {"trigger": trigger_value, "mode": "failed", "job_id": None, "firings": None}
    return {
        "trigger": trigger_value,
        "mode": submission["mode"],
        "job_id": submission["job_id"],
        "firings": submission["result"],
    }
