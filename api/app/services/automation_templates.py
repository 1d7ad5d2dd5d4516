"""Versioned catalogue of rule templates seeded into new tenants."""

from __future__ import annotations

import copy
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.automation import AutomationRule

TEMPLATE_CATALOGUE_VERSION = 1

# Same shape as AutomationRule minus identity and tenant fields.
WORKFLOW_TEMPLATES: tuple[dict[str, Any], ...] = (
    {
        "name": "Welcome New Member",
        "description": "Automatically assign onboarding tasks to new team members",
        "trigger": "member_added",
        "conditions": {},
        "enabled": True,
        "actions": [
            {
                "kind": "send_notification",
                "config": {
                    "title": "Welcome to the team!",
                    "message": "Check out your dashboard to get started with compliance training.",
                    "type": "success",
                },
            },
            {
                "kind": "create_task",
                "config": {
                    "title": "Complete Onboarding Training",
                    "description": "Review company compliance policies and complete training modules.",
                    "priority": "high",
                    "dueInDays": 7,
                },
            },
        ],
    },
    {
        "name": "Certificate Expiring Soon",
        "description": "Notify member 30 days before certificate expiration",
        "trigger": "certificate_expiring",
        "conditions": {},
        "enabled": True,
        "actions": [
            {
                "kind": "send_notification",
                "config": {
                    "title": "Certificate Expiring Soon",
                    "message": "Your certificate will expire in 30 days. Please renew it.",
                    "type": "warning",
                },
            },
            {
                "kind": "create_task",
                "config": {
                    "title": "Renew Certificate",
                    "description": "Certificate expiring soon. Please complete renewal process.",
                    "priority": "high",
                },
            },
        ],
    },
    {
        "name": "Overdue Task Escalation",
        "description": "Escalate tasks that are overdue by 3 days to admins",
        "trigger": "task_overdue",
        "conditions": {"daysOverdue": 3},
        "enabled": True,
        "actions": [
            {
                "kind": "escalate",
                "config": {
                    "title": "Overdue Task Requires Attention",
                    "message": "A task assigned to a team member is 3+ days overdue.",
                },
            },
        ],
    },
    {
        "name": "Task Completion Celebration",
        "description": "Send congratulations when member completes a task",
        "trigger": "task_completed",
        "conditions": {},
        "enabled": True,
        "actions": [
            {
                "kind": "send_notification",
                "config": {
                    "title": "Task Completed! \U0001f389",
                    "message": "Great job completing your task. Keep up the good work!",
                    "type": "success",
                },
            },
        ],
    },
)


def list_templates() -> list[dict[str, Any]]:
    """Return deep copies so callers cannot mutate the catalogue."""
    return [copy.deepcopy(template) for template in WORKFLOW_TEMPLATES]


async def seed_tenant_rules(session: AsyncSession, *, tenant_id: uuid.UUID, commit: bool = True) -> list[AutomationRule]:
    """Create one rule per catalogue template for a tenant."""
    rules = [AutomationRule(tenant_id=tenant_id, **template) for template in list_templates()]
    session.add_all(rules)
    if commit:
        await session.commit()
    else:
        await session.flush()
    return rules
