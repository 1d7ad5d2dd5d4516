"""Action executors for automation rules.

Invariants:
- Action configs are validated before any write; malformed configs fail closed.
- Every lookup of related records is scoped to the context tenant.
- A missing recipient is a skip, not a failure.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Mapping

from app.core.config import settings
from app.models.automation import ActionKind
from app.models.task import TaskPriority, TaskStatus
from app.models.tenant import ADMIN_ROLES
from app.services.automation_errors import (
    AutomationConfigurationError,
    AutomationExecutionError,
    DependencyUnavailable,
    TenantScopeViolation,
)
from app.services.automation_store import AutomationStore
from app.services.automation_types import AutomationContext, RuleSnapshot
from app.services.notification_service import NOTIFICATION_TYPES, DatabaseNotificationChannel, QueuedMailer

logger = logging.getLogger("app.services.automation_actions")

CERTIFICATE_STATUSES = {"valid", "expiring", "expired", "renewal_pending", "revoked"}
STATUS_TABLES: dict[str, set[str]] = {
    "tasks": {status.value for status in TaskStatus},
    "certificates": CERTIFICATE_STATUSES,
}
TASK_PRIORITIES = {priority.value for priority in TaskPriority}


@dataclass(slots=True)
class ActionDependencies:
    """External collaborators handed to every executor."""

    store: AutomationStore
    notifier: DatabaseNotificationChannel
    mailer: QueuedMailer
    action_timeout_seconds: float = field(default_factory=lambda: settings.automation_action_timeout_seconds)


ActionHandler = Callable[
    [ActionDependencies, Mapping[str, Any], AutomationContext, RuleSnapshot],
    Awaitable[dict[str, Any]],
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _normalize_config(config: Any) -> Mapping[str, Any]:
    if config is None:
        return {}
    if not isinstance(config, Mapping):
        raise AutomationConfigurationError("action_config_invalid")
    return config


def _config_uuid(config: Mapping[str, Any], key: str) -> uuid.UUID | None:
    raw = config.get(key)
    if raw in (None, ""):
        return None
    try:
        return raw if isinstance(raw, uuid.UUID) else uuid.UUID(str(raw))
    except (TypeError, ValueError) as exc:
        raise AutomationConfigurationError(f"invalid_{key}") from exc


def _parse_due_date(config: Mapping[str, Any]) -> datetime | None:
    raw = config.get("dueDate")
    if raw not in (None, ""):
        if isinstance(raw, datetime):
            parsed = raw
        else:
            try:
                parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
            except ValueError as exc:
                raise AutomationConfigurationError("invalid_due_date") from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    days = config.get("dueInDays")
    if days in (None, ""):
        return None
    if isinstance(days, bool):
        raise AutomationConfigurationError("invalid_due_in_days")
    try:
        return _utcnow() + timedelta(days=int(days))
    except (TypeError, ValueError) as exc:
        raise AutomationConfigurationError("invalid_due_in_days") from exc


async def _require_member(deps: ActionDependencies, tenant_id: uuid.UUID, user_id: uuid.UUID) -> None:
    members = await deps.store.query("org_members", {"tenant_id": tenant_id, "user_id": user_id})
    if not members:
        raise TenantScopeViolation(f"user_outside_tenant:{user_id}")


async def _execute_send_notification(
    deps: ActionDependencies,
    config: Mapping[str, Any],
    context: AutomationContext,
    rule: RuleSnapshot,
) -> dict[str, Any]:
    config = _normalize_config(config)
    title = _coerce_str(config.get("title"))
    if not title:
        raise AutomationConfigurationError("notification_missing_title")
    kind = _coerce_str(config.get("type")) or "info"
    if kind not in NOTIFICATION_TYPES:
        raise AutomationConfigurationError("notification_invalid_type")
    explicit = _config_uuid(config, "userId")
    if explicit:
        await _require_member(deps, context.tenant_id, explicit)
    recipient = explicit or context.actor_user_id
    if not recipient:
        return {"status": "skipped", "reason": "no_recipient"}
    notification_id = await deps.notifier.notify(
        tenant_id=context.tenant_id,
        user_id=recipient,
        title=title,
        message=str(config.get("message") or ""),
        kind=kind,
        action_url=_coerce_str(config.get("actionUrl")),
    )
    return {"status": "notified", "user_id": str(recipient), "notification_id": str(notification_id)}


async def _execute_create_task(
    deps: ActionDependencies,
    config: Mapping[str, Any],
    context: AutomationContext,
    rule: RuleSnapshot,
) -> dict[str, Any]:
    config = _normalize_config(config)
    title = _coerce_str(config.get("title"))
    if not title:
        raise AutomationConfigurationError("task_missing_title")
    priority = _coerce_str(config.get("priority")) or TaskPriority.MEDIUM.value
    if priority not in TASK_PRIORITIES:
        raise AutomationConfigurationError("task_invalid_priority")
    due_date = _parse_due_date(config)
    explicit = _config_uuid(config, "assignedTo")
    if explicit:
        await _require_member(deps, context.tenant_id, explicit)
    assignee = explicit or context.actor_user_id
    task_id = await deps.store.insert(
        "tasks",
        {
            "tenant_id": context.tenant_id,
            "title": title,
            "description": _coerce_str(config.get("description")),
            "assigned_to": assignee,
            "due_date": due_date,
            "priority": priority,
            "status": TaskStatus.PENDING.value,
            "source_rule_id": rule.id,
        },
    )
    return {
        "status": "created",
        "task_id": str(task_id),
        "assigned_to": str(assignee) if assignee else None,
    }


async def _execute_update_status(
    deps: ActionDependencies,
    config: Mapping[str, Any],
    context: AutomationContext,
    rule: RuleSnapshot,
) -> dict[str, Any]:
    config = _normalize_config(config)
    table = _coerce_str(config.get("table"))
    status = _coerce_str(config.get("status"))
    if not table or table not in STATUS_TABLES:
        raise AutomationConfigurationError("update_status_invalid_table")
    if not status or status not in STATUS_TABLES[table]:
        raise AutomationConfigurationError("update_status_invalid_status")
    resource_id = context.resource_id
    if not resource_id:
        return {"status": "skipped", "reason": "missing_resource_id"}
    patch: dict[str, Any] = {"status": status}
    if table == "tasks" and status == TaskStatus.COMPLETED.value:
        patch["completed_at"] = _utcnow()
    updated = await deps.store.update(table, resource_id, patch, tenant_id=context.tenant_id)
    if not updated:
        raise AutomationExecutionError(f"resource_not_found:{table}:{resource_id}")
    return {"status": "updated", "table": table, "resource_id": str(resource_id), "new_status": status}


async def _execute_send_email(
    deps: ActionDependencies,
    config: Mapping[str, Any],
    context: AutomationContext,
    rule: RuleSnapshot,
) -> dict[str, Any]:
    config = _normalize_config(config)
    subject = _coerce_str(config.get("subject") or config.get("title"))
    if not subject:
        raise AutomationConfigurationError("email_missing_subject")
    recipient = _coerce_str(config.get("to")) or _coerce_str(context.actor_email)
    if not recipient:
        return {"status": "skipped", "reason": "no_recipient"}
    body = str(config.get("body") or config.get("message") or "")
    submission = await deps.mailer.send(tenant_id=context.tenant_id, to=recipient, subject=subject, body=body)
    return {"status": "email_submitted", "to": recipient, "mode": submission.get("mode")}


async def _execute_escalate(
    deps: ActionDependencies,
    config: Mapping[str, Any],
    context: AutomationContext,
    rule: RuleSnapshot,
) -> dict[str, Any]:
    config = _normalize_config(config)
    title = _coerce_str(config.get("title")) or "Escalation Required"
    message = str(config.get("message") or "")
    action_url = _coerce_str(config.get("actionUrl"))
    admins = await deps.store.query(
        "org_members", {"tenant_id": context.tenant_id, "role__in": list(ADMIN_ROLES)}
    )
    recipients: list[uuid.UUID] = []
    for admin in admins:
        if admin.get("tenant_id") != context.tenant_id:
            logger.error(
                "Tenant scope violation: member %s resolved for tenant %s during escalation",
                admin.get("id"),
                context.tenant_id,
            )
            continue
        if admin["user_id"] not in recipients:
            recipients.append(admin["user_id"])
    if not recipients:
        return {"status": "skipped", "reason": "no_admins", "recipients": 0}

    # Each admin gets an equal slice of the action budget, with one slice held back
    # for the lookup above, so a hung delivery cannot starve the admins after it.
    per_recipient_timeout = deps.action_timeout_seconds / (len(recipients) + 1)
    delivered: list[str] = []
    failed: list[dict[str, str]] = []
    for user_id in recipients:
        try:
            await asyncio.wait_for(
                deps.notifier.notify(
                    tenant_id=context.tenant_id,
                    user_id=user_id,
                    title=title,
                    message=message,
                    kind="warning",
                    action_url=action_url,
                ),
                timeout=per_recipient_timeout,
            )
        except asyncio.TimeoutError:
            failed.append({"user_id": str(user_id), "error": "notify_timeout"})
        except AutomationExecutionError as exc:
            failed.append({"user_id": str(user_id), "error": exc.message})
        else:
            delivered.append(str(user_id))
    if failed:
        logger.warning("Escalation for rule %s failed for %d of %d admins", rule.id, len(failed), len(recipients))
    if not delivered:
        raise DependencyUnavailable("escalation_delivery_failed")
    return {
        "status": "escalated",
        "recipients": len(recipients),
        "delivered": delivered,
        "failed": failed,
    }


ACTION_HANDLERS: dict[str, ActionHandler] = {
    ActionKind.SEND_NOTIFICATION.value: _execute_send_notification,
    ActionKind.ASSIGN_TASK.value: _execute_create_task,
    ActionKind.CREATE_TASK.value: _execute_create_task,
    ActionKind.UPDATE_STATUS.value: _execute_update_status,
    ActionKind.SEND_EMAIL.value: _execute_send_email,
    ActionKind.ESCALATE.value: _execute_escalate,
}
