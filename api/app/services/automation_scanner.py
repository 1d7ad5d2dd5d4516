"""Periodic scanners that synthesize automation triggers from current data.

Both scanners are stateless re-evaluators: each run re-derives the qualifying
records from the store and fires the trigger for every one of them. A record
that keeps qualifying (a certificate inside the expiry window, a task still
pending past its due date) refires matching rules on every run. Deduplication
is not done here; rules must tolerate repeats, or a per-resource "last fired"
watermark has to be consulted before a context is synthesized.

Invariants:
- Every query is scoped to one tenant.
- One record's failure never aborts the rest of the batch.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.automation import TriggerType
from app.models.task import TaskStatus
from app.services.automation_engine import RuleEngine, build_engine
from app.services.automation_types import AutomationContext

logger = logging.getLogger("app.services.automation_scanner")

ScanFunc = Callable[..., Awaitable[dict[str, Any]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive timestamps; treat them as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _scan_result(scan: str, tenant_id: uuid.UUID) -> dict[str, Any]:
    return {
        "scan": scan,
        "tenant_id": str(tenant_id),
        "records": 0,
        "triggers_executed": 0,
        "firings": 0,
        "errors": [],
    }


async def _fire(engine: RuleEngine, trigger: TriggerType, context: AutomationContext, result: dict[str, Any]) -> None:
    record_id = context.resource_id
    try:
        firings = await engine.execute_trigger(trigger, context)
    except Exception as exc:
        logger.exception("Scan trigger %s failed for record %s", trigger.value, record_id)
        result["errors"].append(f"Failed to process {record_id}: {exc}")
        return
    result["triggers_executed"] += 1
    result["firings"] += len(firings)


async def scan_certificate_expirations(
    engine: RuleEngine,
    tenant_id: uuid.UUID,
    *,
    now: datetime | None = None,
    window_days: int | None = None,
) -> dict[str, Any]:
    """Fire certificate_expiring for certificates expiring inside the lookahead window."""
    now = now or _utcnow()
    window_end = now + timedelta(days=window_days or settings.certificate_expiry_window_days)
    result = _scan_result("certificates", tenant_id)
    certificates = await engine.store.query(
        "certificates",
        {"tenant_id": tenant_id, "expiry_date__gte": now, "expiry_date__lte": window_end},
    )
    result["records"] = len(certificates)
    if not certificates:
        return result

    member_ids = [cert["member_id"] for cert in certificates if cert.get("member_id")]
    owners: dict[uuid.UUID, dict[str, Any]] = {}
    if member_ids:
        members = await engine.store.query("org_members", {"tenant_id": tenant_id, "id__in": member_ids})
        owners = {member["id"]: member for member in members}

    logger.info("Found %d expiring certificates for tenant %s", len(certificates), tenant_id)
    for cert in certificates:
        owner = owners.get(cert.get("member_id")) or {}
        days_until_expiry = (_as_utc(cert["expiry_date"]) - now).days
        context = AutomationContext(
            tenant_id=tenant_id,
            actor_user_id=owner.get("user_id"),
            actor_email=owner.get("email"),
            resource=cert,
            metadata={
                "certificateId": str(cert["id"]),
                "name": cert.get("name"),
                "daysUntilExpiry": days_until_expiry,
            },
        )
        await _fire(engine, TriggerType.CERTIFICATE_EXPIRING, context, result)
    return result


async def scan_overdue_tasks(
    engine: RuleEngine,
    tenant_id: uuid.UUID,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Fire task_overdue for pending tasks whose due date has passed."""
    now = now or _utcnow()
    result = _scan_result("tasks", tenant_id)
    tasks = await engine.store.query(
        "tasks",
        {"tenant_id": tenant_id, "status": TaskStatus.PENDING.value, "due_date__lt": now},
    )
    result["records"] = len(tasks)
    if tasks:
        logger.info("Found %d overdue tasks for tenant %s", len(tasks), tenant_id)
    for task in tasks:
        days_overdue = (now - _as_utc(task["due_date"])).days
        context = AutomationContext(
            tenant_id=tenant_id,
            actor_user_id=task.get("assigned_to"),
            resource=task,
            metadata={
                "taskId": str(task["id"]),
                "title": task.get("title"),
                "daysOverdue": days_overdue,
                "priority": task.get("priority"),
                "assignedTo": str(task["assigned_to"]) if task.get("assigned_to") else None,
            },
        )
        await _fire(engine, TriggerType.TASK_OVERDUE, context, result)
    return result


SCANNERS: dict[str, ScanFunc] = {
    "certificates": scan_certificate_expirations,
    "tasks": scan_overdue_tasks,
}


async def run_scheduled_scans(
    session: AsyncSession,
    *,
    kinds: list[str] | None = None,
    tenant_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run the selected scans for every tenant with enabled rules and aggregate the outcome."""
    selected = kinds or list(SCANNERS)
    unknown = [kind for kind in selected if kind not in SCANNERS]
    if unknown:
        raise ValueError(f"Unknown scan kind: {', '.join(unknown)}")

    engine = build_engine(session)
    summary: dict[str, Any] = {"checks_run": 0, "triggers_executed": 0, "firings": 0, "errors": [], "scans": []}
    try:
        tenants = [tenant_id] if tenant_id else await engine.store.list_tenants_with_enabled_rules()
    except Exception as exc:
        logger.exception("Unable to enumerate tenants for scheduled scans")
        summary["errors"].append(f"Error listing tenants: {exc}")
        return summary

    for kind in selected:
        scan = SCANNERS[kind]
        summary["checks_run"] += 1
        for tenant in tenants:
            try:
                result = await scan(engine, tenant, now=now)
            except Exception as exc:
                logger.exception("Scan %s failed for tenant %s", kind, tenant)
                summary["errors"].append(f"Error running {kind} scan for tenant {tenant}: {exc}")
                continue
            summary["scans"].append(result)
            summary["triggers_executed"] += result["triggers_executed"]
            summary["firings"] += result["firings"]
            summary["errors"].extend(result["errors"])

    logger.info(
        "Scheduled automation completed: %d checks, %d triggers across %d tenants",
        summary["checks_run"],
        summary["triggers_executed"],
        len(tenants),
    )
    return summary


async def run_scan(
    session: AsyncSession,
    kind: str,
    *,
    tenant_id: uuid.UUID | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Run one scan kind (``certificates`` or ``tasks``)."""
    if kind not in SCANNERS:
        raise ValueError(f"Unknown scan kind: {kind}")
    return await run_scheduled_scans(session, kinds=[kind], tenant_id=tenant_id, now=now)
