"""Audit sink for automation rule firings, backed by the activity log."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.core.config import settings
from app.services.automation_store import AutomationStore

AUDIT_EVENT_KIND = "workflow_executed"
AUDIT_ENTITY_KIND = "workflow"


@dataclass(frozen=True, slots=True)
class AuditRecord:
    """Immutable proof that a rule fired and how many actions it declared."""

    tenant_id: uuid.UUID
    rule_id: uuid.UUID
    rule_name: str
    trigger: str
    actions_count: int
    fired_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    actions_failed: int = 0


class ActivityLogAuditSink:
    """Appends one activity log row per rule firing; never updates or deletes."""

    def __init__(self, store: AutomationStore) -> None:
        self.store = store

    async def record(self, record: AuditRecord) -> uuid.UUID:
        return await self.store.insert(
            "activity_logs",
            {
                "tenant_id": record.tenant_id,
                "actor_kind": "system",
                "actor_identity": settings.automation_actor_email,
                "event_kind": AUDIT_EVENT_KIND,
                "entity_kind": AUDIT_ENTITY_KIND,
                "entity_id": str(record.rule_id),
                "details": {
                    "ruleName": record.rule_name,
                    "trigger": record.trigger,
                    "actionsCount": record.actions_count,
                    "actionsFailed": record.actions_failed,
                    "firedAt": record.fired_at.isoformat(),
                },
            },
        )

    async def list_records(self, tenant_id: uuid.UUID, *, rule_id: uuid.UUID | None = None) -> list[AuditRecord]:
        """Read back firings for a tenant, newest first."""
        filters: dict = {"tenant_id": tenant_id, "event_kind": AUDIT_EVENT_KIND}
        if rule_id:
            filters["entity_id"] = str(rule_id)
        rows = await self.store.query("activity_logs", filters)
        records: list[AuditRecord] = []
        for row in rows:
            details = row.get("details") or {}
            fired_at = details.get("firedAt")
            records.append(
                AuditRecord(
                    tenant_id=row["tenant_id"],
                    rule_id=uuid.UUID(row["entity_id"]),
                    rule_name=details.get("ruleName", ""),
                    trigger=details.get("trigger", ""),
                    actions_count=int(details.get("actionsCount") or 0),
                    fired_at=datetime.fromisoformat(fired_at) if fired_at else row["created_at"],
                    actions_failed=int(details.get("actionsFailed") or 0),
                )
            )
        records.sort(key=lambda item: item.fired_at, reverse=True)
        return records
