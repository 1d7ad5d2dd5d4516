"""Tenant-scoped record store adapter used by the automation engine.

Invariants:
- Every query carries a tenant_id filter.
- Writes commit individually and roll back on failure so a failed action leaves no partial state.
- Records cross this boundary as plain dicts, never as live ORM instances.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base_class import Base
from app.models.activity import ActivityLog
from app.models.automation import AutomationRule
from app.models.certificate import Certificate
from app.models.notification import Notification
from app.models.task import Task
from app.models.tenant import OrgMember, Tenant
from app.services.automation_errors import DependencyUnavailable, TenantScopeViolation
from app.services.automation_types import ActionSpec, RuleSnapshot

logger = logging.getLogger("app.services.automation_store")

TABLES: dict[str, type[Base]] = {
    "tenants": Tenant,
    "org_members": OrgMember,
    "tasks": Task,
    "certificates": Certificate,
    "notifications": Notification,
    "activity_logs": ActivityLog,
    "automation_rules": AutomationRule,
}

_OPERATORS = {
    "eq": lambda column, value: column == value,
    "ne": lambda column, value: column != value,
    "lt": lambda column, value: column < value,
    "lte": lambda column, value: column <= value,
    "gt": lambda column, value: column > value,
    "gte": lambda column, value: column >= value,
    "in": lambda column, value: column.in_(list(value)),
}


def _model_for(table: str) -> type[Base]:
    model = TABLES.get(table)
    if model is None:
        raise ValueError(f"unknown_table:{table}")
    return model


def _coerce_id(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def record_to_dict(record: Base) -> dict[str, Any]:
    """Copy mapped column values off an ORM instance."""
    mapper = inspect(record).mapper
    return {attr.key: getattr(record, attr.key) for attr in mapper.column_attrs}


def _snapshot_actions(raw: Any) -> tuple[ActionSpec, ...]:
    if not isinstance(raw, list):
        return ()
    actions: list[ActionSpec] = []
    for entry in raw:
        if not isinstance(entry, dict):
            # Kept so the declared action count stays accurate; the executor lookup fails it.
            actions.append(ActionSpec(kind="", config={}))
            continue
        kind = entry.get("kind") or entry.get("type") or ""
        actions.append(ActionSpec(kind=str(kind), config=entry.get("config")))
    return tuple(actions)


def snapshot_rule(rule: AutomationRule) -> RuleSnapshot:
    """Freeze an ORM rule into an immutable snapshot."""
    conditions = rule.conditions if isinstance(rule.conditions, dict) else {}
    return RuleSnapshot(
        id=rule.id,
        tenant_id=rule.tenant_id,
        name=rule.name,
        trigger=rule.trigger,
        conditions=dict(conditions),
        actions=_snapshot_actions(rule.actions),
        enabled=rule.enabled,
    )


class AutomationStore:
    """Keyed record store reachable by filtered queries, inserts, and updates."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def load_enabled_rules(self, tenant_id: uuid.UUID) -> list[RuleSnapshot]:
        """Return enabled rules for a tenant in creation order."""
        try:
            result = await self.session.execute(
                select(AutomationRule)
                .where(AutomationRule.tenant_id == tenant_id, AutomationRule.enabled.is_(True))
                .order_by(AutomationRule.created_at, AutomationRule.id)
            )
        except SQLAlchemyError as exc:
            raise DependencyUnavailable(f"rule_store_unavailable:{exc.__class__.__name__}") from exc
        return [snapshot_rule(rule) for rule in result.scalars().all()]

    async def list_tenants_with_enabled_rules(self) -> list[uuid.UUID]:
        """Tenants that have at least one enabled rule; scanners only visit these."""
        try:
            result = await self.session.execute(
                select(AutomationRule.tenant_id).where(AutomationRule.enabled.is_(True)).distinct()
            )
        except SQLAlchemyError as exc:
            raise DependencyUnavailable(f"rule_store_unavailable:{exc.__class__.__name__}") from exc
        return sorted(result.scalars().all(), key=str)

    async def query(self, table: str, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Filtered read; keys may carry __in/__ne/__lt/__lte/__gt/__gte suffixes."""
        if "tenant_id" not in filters or filters["tenant_id"] is None:
            raise TenantScopeViolation(f"unscoped_query:{table}")
        model = _model_for(table)
        statement = select(model)
        for key, value in filters.items():
            name, _, op = key.partition("__")
            column = getattr(model, name, None)
            operator = _OPERATORS.get(op or "eq")
            if column is None or operator is None:
                raise ValueError(f"invalid_filter:{key}")
            statement = statement.where(operator(column, value))
        try:
            result = await self.session.execute(statement)
        except SQLAlchemyError as exc:
            raise DependencyUnavailable(f"store_query_failed:{table}") from exc
        return [record_to_dict(record) for record in result.scalars().all()]

    async def get(self, table: str, record_id: Any, *, tenant_id: uuid.UUID) -> dict[str, Any] | None:
        """Fetch one record by id, refusing records of another tenant."""
        model = _model_for(table)
        try:
            record = await self.session.get(model, _coerce_id(record_id))
        except SQLAlchemyError as exc:
            raise DependencyUnavailable(f"store_get_failed:{table}") from exc
        if record is None:
            return None
        if getattr(record, "tenant_id", None) != tenant_id:
            raise TenantScopeViolation(f"cross_tenant_record:{table}:{record_id}")
        return record_to_dict(record)

    async def insert(self, table: str, values: Mapping[str, Any]) -> uuid.UUID:
        """Insert a record and commit; returns the new id."""
        if not values.get("tenant_id"):
            raise TenantScopeViolation(f"unscoped_insert:{table}")
        model = _model_for(table)
        record = model(**values)
        self.session.add(record)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.warning("Store insert into %s failed: %s", table, exc)
            raise DependencyUnavailable(f"store_insert_failed:{table}") from exc
        except BaseException:
            # Cancelled by an action timeout; the row must not ride along with a later commit.
            if record in self.session:
                self.session.expunge(record)
            await self.session.rollback()
            raise
        return record.id

    async def update(
        self,
        table: str,
        record_id: Any,
        patch: Mapping[str, Any],
        *,
        tenant_id: uuid.UUID,
    ) -> bool:
        """Apply a patch to one tenant-owned record; False when the record is missing."""
        model = _model_for(table)
        try:
            record = await self.session.get(model, _coerce_id(record_id))
        except SQLAlchemyError as exc:
            raise DependencyUnavailable(f"store_get_failed:{table}") from exc
        if record is None:
            return False
        if getattr(record, "tenant_id", None) != tenant_id:
            raise TenantScopeViolation(f"cross_tenant_record:{table}:{record_id}")
        for key, value in patch.items():
            setattr(record, key, value)
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.warning("Store update on %s failed: %s", table, exc)
            raise DependencyUnavailable(f"store_update_failed:{table}") from exc
        except BaseException:
            await self.session.rollback()
            raise
        return True

    async def discard_pending(self) -> None:
        """Roll back writes an interrupted action left staged or half-flushed."""
        transaction = self.session.get_transaction()
        broken = transaction is not None and not transaction.is_active
        staged = list(self.session.new)
        for record in staged:
            self.session.expunge(record)
        if broken or staged or self.session.dirty or self.session.deleted:
            await self.session.rollback()
