"""Automation rule engine: trigger filtering, condition gating, ordered action execution.

Invariants:
- Rules are loaded fresh for every trigger; only enabled rules of the context tenant are considered.
- Actions of a rule run strictly in declared order, each bounded by the action timeout.
- A failing action never aborts its siblings, other rules, or the caller.
- Exactly one audit record is written per firing that declared at least one action,
  counting declared actions rather than successful ones.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.automation import TriggerType
from app.services import automation_conditions
from app.services.automation_actions import ACTION_HANDLERS, ActionDependencies, ActionHandler
from app.services.automation_audit import ActivityLogAuditSink, AuditRecord
from app.services.automation_errors import AutomationExecutionError, TenantScopeViolation
from app.services.automation_store import AutomationStore
from app.services.automation_types import ActionSpec, AutomationContext, RuleSnapshot
from app.services.notification_service import DatabaseNotificationChannel, QueuedMailer
from app.utils.redaction import redact_secrets

logger = logging.getLogger("app.services.automation_engine")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


ERROR_DETAIL_LIMIT = 500


def _rule_status(outcomes: list[dict[str, Any]]) -> str:
    failed = sum(1 for outcome in outcomes if outcome["status"] == "failed")
    if not failed:
        return "completed"
    if failed == len(outcomes):
        return "failed"
    return "partial"


class RuleEngine:
    """Evaluates tenant rules for a trigger and drives their action executors."""

    def __init__(
        self,
        store: AutomationStore,
        notifier: DatabaseNotificationChannel,
        mailer: QueuedMailer,
        audit_sink: ActivityLogAuditSink,
        *,
        action_timeout_seconds: float | None = None,
        handlers: Mapping[str, ActionHandler] | None = None,
    ) -> None:
        self.store = store
        self.audit_sink = audit_sink
        self.action_timeout_seconds = action_timeout_seconds or settings.automation_action_timeout_seconds
        self.deps = ActionDependencies(
            store=store,
            notifier=notifier,
            mailer=mailer,
            action_timeout_seconds=self.action_timeout_seconds,
        )
        self.handlers = ACTION_HANDLERS if handlers is None else handlers

    async def load_rules(self, tenant_id) -> list[RuleSnapshot]:
        """Load enabled rules for a tenant; never cached across calls."""
        return await self.store.load_enabled_rules(tenant_id)

    async def execute_trigger(
        self, trigger: TriggerType | str, context: AutomationContext
    ) -> list[dict[str, Any]]:
        """Fire every matching rule for the trigger and return one summary per firing."""
        trigger_value = TriggerType(trigger).value
        try:
            rules = await self.load_rules(context.tenant_id)
        except AutomationExecutionError as exc:
            logger.warning("Unable to load rules for tenant %s: %s", context.tenant_id, exc.message)
            return []

        firings: list[dict[str, Any]] = []
        for rule in rules:
            if rule.trigger != trigger_value or rule.tenant_id != context.tenant_id:
                continue
            if not automation_conditions.evaluate(rule.conditions, context):
                logger.debug("Rule %s conditions not met for %s", rule.id, trigger_value)
                continue
            firings.append(await self._fire_rule(rule, trigger_value, context))
        return firings

    async def _fire_rule(self, rule: RuleSnapshot, trigger: str, context: AutomationContext) -> dict[str, Any]:
        fired_at = _utcnow()
        outcomes: list[dict[str, Any]] = []
        for action in rule.actions:
            outcomes.append(await self._run_action(rule, action, context))

        status = _rule_status(outcomes) if outcomes else "completed"
        failed = sum(1 for outcome in outcomes if outcome["status"] == "failed")
        audited = False
        if rule.actions:
            try:
                await self.audit_sink.record(
                    AuditRecord(
                        tenant_id=context.tenant_id,
                        rule_id=rule.id,
                        rule_name=rule.name,
                        trigger=trigger,
                        actions_count=len(rule.actions),
                        fired_at=fired_at,
                        actions_failed=failed,
                    )
                )
                audited = True
            except AutomationExecutionError as exc:
                logger.warning("Audit write failed for rule %s: %s", rule.id, exc.message)
            except Exception:
                logger.exception("Audit write failed for rule %s", rule.id)

        if failed:
            logger.warning("Rule %s (%s) fired with %d/%d failed actions", rule.id, trigger, failed, len(outcomes))
        else:
            logger.info("Rule %s (%s) fired %d actions", rule.id, trigger, len(outcomes))
        return {
            "rule_id": str(rule.id),
            "rule_name": rule.name,
            "trigger": trigger,
            "status": status,
            "fired_at": fired_at,
            "audited": audited,
            "actions": outcomes,
        }

    async def _run_action(
        self, rule: RuleSnapshot, action: ActionSpec, context: AutomationContext
    ) -> dict[str, Any]:
        detail: dict[str, Any] = {"kind": action.kind}
        handler = self.handlers.get(action.kind)
        if not handler:
            detail["status"] = "failed"
            detail["error"] = f"unsupported_action:{action.kind}"
            logger.warning("Rule %s declares unsupported action %r", rule.id, action.kind)
            return detail

        error: str | None = None
        try:
            result = await asyncio.wait_for(
                handler(self.deps, action.config, context, rule),
                timeout=self.action_timeout_seconds,
            )
            detail["result"] = result
            detail["status"] = "skipped" if result.get("status") == "skipped" else "completed"
        except asyncio.TimeoutError:
            error = "action_timeout"
            logger.warning("Action %s of rule %s timed out", action.kind, rule.id)
        except TenantScopeViolation as exc:
            error = exc.message
            logger.error(
                "Tenant scope violation in rule %s action %s for tenant %s: %s",
                rule.id,
                action.kind,
                context.tenant_id,
                exc.message,
            )
        except AutomationExecutionError as exc:
            error = exc.message
            logger.warning("Action %s of rule %s failed: %s", action.kind, rule.id, exc.message)
        except Exception as exc:
            logger.exception("Automation action %s failed for rule %s", action.kind, rule.id)
            error = str(exc) or exc.__class__.__name__

        if error:
            await self.store.discard_pending()
            detail["status"] = "failed"
            detail["error"] = redact_secrets(error, limit=ERROR_DETAIL_LIMIT)
        return detail


def build_engine(session: AsyncSession, *, mailer: QueuedMailer | None = None) -> RuleEngine:
    """Wire a rule engine around one database session."""
    store = AutomationStore(session)
    return RuleEngine(
        store=store,
        notifier=DatabaseNotificationChannel(store),
        mailer=mailer or QueuedMailer(),
        audit_sink=ActivityLogAuditSink(store),
    )
