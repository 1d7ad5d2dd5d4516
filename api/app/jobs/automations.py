"""Worker job entrypoints for automation triggers and periodic scans."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from app.db.session import async_session
from app.services import automation_scanner
from app.services.automation_engine import build_engine
from app.services.automation_types import AutomationContext

logger = logging.getLogger("app.jobs.automations")


def execute_trigger_job(*, trigger: str, context: dict[str, Any]) -> dict[str, Any]:
    """Evaluate and execute tenant rules for one trigger within a worker context."""

    async def _run() -> list[dict[str, Any]]:
        async with async_session() as session:
            engine = build_engine(session)
            return await engine.execute_trigger(trigger, AutomationContext.from_payload(context))

    firings = asyncio.run(_run())
    logger.info("Trigger %s for tenant %s fired %d rules", trigger, context.get("tenant_id"), len(firings))
    return {"trigger": trigger, "firings": len(firings)}


def run_automation_scans_job(kinds: list[str] | None = None) -> dict[str, Any]:
    """Scheduled certificate-expiry and overdue-task scans across tenants."""

    async def _run() -> dict[str, Any]:
        async with async_session() as session:
            return await automation_scanner.run_scheduled_scans(session, kinds=kinds)

    summary = asyncio.run(_run())
    logger.info(
        "Automation scans complete: %d checks, %d triggers, %d errors",
        summary["checks_run"],
        summary["triggers_executed"],
        len(summary["errors"]),
    )
    return {key: value for key, value in summary.items() if key != "scans"}
