from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.jobs.automations import run_automation_scans_job
from app.services import automation_scanner
from app.services.task_queue import task_queue

router = APIRouter()


@router.get("/queues", tags=["ops"])
async def queue_health() -> dict:
    """Minimal operations dashboard for Redis/RQ health."""
    return task_queue.snapshot()


@router.post("/scans/{kind}", tags=["ops"])
async def run_scan(kind: str, session: AsyncSession = Depends(get_db)) -> dict:
    """Run one automation scan now (``certificates`` or ``tasks``)."""
    if kind not in automation_scanner.SCANNERS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown scan kind")

    async def _fallback() -> dict:
        summary = await automation_scanner.run_scan(session, kind)
        return {key: value for key, value in summary.items() if key != "scans"}

    return await task_queue.enqueue_or_run(
        run_automation_scans_job,
        fallback=_fallback,
        queue_name="automations",
        timeout_seconds=300,
        description=f"scan:{kind}",
        kinds=[kind],
    )
