"""Periodic job registration with rq-scheduler."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from rq_scheduler import Scheduler

from app.core.config import settings
from app.jobs.automations import run_automation_scans_job
from app.services.task_queue import task_queue

logger = logging.getLogger("app.jobs.schedule_registry")


def _queue_for(name: str) -> str:
    fallback = task_queue.queue_names[0] if task_queue.queue_names else "default"
    return name if name in task_queue.queue_names else fallback


def _schedule_entries() -> list[dict]:
    interval = settings.automation_scan_interval_seconds
    return [
        {
            "id": "automations:scan_certificate_expirations",
            "func": run_automation_scans_job,
            "kwargs": {"kinds": ["certificates"]},
            "interval": interval,
            "repeat": None,
            "queue_name": _queue_for("automations"),
        },
        {
            "id": "automations:scan_overdue_tasks",
            "func": run_automation_scans_job,
            "kwargs": {"kinds": ["tasks"]},
            "interval": interval,
            "repeat": None,
            "queue_name": _queue_for("automations"),
        },
    ]


def ensure_schedules() -> None:
    """Idempotently register periodic jobs with rq-scheduler."""
    if settings.environment.lower() == "test":
        return
    if not task_queue.connection:
        logger.info("Skipping scheduler bootstrap; queue connection is unavailable")
        return
    scheduler = Scheduler(connection=task_queue.connection, queue_name=task_queue.queue_names[0])
    existing_ids = {job.id for job in scheduler.get_jobs()}
    for entry in _schedule_entries():
        if entry["id"] in existing_ids:
            continue
        scheduler.schedule(
            scheduled_time=datetime.now(timezone.utc),
            func=entry["func"],
            kwargs=entry["kwargs"],
            interval=entry["interval"],
            repeat=entry["repeat"],
            id=entry["id"],
            queue_name=entry["queue_name"],
            result_ttl=int(timedelta(hours=1).total_seconds()),
        )
        logger.info("Scheduled job %s every %ss on queue %s", entry["id"], entry["interval"], entry["queue_name"])
