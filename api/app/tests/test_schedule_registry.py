from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

from app.core.config import settings
from app.jobs import schedule_registry
from app.jobs.automations import run_automation_scans_job
from app.services.task_queue import task_queue


def test_scan_schedules_cover_both_scanners(monkeypatch):
    monkeypatch.setattr(settings, "automation_scan_interval_seconds", 900)

    entries = schedule_registry._schedule_entries()

    assert {entry["id"] for entry in entries} == {
        "automations:scan_certificate_expirations",
        "automations:scan_overdue_tasks",
    }
    assert all(entry["func"] is run_automation_scans_job for entry in entries)
    assert sorted(kind for entry in entries for kind in entry["kwargs"]["kinds"]) == ["certificates", "tasks"]
    assert {entry["interval"] for entry in entries} == {900}
    assert {entry["queue_name"] for entry in entries} == {"automations"}


def test_ensure_schedules_is_a_noop_in_tests(monkeypatch):
    def _explode(*args, **kwargs):
        raise AssertionError("scheduler should not be constructed in tests")

    monkeypatch.setattr(schedule_registry, "Scheduler", _explode)

    schedule_registry.ensure_schedules()


class _RecordingScheduler:
    instances: list["_RecordingScheduler"] = []

    def __init__(self, *, connection, queue_name) -> None:
        self.scheduled: list[dict] = []
        _RecordingScheduler.instances.append(self)

    def get_jobs(self):
        return [SimpleNamespace(id="automations:scan_overdue_tasks")]

    def schedule(self, **kwargs):
        self.scheduled.append(kwargs)


def test_ensure_schedules_registers_missing_jobs_with_aware_start(monkeypatch):
    _RecordingScheduler.instances = []
    monkeypatch.setattr(settings, "environment", "development")
    monkeypatch.setattr(task_queue, "_connection", object())
    monkeypatch.setattr(schedule_registry, "Scheduler", _RecordingScheduler)

    schedule_registry.ensure_schedules()

    scheduled = _RecordingScheduler.instances[0].scheduled
    assert [entry["id"] for entry in scheduled] == ["automations:scan_certificate_expirations"]
    start = scheduled[0]["scheduled_time"]
    assert start.tzinfo is not None
    assert abs((datetime.now(timezone.utc) - start).total_seconds()) < 60
