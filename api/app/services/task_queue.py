"""RQ task queue wrapper with inline fallback for local/test runs."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry
from rq.registry import DeferredJobRegistry, FailedJobRegistry, ScheduledJobRegistry, StartedJobRegistry
from rq.worker import Worker
from rq_scheduler import Scheduler

from app.core.config import settings
from app.utils.redaction import redact_secrets

logger = logging.getLogger("app.services.task_queue")

# Retry profile for idempotent-safe jobs such as email delivery.
DEFAULT_RETRY = Retry(max=3, interval=[5, 15, 30])


def _maybe_async(value: Any) -> Any:
    """Normalize callables/coroutines into an awaitable result."""
    if asyncio.iscoroutine(value):
        return value
    if callable(value):
        return value()
    return value


class TaskQueue:
    """Thin wrapper around RQ that can fall back to inline execution."""

    def __init__(self) -> None:
        self.queue_names: list[str] = settings.worker_queue_names or ["default"]
        self._connection: Redis | None = None
        self._enabled = False
        self._detached: set[asyncio.Task] = set()
        self._bootstrap()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def connection(self) -> Redis | None:
        return self._connection

    def _bootstrap(self) -> None:
        """Initialize Redis connectivity unless disabled for tests."""
        if settings.environment.lower() == "test":
            logger.info("Task queue disabled in test environment")
            return
        try:
            connection = Redis.from_url(settings.redis_url)
            connection.ping()
        except Exception as exc:  # pragma: no cover - network/redis specific
            logger.warning("Redis unavailable; running jobs inline: %s", redact_secrets(str(exc)))
            self._connection = None
            self._enabled = False
            return
        self._connection = connection
        self._enabled = True
        logger.info("Task queue ready (queues: %s)", ", ".join(self.queue_names))

    def get_queue(self, queue_name: str | None = None) -> Queue:
        """Return a configured queue instance for enqueuing jobs."""
        if not self._connection:
            raise RuntimeError("Queue connection not initialized")
        target = queue_name if queue_name in self.queue_names else self.queue_names[0]
        return Queue(target, connection=self._connection)

    async def _run_inline(self, func: Callable[..., Any], fallback: Callable[[], Any] | None, kwargs: dict) -> Any:
        target = fallback or (lambda: func(**kwargs))
        result = _maybe_async(target)
        if asyncio.iscoroutine(result):
            return await result
        return result

    def _detach(self, func: Callable[..., Any], fallback: Callable[[], Any] | None, kwargs: dict) -> dict[str, Any]:
        task = asyncio.create_task(self._run_inline(func, fallback, kwargs))
        self._detached.add(task)
        task.add_done_callback(self._finish_detached)
        return {"mode": "background", "job_id": None, "result": None}

    def _finish_detached(self, task: asyncio.Task) -> None:
        self._detached.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background job failed (%s): %s", exc.__class__.__name__, redact_secrets(str(exc)))

    async def drain(self) -> None:
        """Wait for jobs detached from their request to finish."""
        while self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)

    async def submit(
        self,
        func: Callable[..., Any],
        *,
        fallback: Callable[[], Any] | None = None,
        queue_name: str | None = None,
        timeout_seconds: int = 60,
        retry: Retry | None = None,
        description: str | None = None,
        detach: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Enqueue a job without waiting for it; run inline only when no queue is reachable.

        With ``detach`` the inline run is scheduled on the event loop instead of awaited,
        so the caller returns before the job finishes.
        """
        if not self._enabled or not self._connection:
            if detach:
                return self._detach(func, fallback, kwargs)
            result = await self._run_inline(func, fallback, kwargs)
            return {"mode": "inline", "job_id": None, "result": result}

        def _enqueue() -> str:
            queue = self.get_queue(queue_name)
            enqueue_kwargs: dict[str, Any] = {
                "kwargs": kwargs,
                "job_timeout": timeout_seconds,
                "description": description,
            }
            if retry:
                enqueue_kwargs["retry"] = retry
            return queue.enqueue(func, **enqueue_kwargs).id

        try:
            job_id = await asyncio.to_thread(_enqueue)
        except RedisError as exc:  # pragma: no cover - network/redis specific
            logger.warning("Falling back to inline execution after queue failure: %s", redact_secrets(str(exc)))
            if detach:
                return self._detach(func, fallback, kwargs)
            result = await self._run_inline(func, fallback, kwargs)
            return {"mode": "inline", "job_id": None, "result": result}
        return {"mode": "queued", "job_id": job_id, "result": None}

    async def enqueue_or_run(
        self,
        func: Callable[..., Any],
        *,
        fallback: Callable[[], Any] | None = None,
        queue_name: str | None = None,
        timeout_seconds: int = 60,
        retry: Retry | None = None,
        description: str | None = None,
        **kwargs: Any,
    ) -> Any:
        """Enqueue a job and wait for the result; fall back to inline execution if needed."""
        if not self._enabled or not self._connection:
            return await self._run_inline(func, fallback, kwargs)

        def _enqueue_and_wait() -> Any:
            queue = self.get_queue(queue_name)
            enqueue_kwargs: dict[str, Any] = {
                "kwargs": kwargs,
                "job_timeout": timeout_seconds,
                "description": description,
            }
            if retry:
                enqueue_kwargs["retry"] = retry
            job = queue.enqueue(func, **enqueue_kwargs)
            return _wait_for_result(job, timeout_seconds)

        try:
            return await asyncio.to_thread(_enqueue_and_wait)
        except Exception as exc:  # pragma: no cover - network/redis specific
            logger.warning("Falling back to inline execution after queue failure: %s", redact_secrets(str(exc)))
            return await self._run_inline(func, fallback, kwargs)

    def snapshot(self) -> dict[str, Any]:
        """Return a diagnostic snapshot of queue, worker, and scheduler state."""
        if not self._connection:
            return {
                "status": "offline",
                "queues": [],
                "workers": [],
                "error": "queue connection not initialized",
            }

        queues: list[dict[str, Any]] = []
        for name in self.queue_names:
            queue = Queue(name, connection=self._connection)
            queues.append(
                {
                    "name": name,
                    "size": queue.count,
                    "deferred": len(DeferredJobRegistry(queue=queue)),
                    "scheduled": len(ScheduledJobRegistry(queue=queue)),
                    "started": len(StartedJobRegistry(queue=queue)),
                    "failed": len(FailedJobRegistry(queue=queue)),
                }
            )

        workers: list[dict[str, Any]] = []
        try:
            for worker in Worker.all(connection=self._connection):
                workers.append(
                    {
                        "name": worker.name,
                        "state": getattr(worker, "state", "unknown"),
                        "queues": list(worker.queue_names()),
                        "current_job_id": worker.get_current_job_id(),
                    }
                )
        except RedisError as exc:  # pragma: no cover - network/redis specific
            logger.warning("Unable to list workers: %s", exc)

        scheduler_summary: dict[str, Any] = {}
        try:
            scheduler = Scheduler(connection=self._connection, queue_name=self.queue_names[0])
            scheduler_summary["scheduled_jobs"] = len(list(scheduler.get_jobs()))
            scheduler_summary["healthy"] = True
        except Exception:  # pragma: no cover - redis specific
            scheduler_summary["scheduled_jobs"] = None
            scheduler_summary["healthy"] = False

        warnings: list[str] = []
        if not workers:
            warnings.append("no_workers")
        if scheduler_summary.get("healthy") is False:
            warnings.append("scheduler_unreachable")
        status = "online" if not warnings else "degraded"
        return {
            "status": status,
            "queues": queues,
            "workers": workers,
            "scheduler": scheduler_summary,
            "warnings": warnings,
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }


def _wait_for_result(job: Any, timeout_seconds: int) -> Any:  # pragma: no cover - redis specific
    """Poll a job until it finishes or the timeout elapses."""
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        status = job.get_status(refresh=True)
        if status == "finished":
            return job.return_value()
        if status in {"failed", "stopped", "canceled"}:
            raise RuntimeError(f"job_{status}:{job.id}")
        time.sleep(0.25)
    raise TimeoutError(f"job_timeout:{job.id}")


task_queue = TaskQueue()
