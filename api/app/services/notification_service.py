"""Notification and mail collaborators used by automation actions."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from redis.exceptions import RedisError

from app.jobs.email import deliver_email_job
from app.services.automation_errors import DependencyUnavailable
from app.services.automation_store import AutomationStore
from app.services.task_queue import DEFAULT_RETRY, TaskQueue, task_queue

logger = logging.getLogger("app.services.notification_service")

NOTIFICATION_TYPES = {"info", "success", "warning", "error"}


class DatabaseNotificationChannel:
    """Delivers in-app notifications by inserting inbox rows."""

    def __init__(self, store: AutomationStore) -> None:
        self.store = store

    async def notify(
        self,
        *,
        tenant_id: uuid.UUID,
        user_id: uuid.UUID,
        title: str,
        message: str,
        kind: str = "info",
        action_url: str | None = None,
    ) -> uuid.UUID:
        notification_id = await self.store.insert(
            "notifications",
            {
                "tenant_id": tenant_id,
                "user_id": user_id,
                "title": title,
                "message": message,
                "type": kind if kind in NOTIFICATION_TYPES else "info",
                "action_url": action_url,
                "read": False,
            },
        )
        logger.debug("Notification %s delivered to %s", notification_id, user_id)
        return notification_id


class QueuedMailer:
    """Hands outbound email to the notifications queue; the job owns retries."""

    def __init__(self, queue: TaskQueue | None = None) -> None:
        self.queue = queue or task_queue

    async def send(self, *, tenant_id: uuid.UUID, to: str, subject: str, body: str) -> dict[str, Any]:
        try:
            return await self.queue.submit(
                deliver_email_job,
                queue_name="notifications",
                timeout_seconds=30,
                retry=DEFAULT_RETRY,
                description=f"email:{tenant_id}",
                tenant_id=str(tenant_id),
                to=to,
                subject=subject,
                body=body,
            )
        except RedisError as exc:
            raise DependencyUnavailable("mail_queue_unavailable") from exc
