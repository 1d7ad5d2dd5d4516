"""Worker job for outbound automation email."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger("app.jobs.email")


def deliver_email_job(*, tenant_id: str, to: str, subject: str, body: str) -> dict[str, Any]:
    """Hand an email to the mail provider.

    No provider is wired yet; delivery is logged so operators can trace what
    would have been sent.
    """
    logger.info("Email for tenant %s to %s: %s (%d chars)", tenant_id, to, subject, len(body or ""))
    return {"status": "logged", "to": to, "subject": subject}
