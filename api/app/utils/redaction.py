"""Redaction helpers for logs and errors recorded on rule firings."""

from __future__ import annotations

import re

_URL_USERINFO_RE = re.compile(r"([a-z][a-z0-9+.-]*://)([^@/\s]+)@", re.IGNORECASE)
_KEY_VALUE_SECRET_RE = re.compile(
    r"(?i)(token|secret|password|passwd|api[_-]?key|access_token|refresh_token|signature)([=:]\s*)([^&\s,;]+)"
)
_BEARER_RE = re.compile(r"(?i)(bearer\s+)([A-Za-z0-9._~+/=-]+)")


def redact_secrets(text: str | None, *, limit: int | None = None) -> str | None:
    """Mask credentials embedded in URLs, query strings, and auth headers.

    ``limit`` truncates after redaction so a cut never exposes half a secret.
    """
    if not text:
        return text
    redacted = _URL_USERINFO_RE.sub(r"\1***@", text)
    redacted = _KEY_VALUE_SECRET_RE.sub(r"\1\2***", redacted)
    redacted = _BEARER_RE.sub(r"\1***", redacted)
    if limit is not None:
        redacted = redacted[:limit]
    return redacted
