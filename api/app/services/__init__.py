from . import (
    automation_engine,
    automation_scanner,
    automation_service,
    task_service,
    tenant_service,
)

__all__ = [
    "automation_engine",
    "automation_scanner",
    "automation_service",
    "task_service",
    "tenant_service",
]
"""Service-layer helpers for API operations."""
