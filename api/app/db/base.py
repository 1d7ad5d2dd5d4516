"""Import all models here for Alembic autogenerate."""

from app.db.base_class import Base
from app.models import (  # noqa: F401
    activity,
    automation,
    certificate,
    notification,
    task,
    tenant,
)

__all__ = ["Base"]
