"""SQLAlchemy declarative base shared by every compliance model."""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Matches the index names emitted by the Alembic migrations.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
}


class Base(DeclarativeBase):
    """Declarative base; every model declares its own ``__tablename__``."""
    metadata = MetaData(naming_convention=NAMING_CONVENTION)
