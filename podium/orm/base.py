"""
podium/orm/base.py
Declarative base, shared columns and serialization helpers.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, DateTime, MetaData
from sqlalchemy.orm import declarative_base

# Constraint names stay stable across SQLite and PostgreSQL
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

Base = declarative_base(metadata=MetaData(naming_convention=NAMING_CONVENTION))


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class BaseModel(Base):
    """Surrogate integer key plus created/updated timestamps (UTC, naive)."""
    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
