"""
Column types shared by the prediction tables.
"""
import math

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator
from sqlalchemy.engine import Dialect


def _plain(value):
    # Tuples from pick snapshots become lists; NaN/inf are not valid JSONB
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


class UniversalJSON(TypeDecorator):
    """
    JSON column for score breakdowns and pick snapshots.

    Stored as JSONB on PostgreSQL and as JSON text on SQLite.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return _plain(value)
