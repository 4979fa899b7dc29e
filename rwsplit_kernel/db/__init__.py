"""Database layer - engine, record base classes, store handle, statements."""

from rwsplit_kernel.db.base import RecordBase, SoftDeleteMixin, TimestampMixin
from rwsplit_kernel.db.engine import create_engine_from_url, session_factory
from rwsplit_kernel.db.store import PRIMARY, REPLICA, StoreHandle

__all__ = [
    "RecordBase",
    "TimestampMixin",
    "SoftDeleteMixin",
    "create_engine_from_url",
    "session_factory",
    "StoreHandle",
    "PRIMARY",
    "REPLICA",
]
