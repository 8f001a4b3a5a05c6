"""Database layer - engine, base classes, and column types."""

from dispatch_kernel.db.base import Base, TrackedBase
from dispatch_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
)
from dispatch_kernel.db.types import UTCDateTime

__all__ = [
    "get_engine",
    "get_session_factory",
    "init_engine_from_url",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
]
