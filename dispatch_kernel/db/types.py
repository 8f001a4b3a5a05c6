"""
Module: dispatch_kernel.db.types
Responsibility: Column types and annotated aliases shared by every model.
    Centralizes timestamp handling so that every model and service compares
    timezone-aware UTC datetimes regardless of backend.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Every datetime leaving the database is timezone-aware UTC.  SQLite
      stores naive values; they are read back as UTC.
    - Every datetime entering the database is normalized to UTC.  Naive
      values are interpreted as UTC.

Failure modes:
    - AttributeError if a non-datetime value is bound to a UTCDateTime column.
"""

from datetime import datetime, timezone
from typing import Annotated

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime, portable across PostgreSQL and SQLite.

    Guarantees:
        - process_bind_param: aware or naive datetime -> UTC (naive for SQLite).
        - process_result_value: always returns an aware UTC datetime.
        - cache_ok=True enables SQLAlchemy statement caching.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# Surrogate integer key; SQLite only autoincrements INTEGER PRIMARY KEY
Identifier = BigInteger().with_variant(Integer(), "sqlite")

# Canonical lifecycle state code (e.g. "IN_PROGRESS", "POR_ASIGNAR")
StateCode = Annotated[str, String(20)]

# Role tags and counter categories
RoleCode = Annotated[str, String(32)]

# Person and company names
PersonName = Annotated[str, String(120)]

# Free text (notes, addresses)
LongText = Annotated[str, String(2000)]

# Timestamp alias for annotations
UTCTimestamp = Annotated[datetime, UTCDateTime()]
