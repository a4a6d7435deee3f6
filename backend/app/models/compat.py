"""Database compatibility types for PostgreSQL and SQLite.

This module provides type wrappers that work with both PostgreSQL (production)
and SQLite (testing). When running with PostgreSQL, the native types are used.
When running with SQLite, compatible fallback types are used.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, String, TypeDecorator
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Dialect


class JSONBType(TypeDecorator):
    """JSONB type that works with both PostgreSQL and SQLite.

    Uses PostgreSQL JSONB in production, JSON in SQLite for testing.
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB())
        else:
            return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is None:
            return {}
        return dict(value) if value else {}

    def process_result_value(self, value, dialect):
        if value is None:
            return {}
        return dict(value) if value else {}


class UUIDType(TypeDecorator):
    """UUID type that works with both PostgreSQL and SQLite.

    Uses PostgreSQL UUID in production, String in SQLite for testing.
    """

    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        else:
            return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            return UUID(value)
        return value


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamp that always comes back in UTC.

    PostgreSQL stores TIMESTAMPTZ natively. SQLite drops the offset, so values
    are normalised to naive UTC on the way in and re-tagged on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        if dialect.name == "postgresql":
            return value
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
