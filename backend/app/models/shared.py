"""Shared model utilities used across all models."""

import copy
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, String, TypeDecorator, inspect
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.mutable import MutableDict


class UUIDType(TypeDecorator[uuid.UUID]):
    """Platform-independent UUID type.

    Uses String(36) for SQLite, native UUID for PostgreSQL.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Dialect) -> str | None:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(value))

    def process_result_value(self, value: Any, dialect: Dialect) -> uuid.UUID | None:
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


# JSON object column whose in-place key changes are tracked by the session.
JSONDict = MutableDict.as_mutable(JSON)


def generate_uuid() -> uuid.UUID:
    """Generate a new UUID."""
    return uuid.uuid4()


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def snapshot_columns(instance: Any, keys: list[str] | None = None) -> dict[str, Any]:
    """Copy an instance's column values into plain Python objects.

    Mutable JSON values are copied as plain dicts so later in-place changes on
    the instance do not leak into the snapshot.
    """
    mapper = inspect(instance).mapper
    names = keys if keys is not None else [attr.key for attr in mapper.column_attrs]
    values: dict[str, Any] = {}
    for name in names:
        value = getattr(instance, name)
        if isinstance(value, dict):
            value = copy.deepcopy(dict(value))
        elif isinstance(value, list):
            value = copy.deepcopy(list(value))
        values[name] = value
    return values
