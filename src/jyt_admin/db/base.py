"""
jyt_admin.db.base

SQLAlchemy declarative base and shared column mixins.

Responsibilities:
- Provide a shared DeclarativeBase for all ORM models.
- Provide the common id/timestamp/soft-delete columns every domain record carries.
- Serialize ORM rows into JSON-ready dicts for API responses.
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import Enum, Uuid as SAUuid, inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    # Naive UTC timestamps, consistent across SQLite and Postgres.
    return datetime.now(UTC).replace(tzinfo=None)


def str_enum(enum_cls: type[enum.Enum]) -> Enum:
    # Store enum values (not member names) so rows read naturally in SQL.
    return Enum(
        enum_cls,
        values_callable=lambda e: [m.value for m in e],
        native_enum=False,
        length=32,
    )


class Base(DeclarativeBase):
    pass


class IdMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow, onupdate=utcnow)


class SoftDeleteMixin:
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True, default=None, index=True)


def _json_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def to_dict(row: Base, *, exclude: set[str] | None = None) -> dict[str, Any]:
    """
    Column values keyed by column name (so `metadata_` is rendered as `metadata`).
    """

    out: dict[str, Any] = {}
    for attr in inspect(row).mapper.column_attrs:
        name = attr.columns[0].name
        if exclude and name in exclude:
            continue
        out[name] = _json_value(getattr(row, attr.key))
    return out


# --- Module Notes -----------------------------------------------------------
# All ORM models should inherit from `Base` so Alembic and metadata discovery work.
