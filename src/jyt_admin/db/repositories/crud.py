"""
jyt_admin.db.repositories.crud

Generic repository for simple domain records.

Responsibilities:
- Create, read, list (with filters and paging), update, soft delete and restore rows.
- Translate API field names (`metadata`) into mapped attribute names (`metadata_`).
- Translate unique-constraint violations into `duplicate_error`.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any, Generic, TypeVar

from sqlalchemy import JSON, Boolean, DateTime, Enum, Float, Integer, Uuid, func, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from jyt_admin.db.base import Base, utcnow
from jyt_admin.errors import AppError, ErrorType, not_found

M = TypeVar("M", bound=Base)


def attribute_keys(model: type[Base]) -> dict[str, str]:
    """Map column names to mapped attribute keys (`metadata` -> `metadata_`)."""

    return {attr.columns[0].name: attr.key for attr in inspect(model).column_attrs}


def entity_label(model: type[Base]) -> str:
    return model.__name__


class CrudRepo(Generic[M]):
    def __init__(self, session: AsyncSession, model: type[M]) -> None:
        self._session = session
        self._model = model
        self._keys = attribute_keys(model)
        self._columns = {attr.key: attr.columns[0] for attr in inspect(model).column_attrs}

    @property
    def model(self) -> type[M]:
        return self._model

    def _soft_deletable(self) -> bool:
        return "deleted_at" in self._keys

    def _values(self, values: Mapping[str, Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name, value in values.items():
            key = self._keys.get(name)
            if key is None:
                # Allow attribute keys too (e.g. `metadata_` from internal callers).
                if name in self._keys.values():
                    key = name
                else:
                    raise AppError(
                        ErrorType.invalid_data,
                        f"Unknown field '{name}' for {entity_label(self._model)}",
                    )
            out[key] = self._coerce(key, value)
        return out

    def _coerce(self, key: str, value: Any) -> Any:
        # JSON round-tripped values (compensation inputs, query params) arrive as strings.
        if isinstance(value, list) and not isinstance(self._columns[key].type, JSON):
            return [self._coerce(key, v) for v in value]
        if not isinstance(value, str):
            return value
        column_type = self._columns[key].type
        try:
            if isinstance(column_type, DateTime):
                return datetime.fromisoformat(value)
            if isinstance(column_type, Uuid):
                return uuid.UUID(value)
            if isinstance(column_type, Enum) and column_type.enum_class is not None:
                return column_type.enum_class(value)
            if isinstance(column_type, Boolean):
                return value.lower() in {"1", "true", "yes"}
            if isinstance(column_type, Integer):
                return int(value)
            if isinstance(column_type, Float):
                return float(value)
        except ValueError as e:
            raise AppError(ErrorType.invalid_data, f"Invalid value for '{key}': {value}") from e
        return value

    async def _flush(self) -> None:
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise AppError(
                ErrorType.duplicate_error,
                f"{entity_label(self._model)} violates a unique constraint: {e.orig}",
            ) from e

    def select(self, *, with_deleted: bool = False) -> Select[tuple[M]]:
        stmt = select(self._model)
        if self._soft_deletable() and not with_deleted:
            stmt = stmt.where(self._model.deleted_at.is_(None))  # type: ignore[attr-defined]
        return stmt

    async def create(self, values: Mapping[str, Any]) -> M:
        row = self._model(**self._values(values))
        self._session.add(row)
        await self._flush()
        return row

    async def get(self, id: uuid.UUID, *, with_deleted: bool = False) -> M | None:
        row = await self._session.get(self._model, id)
        if row is None:
            return None
        deleted = getattr(row, "deleted_at", None)
        if self._soft_deletable() and not with_deleted and deleted is not None:
            return None
        return row

    async def retrieve(self, id: uuid.UUID, *, with_deleted: bool = False) -> M:
        row = await self.get(id, with_deleted=with_deleted)
        if row is None:
            raise not_found(entity_label(self._model), id)
        return row

    async def list_and_count(
        self,
        filters: Mapping[str, Any] | None = None,
        *,
        offset: int = 0,
        limit: int | None = 20,
        order_by: Iterable[Any] | None = None,
    ) -> tuple[list[M], int]:
        stmt = self.select()
        for name, value in self._values(filters or {}).items():
            if value is None:
                continue
            column = getattr(self._model, name)
            if isinstance(value, list | tuple | set | frozenset):
                stmt = stmt.where(column.in_(list(value)))
            else:
                stmt = stmt.where(column == value)

        count = (
            await self._session.execute(select(func.count()).select_from(stmt.subquery()))
        ).scalar_one()

        if order_by is None:
            order_by = []
            if "created_at" in self._keys:
                order_by = [self._model.created_at.desc()]  # type: ignore[attr-defined]
        stmt = stmt.order_by(*order_by).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = list((await self._session.execute(stmt)).scalars().all())
        return rows, int(count)

    async def update(self, id: uuid.UUID, values: Mapping[str, Any]) -> M:
        row = await self.retrieve(id)
        for key, value in self._values(values).items():
            setattr(row, key, value)
        await self._flush()
        return row

    def snapshot(self, row: M, fields: Iterable[str]) -> dict[str, Any]:
        """Current values of `fields` (column names) for restoring in a compensation."""

        names = list(fields)
        values = self._values({f: None for f in names})
        return {name: getattr(row, key) for name, key in zip(names, values, strict=True)}

    async def soft_delete(self, id: uuid.UUID) -> M:
        row = await self.retrieve(id)
        row.deleted_at = utcnow()  # type: ignore[attr-defined]
        await self._flush()
        return row

    async def restore(self, id: uuid.UUID) -> M | None:
        row = await self.get(id, with_deleted=True)
        if row is None:
            return None
        row.deleted_at = None  # type: ignore[attr-defined]
        await self._flush()
        return row

    async def delete(self, id: uuid.UUID) -> None:
        row = await self._session.get(self._model, id)
        if row is None:
            return
        await self._session.delete(row)
        await self._flush()


# --- Module Notes -----------------------------------------------------------
# Domain-specific repositories (blocks, flows, production runs) build on `CrudRepo` and add
# the queries their workflows need.
