"""
jyt_admin.workflows.crud

Generated-style CRUD workflows for simple domain records.

Responsibilities:
- Build create/update/delete workflows for a model, each with a compensating step.
- Cache them per model so routers and other workflows share one definition.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from functools import cache
from typing import Any

from jyt_admin.db.base import Base
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.engine import StepResponse, Workflow, create_step, node


def as_uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


@dataclass(frozen=True, slots=True)
class CrudWorkflows:
    create: Workflow
    update: Workflow
    delete: Workflow


def _slug(model: type[Base]) -> str:
    name = model.__name__
    return "".join(f"-{c.lower()}" if c.isupper() else c for c in name).lstrip("-")


@cache
def crud_workflows(model: type[Base]) -> CrudWorkflows:
    slug = _slug(model)

    async def create_invoke(input: dict[str, Any], ctx: StepContext) -> StepResponse:
        row = await CrudRepo(ctx.session, model).create(input)
        return StepResponse(row, compensate_input=str(row.id))  # type: ignore[attr-defined]

    async def create_compensate(id: Any, ctx: StepContext) -> None:
        await CrudRepo(ctx.session, model).delete(as_uuid(id))

    async def update_invoke(input: dict[str, Any], ctx: StepContext) -> StepResponse:
        repo = CrudRepo(ctx.session, model)
        id = as_uuid(input["id"])
        values = dict(input.get("values", {}))
        previous = repo.snapshot(await repo.retrieve(id), values.keys())
        row = await repo.update(id, values)
        return StepResponse(row, compensate_input={"id": str(id), "previous": previous})

    async def update_compensate(data: dict[str, Any], ctx: StepContext) -> None:
        repo = CrudRepo(ctx.session, model)
        await repo.update(as_uuid(data["id"]), data["previous"])

    async def delete_invoke(input: dict[str, Any], ctx: StepContext) -> StepResponse:
        id = as_uuid(input["id"])
        await CrudRepo(ctx.session, model).soft_delete(id)
        return StepResponse({"id": str(id), "deleted": True}, compensate_input=str(id))

    async def delete_compensate(id: Any, ctx: StepContext) -> None:
        await CrudRepo(ctx.session, model).restore(as_uuid(id))

    return CrudWorkflows(
        create=Workflow(
            f"create-{slug}",
            [node(create_step(f"create-{slug}-step", create_invoke, create_compensate))],
        ),
        update=Workflow(
            f"update-{slug}",
            [node(create_step(f"update-{slug}-step", update_invoke, update_compensate))],
        ),
        delete=Workflow(
            f"delete-{slug}",
            [node(create_step(f"delete-{slug}-step", delete_invoke, delete_compensate))],
        ),
    )
