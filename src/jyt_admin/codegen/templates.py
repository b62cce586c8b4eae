"""
jyt_admin.codegen.templates

String templates for generated CRUD modules.

Responsibilities:
- Render a workflows module (create/update/delete steps with compensations).
- Render a FastAPI router module with pydantic create/update schemas.
"""

from __future__ import annotations

from dataclasses import dataclass

from jyt_admin.codegen.naming import kebab, pascal, plural, snake
from jyt_admin.codegen.parser import FieldDef, ModelDef

_SKIP = {"id", "created_at", "updated_at", "deleted_at"}


@dataclass(frozen=True, slots=True)
class Names:
    model: str
    pascal: str
    snake: str
    kebab: str
    plural_snake: str
    plural_kebab: str

    @classmethod
    def for_model(cls, model: ModelDef) -> Names:
        base = snake(model.name)
        return cls(
            model=model.name,
            pascal=pascal(model.name),
            snake=base,
            kebab=kebab(model.name),
            plural_snake=plural(base),
            plural_kebab=kebab(plural(base)),
        )


def _schema_fields(fields: list[FieldDef], *, partial: bool) -> str:
    lines: list[str] = []
    for f in fields:
        if f.name in _SKIP:
            continue
        annotation = f.python_type
        if partial or f.optional or f.has_default:
            lines.append(f"    {f.column}: {annotation} | None = None")
        else:
            lines.append(f"    {f.column}: {annotation}")
    return "\n".join(lines) or "    pass"


WORKFLOWS_TEMPLATE = '''"""
Generated CRUD workflows for {model}.
"""

from __future__ import annotations

from typing import Any

from jyt_admin.db.models import {model}
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.crud import as_uuid
from jyt_admin.workflows.engine import StepResponse, Workflow, create_step, node


async def _create(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    row = await CrudRepo(ctx.session, {model}).create(input)
    return StepResponse(row, compensate_input=str(row.id))


async def _undo_create(id: str, ctx: StepContext) -> None:
    await CrudRepo(ctx.session, {model}).delete(as_uuid(id))


async def _update(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    repo = CrudRepo(ctx.session, {model})
    id = as_uuid(input["id"])
    values = dict(input.get("values", {{}}))
    previous = repo.snapshot(await repo.retrieve(id), values.keys())
    row = await repo.update(id, values)
    return StepResponse(row, compensate_input={{"id": str(id), "previous": previous}})


async def _undo_update(data: dict[str, Any], ctx: StepContext) -> None:
    await CrudRepo(ctx.session, {model}).update(as_uuid(data["id"]), data["previous"])


async def _delete(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    id = as_uuid(input["id"])
    await CrudRepo(ctx.session, {model}).{delete_call}(id)
    return StepResponse({{"id": str(id), "deleted": True}}, compensate_input=str(id))


async def _undo_delete(id: str, ctx: StepContext) -> None:
{undo_delete_body}


create_{snake}_workflow = Workflow(
    "create-{kebab}", [node(create_step("create-{kebab}", _create, _undo_create))]
)
update_{snake}_workflow = Workflow(
    "update-{kebab}", [node(create_step("update-{kebab}", _update, _undo_update))]
)
delete_{snake}_workflow = Workflow(
    "delete-{kebab}", [node(create_step("delete-{kebab}", _delete, {undo_delete_ref}))]
)
'''


ROUTER_TEMPLATE = '''"""
Generated admin routes for {model}.
"""

from __future__ import annotations

{extra_imports}import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED

from jyt_admin.api.deps import db_session, workflow_runner
from jyt_admin.auth.deps import require_roles
from jyt_admin.db.base import to_dict
from jyt_admin.db.models import {model}
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.workflows.runner import WorkflowRunner
from {workflows_module} import (
    create_{snake}_workflow,
    delete_{snake}_workflow,
    update_{snake}_workflow,
)

router = APIRouter(
    prefix="/admin/{plural_kebab}",
    tags=["{plural_kebab}"],
    dependencies=[Depends(require_roles("admin"))],
)


class {pascal}Create(BaseModel):
{create_fields}


class {pascal}Update(BaseModel):
{update_fields}


@router.get("")
async def list_{plural_snake}(
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=200),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    rows, count = await CrudRepo(session, {model}).list_and_count(offset=offset, limit=limit)
    return {{
        "{plural_snake}": [to_dict(r) for r in rows],
        "count": count,
        "offset": offset,
        "limit": limit,
    }}


@router.post("", status_code=HTTP_201_CREATED)
async def create_{snake}(
    body: {pascal}Create, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(create_{snake}_workflow, body.model_dump(exclude_unset=True))
    return {{"{snake}": result.result}}


@router.get("/{{id}}")
async def retrieve_{snake}(
    id: uuid.UUID, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    return {{"{snake}": to_dict(await CrudRepo(session, {model}).retrieve(id))}}


@router.put("/{{id}}")
async def update_{snake}(
    id: uuid.UUID, body: {pascal}Update, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    values = body.model_dump(exclude_unset=True)
    result = await runner.run(update_{snake}_workflow, {{"id": str(id), "values": values}})
    return {{"{snake}": result.result}}


@router.delete("/{{id}}")
async def delete_{snake}(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(delete_{snake}_workflow, {{"id": str(id)}})
    return result.result
'''


def _datetime_import(fields: list[FieldDef]) -> str:
    used = sorted({f.python_type for f in fields if f.python_type in {"date", "datetime"}})
    return f"from datetime import {', '.join(used)}\n" if used else ""


def render_workflows(model: ModelDef) -> str:
    names = Names.for_model(model)
    if model.soft_delete:
        delete_call = "soft_delete"
        undo_body = f"    await CrudRepo(ctx.session, {model.name}).restore(as_uuid(id))"
        undo_ref = "_undo_delete"
    else:
        # Hard deletes cannot be undone; the step has no compensation.
        delete_call = "delete"
        undo_body = "    return None"
        undo_ref = "None"
    return WORKFLOWS_TEMPLATE.format(
        model=model.name,
        snake=names.snake,
        kebab=names.kebab,
        delete_call=delete_call,
        undo_delete_body=undo_body,
        undo_delete_ref=undo_ref,
    )


def render_router(model: ModelDef, *, workflows_module: str) -> str:
    names = Names.for_model(model)
    fields = model.writable_fields()
    return ROUTER_TEMPLATE.format(
        model=model.name,
        pascal=names.pascal,
        snake=names.snake,
        plural_snake=names.plural_snake,
        plural_kebab=names.plural_kebab,
        workflows_module=workflows_module,
        extra_imports=_datetime_import(fields),
        create_fields=_schema_fields(fields, partial=False),
        update_fields=_schema_fields(fields, partial=True),
    )
