"""
jyt_admin.api.crud_router

Router factory for records that only need list/create/retrieve/update/delete.

Responsibilities:
- Expose the five admin CRUD routes for a model under one prefix.
- Route every write through the model's shared CRUD workflows.
- Accept a fixed set of equality filters from the query string.
"""

import uuid
from collections.abc import Iterable
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED

from jyt_admin.api.deps import Paging, db_session, paging, workflow_runner
from jyt_admin.auth.deps import require_roles
from jyt_admin.db.base import Base, to_dict
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.workflows.crud import crud_workflows
from jyt_admin.workflows.runner import WorkflowRunner


def query_filters(request: Request, allowed: Iterable[str]) -> dict[str, Any]:
    """Equality filters taken from the query string; repeated keys become `IN` filters."""

    out: dict[str, Any] = {}
    for name in allowed:
        values = request.query_params.getlist(name)
        if len(values) == 1:
            out[name] = values[0]
        elif values:
            out[name] = values
    return out


def crud_router(
    model: type[Base],
    *,
    prefix: str,
    singular: str,
    plural: str,
    create_schema: type[BaseModel],
    update_schema: type[BaseModel],
    filters: Iterable[str] = (),
    tags: list[str] | None = None,
) -> APIRouter:
    workflows = crud_workflows(model)
    allowed = tuple(filters)
    router = APIRouter(
        prefix=prefix,
        tags=tags or [plural],
        dependencies=[Depends(require_roles("admin"))],
    )

    @router.get("")
    async def list_records(
        request: Request,
        page: Paging = Depends(paging),
        session: AsyncSession = Depends(db_session),
    ) -> dict[str, Any]:
        rows, count = await CrudRepo(session, model).list_and_count(
            query_filters(request, allowed), offset=page.offset, limit=page.limit
        )
        return {
            plural: [to_dict(r) for r in rows],
            "count": count,
            "offset": page.offset,
            "limit": page.limit,
        }

    @router.post("", status_code=HTTP_201_CREATED)
    async def create_record(
        body: create_schema,  # type: ignore[valid-type]
        runner: WorkflowRunner = Depends(workflow_runner),
    ) -> dict[str, Any]:
        result = await runner.run(workflows.create, body.model_dump(mode="json"))
        return {singular: result.result}

    @router.get("/{id}")
    async def retrieve_record(
        id: uuid.UUID, session: AsyncSession = Depends(db_session)
    ) -> dict[str, Any]:
        return {singular: to_dict(await CrudRepo(session, model).retrieve(id))}

    @router.put("/{id}")
    async def update_record(
        id: uuid.UUID,
        body: update_schema,  # type: ignore[valid-type]
        runner: WorkflowRunner = Depends(workflow_runner),
    ) -> dict[str, Any]:
        values = body.model_dump(mode="json", exclude_unset=True)
        result = await runner.run(workflows.update, {"id": str(id), "values": values})
        return {singular: result.result}

    @router.delete("/{id}")
    async def delete_record(
        id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
    ) -> dict[str, Any]:
        result = await runner.run(workflows.delete, {"id": str(id)})
        return result.result

    return router


# --- Module Notes -----------------------------------------------------------
# Route signatures close over the schema classes, so this module keeps runtime annotations
# (no `from __future__ import annotations`). Routers with extra routes (persons) build on the
# returned router and add their own endpoints before being included in the app.
