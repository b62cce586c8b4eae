"""
jyt_admin.api.routers.production_runs

Admin production run endpoints.

Responsibilities:
- Create runs from designs and list/read them with their tasks.
- Approve runs into per-partner children.
- Start and resume the (suspending) dispatch workflow.
- Cancel runs and their children.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_202_ACCEPTED

from jyt_admin.api.crud_router import query_filters
from jyt_admin.api.deps import Paging, db_session, paging, workflow_runner
from jyt_admin.api.schemas import ApproveRequest, ProductionRunCreate, ResumeDispatchRequest
from jyt_admin.auth.deps import require_roles
from jyt_admin.db.base import to_dict
from jyt_admin.db.models import ProductionRun
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.db.repositories.workflow_executions import WorkflowExecutionRepo
from jyt_admin.workflows.production_runs import (
    approve_production_run_workflow,
    cancel_production_run_workflow,
    create_production_run_workflow,
    dispatch_production_run_workflow,
    ensure_dispatch_owner,
    list_child_runs,
    list_run_tasks,
)
from jyt_admin.workflows.runner import WorkflowRunner

router = APIRouter(
    prefix="/admin/production-runs",
    tags=["production-runs"],
    dependencies=[Depends(require_roles("admin"))],
)

RUN_FILTERS = ("design_id", "status", "partner_id", "parent_run_id")


@router.post("", status_code=HTTP_201_CREATED)
async def create_production_run(
    body: ProductionRunCreate, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(create_production_run_workflow, body.model_dump(mode="json"))
    return {"production_run": result.result}


@router.get("")
async def list_production_runs(
    request: Request,
    page: Paging = Depends(paging),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    rows, count = await CrudRepo(session, ProductionRun).list_and_count(
        query_filters(request, RUN_FILTERS), offset=page.offset, limit=page.limit
    )
    return {
        "production_runs": [to_dict(r) for r in rows],
        "count": count,
        "offset": page.offset,
        "limit": page.limit,
    }


@router.get("/{id}")
async def retrieve_production_run(
    id: uuid.UUID, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    run = await CrudRepo(session, ProductionRun).retrieve(id)
    return {
        "production_run": {
            **to_dict(run),
            "tasks": [to_dict(t) for t in await list_run_tasks(session, id)],
            "children": [to_dict(c) for c in await list_child_runs(session, id)],
        }
    }


@router.post("/{id}/approve")
async def approve_production_run(
    id: uuid.UUID,
    body: ApproveRequest,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    payload = {"id": str(id), **body.model_dump(mode="json")}
    result = await runner.run(approve_production_run_workflow, payload)
    return {"result": result.result}


@router.post("/{id}/start-dispatch")
async def start_dispatch(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> JSONResponse:
    result = await runner.run(dispatch_production_run_workflow, {"id": str(id)})
    return JSONResponse(
        status_code=HTTP_202_ACCEPTED,
        content={
            "transaction_id": str(result.transaction_id),
            "status": str(result.status),
            "waiting": result.waiting,
        },
    )


@router.post("/{id}/resume-dispatch")
async def resume_dispatch(
    id: uuid.UUID,
    body: ResumeDispatchRequest,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    execution = await WorkflowExecutionRepo(runner.session).get(body.transaction_id)
    ensure_dispatch_owner(execution.input if execution else None, id)
    result = await runner.resume(
        dispatch_production_run_workflow,
        body.transaction_id,
        {"template_names": body.template_names},
    )
    return {"result": result.result, "transaction_id": str(result.transaction_id)}


@router.post("/{id}/cancel")
async def cancel_production_run(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(cancel_production_run_workflow, {"id": str(id)})
    return {"production_run": result.result}


# --- Module Notes -----------------------------------------------------------
# `start-dispatch` answers 202 while the workflow waits for template selection; the
# transaction id it returns is the handle `resume-dispatch` needs.
