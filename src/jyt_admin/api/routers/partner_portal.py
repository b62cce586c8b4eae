"""
jyt_admin.api.routers.partner_portal

Partner-facing endpoints.

Responsibilities:
- Return the caller's partner record.
- List and read the production runs assigned to the caller's partner.
- Accept and complete assigned runs.

Runs belonging to other partners are reported as not found.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.api.crud_router import query_filters
from jyt_admin.api.deps import Paging, db_session, paging, workflow_runner
from jyt_admin.auth.deps import require_partner
from jyt_admin.auth.models import Principal
from jyt_admin.db.base import to_dict
from jyt_admin.db.models import Partner, ProductionRun
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.errors import not_allowed, not_found
from jyt_admin.workflows.production_runs import (
    accept_production_run_workflow,
    complete_production_run_workflow,
    list_run_tasks,
)
from jyt_admin.workflows.runner import WorkflowRunner

router = APIRouter(prefix="/partners", tags=["partner-portal"])


async def _owned_run(
    session: AsyncSession, id: uuid.UUID, principal: Principal
) -> ProductionRun:
    run = await CrudRepo(session, ProductionRun).get(id)
    if run is None or run.partner_id != principal.partner_id:
        raise not_found("ProductionRun", id)
    return run


@router.get("/me")
async def me(
    principal: Principal = Depends(require_partner),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    if principal.partner_id is None:
        raise not_allowed("No partner is associated with this caller")
    partner = await CrudRepo(session, Partner).retrieve(principal.partner_id)
    return {"partner": to_dict(partner), "subject": principal.subject}


@router.get("/production-runs")
async def list_my_production_runs(
    request: Request,
    page: Paging = Depends(paging),
    principal: Principal = Depends(require_partner),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    filters = query_filters(request, ("status", "design_id"))
    filters["partner_id"] = principal.partner_id
    rows, count = await CrudRepo(session, ProductionRun).list_and_count(
        filters, offset=page.offset, limit=page.limit
    )
    return {
        "production_runs": [to_dict(r) for r in rows],
        "count": count,
        "offset": page.offset,
        "limit": page.limit,
    }


@router.get("/production-runs/{id}")
async def retrieve_my_production_run(
    id: uuid.UUID,
    principal: Principal = Depends(require_partner),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    run = await _owned_run(session, id, principal)
    tasks = await list_run_tasks(session, run.id)
    return {"production_run": {**to_dict(run), "tasks": [to_dict(t) for t in tasks]}}


@router.post("/production-runs/{id}/accept")
async def accept_production_run(
    id: uuid.UUID,
    principal: Principal = Depends(require_partner),
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    result = await runner.run(
        accept_production_run_workflow, {"id": str(id), "partner_id": str(principal.partner_id)}
    )
    return {"production_run": result.result}


@router.post("/production-runs/{id}/complete")
async def complete_production_run(
    id: uuid.UUID,
    principal: Principal = Depends(require_partner),
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    result = await runner.run(
        complete_production_run_workflow,
        {"id": str(id), "partner_id": str(principal.partner_id)},
    )
    return {"production_run": result.result}
