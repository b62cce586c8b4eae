"""
jyt_admin.api.routers.workflow_executions

Read access to stored workflow executions (checkpoints of long-running workflows).
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.api.deps import db_session
from jyt_admin.auth.deps import require_roles
from jyt_admin.db.base import to_dict
from jyt_admin.db.repositories.workflow_executions import WorkflowExecutionRepo
from jyt_admin.errors import not_found

router = APIRouter(
    prefix="/admin/workflows",
    tags=["workflows"],
    dependencies=[Depends(require_roles("admin"))],
)


@router.get("/executions")
async def list_workflow_executions(
    workflow_name: str, limit: int = 50, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    rows = await WorkflowExecutionRepo(session).list_for_workflow(
        workflow_name, limit=max(1, min(limit, 200))
    )
    return {"executions": [to_dict(r) for r in rows]}


@router.get("/executions/{transaction_id}")
async def retrieve_workflow_execution(
    transaction_id: uuid.UUID, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    execution = await WorkflowExecutionRepo(session).get(transaction_id)
    if execution is None:
        raise not_found("WorkflowExecution", transaction_id)
    return {"execution": to_dict(execution)}
