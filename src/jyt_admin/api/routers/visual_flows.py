"""
jyt_admin.api.routers.visual_flows

Visual automation flow endpoints.

Responsibilities:
- Flow CRUD, duplicate, activate/deactivate and canvas updates (all via workflows).
- Manual execution, execution history and per-operation logs.
- The editor metadata catalogue (operations, entities, triggerable flows, chain variables).
- The public webhook trigger (`/hooks/flows/{id}`) guarded by an optional shared secret.
"""

from __future__ import annotations

import hmac
import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED

from jyt_admin.api.crud_router import query_filters
from jyt_admin.api.deps import Paging, db_session, paging, system_runner, workflow_runner
from jyt_admin.api.schemas import (
    CanvasUpdate,
    DuplicateFlowRequest,
    ExecuteFlowRequest,
    VisualFlowCreate,
    VisualFlowUpdate,
)
from jyt_admin.auth.deps import require_roles
from jyt_admin.auth.models import Principal
from jyt_admin.db.base import to_dict
from jyt_admin.db.models import FlowStatus, FlowTriggerType, VisualFlow, VisualFlowExecution
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.db.repositories.visual_flows import VisualFlowRepo
from jyt_admin.errors import AppError, ErrorType, not_found
from jyt_admin.flows.operations import OPERATIONS, READABLE_ENTITIES
from jyt_admin.workflows.runner import WorkflowRunner
from jyt_admin.workflows.visual_flows import (
    FLOW_FIELDS,
    create_visual_flow_workflow,
    delete_visual_flow_workflow,
    duplicate_visual_flow_workflow,
    execute_visual_flow_workflow,
    set_visual_flow_status_workflow,
    update_visual_flow_workflow,
)

router = APIRouter(
    prefix="/admin/visual-flows",
    tags=["visual-flows"],
    dependencies=[Depends(require_roles("admin"))],
)

hooks_router = APIRouter(prefix="/hooks/flows", tags=["hooks"])

CHAIN_VARIABLES = [
    {"path": "$trigger.payload", "description": "Payload the flow was triggered with"},
    {"path": "$trigger.event", "description": "Trigger event name (manual, webhook, schedule)"},
    {"path": "$trigger.timestamp", "description": "ISO timestamp of the trigger"},
    {"path": "$accountability.triggered_by", "description": "Actor that started the execution"},
    {"path": "$env", "description": "Allow-listed environment variables"},
    {"path": "$last", "description": "Output of the previous operation"},
    {"path": "<operation_key>", "description": "Output of a specific operation"},
]


def _split(data: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = {"flow": {k: v for k, v in data.items() if k in FLOW_FIELDS}}
    for part in ("operations", "connections"):
        if part in data:
            payload[part] = data[part]
    return payload


@router.get("/metadata")
async def flow_metadata(session: AsyncSession = Depends(db_session)) -> dict[str, Any]:
    flows = await VisualFlowRepo(session).active_flows()
    return {
        "operations": [spec.catalogue_entry() for spec in OPERATIONS.values()],
        "entities": sorted(READABLE_ENTITIES),
        "flows": [
            {"id": str(f.id), "name": f.name, "trigger_type": str(f.trigger_type)} for f in flows
        ],
        "trigger_types": [t.value for t in FlowTriggerType],
        "variables": CHAIN_VARIABLES,
        "interpolation": {
            "syntax": "{{ path }}",
            "example": "{{ $trigger.payload.email }}",
            "note": "A value that is exactly one template keeps the resolved type",
        },
    }


@router.get("")
async def list_flows(
    request: Request,
    page: Paging = Depends(paging),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    rows, count = await CrudRepo(session, VisualFlow).list_and_count(
        query_filters(request, ("status", "trigger_type")),
        offset=page.offset,
        limit=page.limit,
    )
    return {
        "flows": [to_dict(r) for r in rows],
        "count": count,
        "offset": page.offset,
        "limit": page.limit,
    }


@router.post("", status_code=HTTP_201_CREATED)
async def create_flow(
    body: VisualFlowCreate, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(create_visual_flow_workflow, _split(body.model_dump(mode="json")))
    return {"flow": result.result}


@router.get("/{id}")
async def retrieve_flow(
    id: uuid.UUID, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    flow = await CrudRepo(session, VisualFlow).retrieve(id)
    return {"flow": await VisualFlowRepo(session).details(flow)}


@router.put("/{id}")
async def update_flow(
    id: uuid.UUID,
    body: VisualFlowUpdate,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    payload = _split(body.model_dump(mode="json", exclude_unset=True))
    result = await runner.run(update_visual_flow_workflow, {"id": str(id), **payload})
    return {"flow": result.result}


@router.delete("/{id}")
async def delete_flow(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(delete_visual_flow_workflow, {"id": str(id)})
    return result.result


@router.post("/{id}/duplicate", status_code=HTTP_201_CREATED)
async def duplicate_flow(
    id: uuid.UUID,
    body: DuplicateFlowRequest | None = None,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    name = body.name if body else None
    result = await runner.run(duplicate_visual_flow_workflow, {"id": str(id), "name": name})
    return {"flow": result.result}


@router.post("/{id}/activate")
async def activate_flow(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(
        set_visual_flow_status_workflow, {"id": str(id), "status": FlowStatus.active}
    )
    return {"flow": result.result}


@router.post("/{id}/deactivate")
async def deactivate_flow(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(
        set_visual_flow_status_workflow, {"id": str(id), "status": FlowStatus.inactive}
    )
    return {"flow": result.result}


@router.put("/{id}/canvas")
async def update_canvas(
    id: uuid.UUID,
    body: CanvasUpdate,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    result = await runner.run(
        update_visual_flow_workflow,
        {"id": str(id), "flow": {"canvas_state": body.canvas_state}},
    )
    return {"flow": result.result}


@router.post("/{id}/execute")
async def execute_flow(
    id: uuid.UUID,
    body: ExecuteFlowRequest | None = None,
    principal: Principal = Depends(require_roles("admin")),
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    result = await runner.run(
        execute_visual_flow_workflow,
        {
            "id": str(id),
            "payload": body.payload if body else {},
            "event": "manual",
            "triggered_by": principal.actor,
        },
    )
    return result.result


@router.get("/{id}/executions")
async def list_executions(
    id: uuid.UUID,
    page: Paging = Depends(paging),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    await CrudRepo(session, VisualFlow).retrieve(id)
    rows = await VisualFlowRepo(session).list_executions(
        id, limit=page.limit, offset=page.offset
    )
    return {
        "executions": [to_dict(r) for r in rows],
        "offset": page.offset,
        "limit": page.limit,
    }


@router.get("/{id}/executions/{execution_id}")
async def retrieve_execution(
    id: uuid.UUID,
    execution_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    execution = await session.get(VisualFlowExecution, execution_id)
    if execution is None or execution.flow_id != id:
        raise not_found("VisualFlowExecution", execution_id)
    logs = await VisualFlowRepo(session).execution_logs(execution_id)
    return {"execution": {**to_dict(execution), "logs": [to_dict(log) for log in logs]}}


# --- webhook trigger -------------------------------------------------------------


@hooks_router.post("/{id}")
async def trigger_flow_webhook(
    id: uuid.UUID,
    payload: dict[str, Any] | None = Body(default=None),
    x_flow_secret: str | None = Header(default=None),
    runner: WorkflowRunner = Depends(system_runner),
) -> dict[str, Any]:
    flow = await CrudRepo(runner.session, VisualFlow).get(id)
    if flow is None or flow.trigger_type != FlowTriggerType.webhook:
        raise not_found("VisualFlow", id)
    secret = (flow.trigger_config or {}).get("secret")
    if secret and not hmac.compare_digest(str(secret), x_flow_secret or ""):
        raise AppError(ErrorType.unauthorized, "Invalid flow secret")
    result = await runner.run(
        execute_visual_flow_workflow,
        {
            "id": str(id),
            "payload": payload or {},
            "event": "webhook",
            "triggered_by": "webhook",
            "trigger_type": FlowTriggerType.webhook,
        },
    )
    return result.result


# --- Module Notes -----------------------------------------------------------
# `/metadata` is registered before `/{id}` so it is not captured as a flow id.
