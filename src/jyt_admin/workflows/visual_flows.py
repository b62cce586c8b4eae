"""
jyt_admin.workflows.visual_flows

Visual-flow lifecycle workflows.

Responsibilities:
- create / update / delete / duplicate flows with compensating steps
- activate / deactivate (activation re-validates the definition and trigger config)
- execute a flow through the flow executor inside a workflow transaction
"""

from __future__ import annotations

from typing import Any

from jyt_admin.db.base import to_dict, utcnow
from jyt_admin.db.models import FlowStatus, FlowTriggerType, VisualFlow
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.db.repositories.visual_flows import (
    CONNECTION_FIELDS,
    OPERATION_FIELDS,
    VisualFlowRepo,
)
from jyt_admin.errors import AppError, ErrorType, invalid_data
from jyt_admin.flows.cron import CronError, CronExpression
from jyt_admin.flows.executor import FlowExecutor
from jyt_admin.flows.validation import assert_valid_flow
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.crud import as_uuid
from jyt_admin.workflows.engine import StepResponse, Workflow, create_step, node

FLOW_FIELDS = (
    "name",
    "description",
    "status",
    "icon",
    "color",
    "trigger_type",
    "trigger_config",
    "canvas_state",
    "metadata",
)


def _definition(data: dict[str, Any]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    return list(data.get("operations") or []), list(data.get("connections") or [])


def _strip(rows: list[dict[str, Any]], fields: tuple[str, ...]) -> list[dict[str, Any]]:
    return [{k: r[k] for k in fields if k in r} for r in rows]


def validate_trigger(trigger_type: str, config: dict[str, Any] | None) -> None:
    config = config or {}
    if trigger_type == FlowTriggerType.schedule:
        if "cron" in config:
            try:
                CronExpression.parse(str(config["cron"]))
            except CronError as e:
                raise invalid_data(f"Invalid cron expression: {e}") from e
        elif not isinstance(config.get("interval_seconds"), int | float) or (
            config["interval_seconds"] <= 0
        ):
            raise invalid_data("Schedule flows need trigger_config.cron or interval_seconds > 0")
    if trigger_type == FlowTriggerType.event and not config.get("event"):
        raise invalid_data("Event flows need trigger_config.event")


# --- create ------------------------------------------------------------------


async def _validate_definition(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    operations, connections = _definition(input)
    assert_valid_flow(operations, connections)
    data = input.get("flow", {})
    if "trigger_type" in data:
        validate_trigger(str(data["trigger_type"]), data.get("trigger_config"))
    return {"operations": len(operations), "connections": len(connections)}


async def _create_flow(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    flow = await CrudRepo(ctx.session, VisualFlow).create(
        {k: v for k, v in input.get("flow", {}).items() if k in FLOW_FIELDS}
    )
    operations, connections = _definition(input)
    repo = VisualFlowRepo(ctx.session)
    await repo.add_definition(
        flow.id, _strip(operations, OPERATION_FIELDS), _strip(connections, CONNECTION_FIELDS)
    )
    return StepResponse(await repo.details(flow), compensate_input=str(flow.id))


async def _remove_flow(id: Any, ctx: StepContext) -> None:
    flow_id = as_uuid(id)
    await VisualFlowRepo(ctx.session).delete_definition(flow_id)
    await CrudRepo(ctx.session, VisualFlow).delete(flow_id)


validate_definition_step = create_step("validate-visual-flow", _validate_definition)
create_flow_step = create_step("create-visual-flow", _create_flow, _remove_flow)

create_visual_flow_workflow = Workflow(
    "create-visual-flow",
    [node(validate_definition_step), node(create_flow_step)],
)


# --- update ------------------------------------------------------------------


async def _validate_update(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    flow_id = as_uuid(input["id"])
    flow = await CrudRepo(ctx.session, VisualFlow).retrieve(flow_id)
    repo = VisualFlowRepo(ctx.session)
    operations = input.get("operations")
    connections = input.get("connections")
    if operations is not None or connections is not None:
        if operations is None:
            operations = [to_dict(o) for o in await repo.operations(flow_id)]
        if connections is None:
            connections = [to_dict(c) for c in await repo.connections(flow_id)]
        assert_valid_flow(operations, connections)
    data = input.get("flow", {})
    if "trigger_type" in data or "trigger_config" in data:
        validate_trigger(
            str(data.get("trigger_type", flow.trigger_type)),
            data.get("trigger_config", flow.trigger_config),
        )
    return {"id": str(flow_id)}


async def _update_flow(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    flow_id = as_uuid(input["id"])
    crud = CrudRepo(ctx.session, VisualFlow)
    repo = VisualFlowRepo(ctx.session)
    values = {k: v for k, v in input.get("flow", {}).items() if k in FLOW_FIELDS}
    flow = await crud.retrieve(flow_id)
    previous = {
        "id": str(flow_id),
        "values": crud.snapshot(flow, values.keys()),
        "operations": None,
        "connections": None,
    }

    replace_ops = input.get("operations") is not None
    replace_conns = input.get("connections") is not None
    if replace_ops or replace_conns:
        current_ops = [to_dict(o) for o in await repo.operations(flow_id)]
        current_conns = [to_dict(c) for c in await repo.connections(flow_id)]
        previous["operations"] = current_ops
        previous["connections"] = current_conns
        await repo.replace_definition(
            flow_id,
            _strip(input["operations"], OPERATION_FIELDS) if replace_ops else current_ops,
            _strip(input["connections"], CONNECTION_FIELDS) if replace_conns else current_conns,
        )
    if values:
        flow = await crud.update(flow_id, values)
    return StepResponse(await repo.details(flow), compensate_input=previous)


async def _restore_flow(previous: dict[str, Any], ctx: StepContext) -> None:
    flow_id = as_uuid(previous["id"])
    if previous.get("values"):
        await CrudRepo(ctx.session, VisualFlow).update(flow_id, previous["values"])
    if previous.get("operations") is not None:
        await VisualFlowRepo(ctx.session).replace_definition(
            flow_id, previous["operations"], previous["connections"] or []
        )


update_visual_flow_workflow = Workflow(
    "update-visual-flow",
    [
        node(create_step("validate-visual-flow-update", _validate_update)),
        node(create_step("update-visual-flow", _update_flow, _restore_flow)),
    ],
)


# --- delete ------------------------------------------------------------------


async def _soft_delete_flow(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    flow_id = as_uuid(input["id"])
    repo = CrudRepo(ctx.session, VisualFlow)
    flow = await repo.retrieve(flow_id)
    previous_status = str(flow.status)
    await repo.update(flow_id, {"status": FlowStatus.inactive})
    await repo.soft_delete(flow_id)
    return StepResponse(
        {"id": str(flow_id), "deleted": True},
        compensate_input={"id": str(flow_id), "status": previous_status},
    )


async def _undelete_flow(data: dict[str, Any], ctx: StepContext) -> None:
    repo = CrudRepo(ctx.session, VisualFlow)
    flow_id = as_uuid(data["id"])
    await repo.restore(flow_id)
    await repo.update(flow_id, {"status": data["status"]})


delete_visual_flow_workflow = Workflow(
    "delete-visual-flow",
    [node(create_step("delete-visual-flow", _soft_delete_flow, _undelete_flow))],
)


# --- duplicate ---------------------------------------------------------------


async def _duplicate_flow(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    source_id = as_uuid(input["id"])
    crud = CrudRepo(ctx.session, VisualFlow)
    repo = VisualFlowRepo(ctx.session)
    source = await crud.retrieve(source_id)
    values = {k: v for k, v in to_dict(source).items() if k in FLOW_FIELDS}
    values["name"] = input.get("name") or f"{source.name} (Copy)"
    values["status"] = FlowStatus.draft
    copy = await crud.create(values)
    await repo.add_definition(
        copy.id,
        _strip([to_dict(o) for o in await repo.operations(source_id)], OPERATION_FIELDS),
        _strip([to_dict(c) for c in await repo.connections(source_id)], CONNECTION_FIELDS),
    )
    return StepResponse(await repo.details(copy), compensate_input=str(copy.id))


duplicate_visual_flow_workflow = Workflow(
    "duplicate-visual-flow",
    [node(create_step("duplicate-visual-flow", _duplicate_flow, _remove_flow))],
)


# --- activate / deactivate ---------------------------------------------------


async def _set_status(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    flow_id = as_uuid(input["id"])
    target = FlowStatus(input["status"])
    crud = CrudRepo(ctx.session, VisualFlow)
    flow = await crud.retrieve(flow_id)
    if target == FlowStatus.active:
        repo = VisualFlowRepo(ctx.session)
        operations = [to_dict(o) for o in await repo.operations(flow_id)]
        if not operations:
            raise AppError(ErrorType.not_allowed, "A flow needs at least one operation")
        assert_valid_flow(operations, [to_dict(c) for c in await repo.connections(flow_id)])
        validate_trigger(str(flow.trigger_type), flow.trigger_config)
    previous = str(flow.status)
    flow = await crud.update(flow_id, {"status": target})
    if ctx.log is not None:
        ctx.log.info("visual_flow_status_changed", flow_id=str(flow_id), status=str(target))
    return StepResponse(flow, compensate_input={"id": str(flow_id), "status": previous})


async def _reset_status(data: dict[str, Any], ctx: StepContext) -> None:
    await CrudRepo(ctx.session, VisualFlow).update(as_uuid(data["id"]), {"status": data["status"]})


set_visual_flow_status_workflow = Workflow(
    "set-visual-flow-status",
    [node(create_step("set-visual-flow-status", _set_status, _reset_status))],
)


# --- execute -----------------------------------------------------------------


async def _run_flow(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    flow_id = as_uuid(input["id"])
    expected = input.get("trigger_type")
    executor = FlowExecutor(ctx)
    if expected:
        flow = await executor.load_flow(flow_id)
        if flow.trigger_type != expected:
            raise AppError(
                ErrorType.not_allowed,
                f"Flow {flow_id} is not triggered by {expected}",
            )
    return await executor.execute(
        flow_id,
        payload=input.get("payload") or {},
        event=input.get("event"),
        triggered_by=input.get("triggered_by") or ctx.actor,
    )


execute_visual_flow_workflow = Workflow(
    "execute-visual-flow",
    [node(create_step("run-visual-flow", _run_flow))],
)


def schedule_payload(flow: VisualFlow) -> dict[str, Any]:
    return {
        "id": str(flow.id),
        "payload": {"scheduled_at": utcnow().isoformat()},
        "event": "schedule",
        "triggered_by": "scheduler",
    }


# --- Module Notes -----------------------------------------------------------
# Duplicates keep operation keys; connections reference keys, so the copy is wired the
# same way without remapping ids.
