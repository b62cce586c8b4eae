"""
jyt_admin.workflows.production_runs

Production run lifecycle workflows.

Responsibilities:
- Create runs from a design snapshot (pending review).
- Approve runs into per-partner child runs.
- Dispatch runs to partners: policy check, wait for task template selection, create tasks,
  mark `sent_to_partner`, emit the `production_run.sent_to_partner` event.
- Partner acceptance and completion with cascade to the parent run.
- Cancellation (parent and children).

Status flow: pending_review -> approved -> sent_to_partner -> in_progress -> completed,
with `cancelled` reachable from any non-final status.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.db.base import to_dict, utcnow
from jyt_admin.db.models import (
    Design,
    Partner,
    ProductionRun,
    ProductionRunStatus,
    Task,
    TaskStatus,
    TaskTemplate,
)
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.errors import AppError, ErrorType, invalid_data, not_allowed, not_found
from jyt_admin.events import emit_event
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.crud import as_uuid
from jyt_admin.workflows.engine import (
    StepResponse,
    Workflow,
    WorkflowSuspended,
    create_step,
    node,
    result_of,
)

SENT_TO_PARTNER_EVENT = "production_run.sent_to_partner"

_FINAL = {ProductionRunStatus.completed, ProductionRunStatus.cancelled}


def _runs(ctx: StepContext) -> CrudRepo[ProductionRun]:
    return CrudRepo(ctx.session, ProductionRun)


async def _restore_run(data: dict[str, Any], ctx: StepContext) -> None:
    if data.get("id") is None:
        return
    await _runs(ctx).update(as_uuid(data["id"]), data["previous"])


async def list_child_runs(session: AsyncSession, parent_id: uuid.UUID) -> list[ProductionRun]:
    stmt = (
        select(ProductionRun)
        .where(ProductionRun.parent_run_id == parent_id, ProductionRun.deleted_at.is_(None))
        .order_by(ProductionRun.created_at)
    )
    return list((await session.execute(stmt)).scalars().all())


async def list_run_tasks(session: AsyncSession, run_id: uuid.UUID) -> list[Task]:
    stmt = (
        select(Task)
        .where(Task.production_run_id == run_id, Task.deleted_at.is_(None))
        .order_by(Task.created_at)
    )
    return list((await session.execute(stmt)).scalars().all())


# --- create ------------------------------------------------------------------


async def _get_design_snapshot(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    design = await CrudRepo(ctx.session, Design).get(as_uuid(input["design_id"]))
    if design is None:
        raise not_found("Design", input["design_id"])
    captured_at = utcnow()
    return {
        "captured_at": captured_at.isoformat(),
        "design": to_dict(design, exclude={"deleted_at"}),
        "provenance": {"source": "design", "design_id": str(design.id), "actor": ctx.actor},
    }


async def _create_run(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    data, snapshot = input["data"], input["snapshot"]
    if data.get("partner_id"):
        if await CrudRepo(ctx.session, Partner).get(as_uuid(data["partner_id"])) is None:
            raise not_found("Partner", data["partner_id"])
    run = await _runs(ctx).create(
        {
            "design_id": data["design_id"],
            "partner_id": data.get("partner_id"),
            "quantity": data.get("quantity"),
            "role": data.get("role"),
            "status": ProductionRunStatus.pending_review,
            "snapshot": snapshot,
            "captured_at": snapshot["captured_at"],
            "metadata": dict(data.get("metadata") or {}),
        }
    )
    return StepResponse(run, compensate_input=str(run.id))


async def _soft_delete_run(id: str, ctx: StepContext) -> None:
    await _runs(ctx).soft_delete(as_uuid(id))


async def _link_tasks(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    run_id = as_uuid(input["run_id"])
    linked: list[str] = []
    repo = CrudRepo(ctx.session, Task)
    for task_id in input["task_ids"]:
        task = await repo.retrieve(as_uuid(task_id))
        task.production_run_id = run_id
        linked.append(str(task.id))
    await ctx.session.flush()
    return StepResponse({"task_ids": linked}, compensate_input=linked)


async def _unlink_tasks(task_ids: list[str], ctx: StepContext) -> None:
    repo = CrudRepo(ctx.session, Task)
    for task_id in task_ids:
        task = await repo.get(as_uuid(task_id))
        if task is not None:
            task.production_run_id = None
    await ctx.session.flush()


get_design_snapshot_step = create_step("get-design-snapshot", _get_design_snapshot)
create_production_run_step = create_step("create-production-run", _create_run, _soft_delete_run)
link_production_run_tasks_step = create_step(
    "link-production-run-tasks", _link_tasks, _unlink_tasks
)

create_production_run_workflow = Workflow(
    "create-production-run",
    [
        node(get_design_snapshot_step),
        node(
            create_production_run_step,
            input=lambda s: {"data": s["input"], "snapshot": s["results"]["get-design-snapshot"]},
        ),
        node(
            link_production_run_tasks_step,
            input=lambda s: {
                "run_id": s["results"]["create-production-run"]["id"],
                "task_ids": s["input"].get("task_ids") or [],
            },
            when=lambda s: bool(s["input"].get("task_ids")),
        ),
    ],
    result=result_of("create-production-run"),
)


# --- approve -----------------------------------------------------------------


async def _validate_approval(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    run = await _runs(ctx).retrieve(as_uuid(input["id"]))
    if run.status != ProductionRunStatus.pending_review:
        raise not_allowed(f"Production run {run.id} is {run.status} and cannot be approved")
    if run.parent_run_id is not None:
        raise not_allowed("Child production runs are approved through their parent")

    assignments = list(input.get("assignments") or [])
    partners = CrudRepo(ctx.session, Partner)
    for assignment in assignments:
        if await partners.get(as_uuid(assignment["partner_id"])) is None:
            raise not_found("Partner", assignment["partner_id"])
    if not assignments and run.partner_id is None:
        raise invalid_data("At least one partner assignment is required")
    return to_dict(run)


async def _create_child_runs(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    parent = input["parent"]
    repo = _runs(ctx)
    children = []
    for assignment in input["assignments"]:
        child = await repo.create(
            {
                "design_id": parent["design_id"],
                "partner_id": assignment["partner_id"],
                "parent_run_id": parent["id"],
                "quantity": assignment.get("quantity"),
                "role": assignment.get("role"),
                "status": ProductionRunStatus.approved,
                "snapshot": parent["snapshot"],
                "captured_at": parent["captured_at"],
                "metadata": {"assignment": dict(assignment)},
            }
        )
        children.append(child)
    return StepResponse(children, compensate_input=[str(c.id) for c in children])


async def _delete_child_runs(ids: list[str], ctx: StepContext) -> None:
    repo = _runs(ctx)
    for id in ids:
        await repo.delete(as_uuid(id))


async def _set_run_status(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    repo = _runs(ctx)
    id = as_uuid(input["id"])
    row = await repo.retrieve(id)
    previous = repo.snapshot(row, ["status", "metadata"])
    metadata = {**(row.metadata_ or {}), **(input.get("metadata") or {})}
    row = await repo.update(id, {"status": input["status"], "metadata": metadata})
    return StepResponse(row, compensate_input={"id": str(id), "previous": previous})


validate_approval_step = create_step("validate-production-run-approval", _validate_approval)
create_child_runs_step = create_step(
    "create-child-production-runs", _create_child_runs, _delete_child_runs
)
set_run_status_step = create_step("set-production-run-status", _set_run_status, _restore_run)

approve_production_run_workflow = Workflow(
    "approve-production-run",
    [
        node(validate_approval_step),
        node(
            create_child_runs_step,
            input=lambda s: {
                "parent": s["results"]["validate-production-run-approval"],
                "assignments": s["input"].get("assignments") or [],
            },
        ),
        node(
            set_run_status_step,
            key="approve-parent",
            input=lambda s: {
                "id": s["input"]["id"],
                "status": ProductionRunStatus.approved,
                "metadata": {"approval": {"approved_at": utcnow().isoformat()}},
            },
        ),
    ],
    result=lambda s: {
        "parent": s["results"]["approve-parent"],
        "children": s["results"]["create-child-production-runs"],
    },
)


# --- dispatch ------------------------------------------------------------------


async def _assert_can_send(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    run = await _runs(ctx).retrieve(as_uuid(input["id"]))
    if run.status != ProductionRunStatus.approved:
        raise not_allowed(
            f"Production run {run.id} must be approved before dispatch (current: {run.status})"
        )
    if run.partner_id is None:
        raise not_allowed(f"Production run {run.id} has no partner assigned")
    if await CrudRepo(ctx.session, Design).get(run.design_id) is None:
        raise not_found("Design", run.design_id)
    return to_dict(run)


async def _await_templates(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    decision = input.get("resume")
    if not decision:
        raise WorkflowSuspended(
            "Awaiting task template selection",
            {"production_run_id": input["id"]},
        )
    names = [str(n) for n in decision.get("template_names") or []]
    if not names:
        raise invalid_data("template_names must contain at least one template")
    return {"template_names": names}


async def _create_tasks(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    run = input["run"]
    names = input["template_names"]
    stmt = select(TaskTemplate).where(
        TaskTemplate.name.in_(names), TaskTemplate.deleted_at.is_(None)
    )
    templates = {t.name: t for t in (await ctx.session.execute(stmt)).scalars().all()}
    missing = [n for n in names if n not in templates]
    if missing:
        raise invalid_data(f"Missing task templates: {', '.join(missing)}")

    repo = CrudRepo(ctx.session, Task)
    link = {
        "production_run_id": run["id"],
        "partner_id": run["partner_id"],
        "design_id": run["design_id"],
    }
    parent = await repo.create(
        {
            "title": f"production-run-{run['id']}",
            "description": f"Production run dispatched to partner {run['partner_id']}",
            "status": TaskStatus.pending,
            "metadata": {"transaction_id": str(ctx.transaction_id)},
            **link,
        }
    )
    tasks = [parent]
    for name in names:
        template = templates[name]
        tasks.append(
            await repo.create(
                {
                    "title": template.name,
                    "description": template.description,
                    "priority": template.priority,
                    "template_name": template.name,
                    "parent_task_id": parent.id,
                    "status": TaskStatus.pending,
                    **link,
                }
            )
        )
    return StepResponse(tasks, compensate_input=[str(t.id) for t in tasks])


async def _delete_tasks(ids: list[str], ctx: StepContext) -> None:
    repo = CrudRepo(ctx.session, Task)
    # Children first; they reference the parent task.
    for id in reversed(ids):
        await repo.delete(as_uuid(id))


async def _emit_sent(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    await emit_event(ctx, SENT_TO_PARTNER_EVENT, input)
    return {"event": SENT_TO_PARTNER_EVENT}


assert_can_send_step = create_step("assert-can-send-to-production", _assert_can_send)
await_templates_step = create_step("await-task-template-selection", _await_templates)
create_tasks_step = create_step("create-production-tasks", _create_tasks, _delete_tasks)
emit_sent_step = create_step("emit-sent-to-partner", _emit_sent)

dispatch_production_run_workflow = Workflow(
    "dispatch-production-run",
    [
        node(assert_can_send_step),
        node(
            await_templates_step,
            input=lambda s: {"id": s["input"]["id"], "resume": s.get("resume")},
        ),
        # The run may have changed while the workflow waited; check it again.
        node(assert_can_send_step, key="recheck-can-send-to-production"),
        node(
            create_tasks_step,
            input=lambda s: {
                "run": s["results"]["recheck-can-send-to-production"],
                **s["results"]["await-task-template-selection"],
            },
        ),
        node(
            set_run_status_step,
            key="mark-sent-to-partner",
            input=lambda s: {
                "id": s["input"]["id"],
                "status": ProductionRunStatus.sent_to_partner,
                "metadata": {
                    "dispatch": {
                        "sent_at": utcnow().isoformat(),
                        "transaction_id": s["transaction_id"],
                        "template_names": s["results"]["await-task-template-selection"][
                            "template_names"
                        ],
                    }
                },
            },
        ),
        node(
            emit_sent_step,
            input=lambda s: {
                "production_run_id": s["input"]["id"],
                "partner_id": s["results"]["recheck-can-send-to-production"]["partner_id"],
                "task_ids": [t["id"] for t in s["results"]["create-production-tasks"]],
            },
        ),
    ],
    result=lambda s: {
        "production_run": s["results"]["mark-sent-to-partner"],
        "tasks": s["results"]["create-production-tasks"],
    },
    store=True,
)


# --- partner acceptance / completion -------------------------------------------


async def _validate_partner_transition(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    run = await _runs(ctx).get(as_uuid(input["id"]))
    # Runs owned by other partners are reported as missing.
    if run is None or str(run.partner_id) != str(input["partner_id"]):
        raise not_found("ProductionRun", input["id"])
    expected = ProductionRunStatus(input["expected_status"])
    if run.status != expected:
        raise not_allowed(
            f"Production run {run.id} must be {expected} to be {input['action']} "
            f"(current: {run.status})"
        )
    return to_dict(run)


async def _cascade_parent(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    repo = _runs(ctx)
    parent = await repo.get(as_uuid(input["parent_run_id"]))
    if parent is None:
        return StepResponse(None, compensate_input={"id": None})

    target = ProductionRunStatus(input["status"])
    if target == ProductionRunStatus.completed:
        children = await list_child_runs(ctx.session, parent.id)
        done = all(c.status in _FINAL for c in children)
        if not done or parent.status in _FINAL:
            return StepResponse(to_dict(parent), compensate_input={"id": None})
    elif parent.status != ProductionRunStatus.approved:
        return StepResponse(to_dict(parent), compensate_input={"id": None})

    previous = repo.snapshot(parent, ["status"])
    parent = await repo.update(parent.id, {"status": target})
    return StepResponse(parent, compensate_input={"id": str(parent.id), "previous": previous})


validate_partner_transition_step = create_step(
    "validate-partner-transition", _validate_partner_transition
)
cascade_parent_step = create_step("cascade-parent-status", _cascade_parent, _restore_run)


def _partner_transition_workflow(
    name: str, *, action: str, expected: ProductionRunStatus, target: ProductionRunStatus
) -> Workflow:
    stamp_key = "accepted_at" if target == ProductionRunStatus.in_progress else "completed_at"
    section = "acceptance" if target == ProductionRunStatus.in_progress else "completion"
    return Workflow(
        name,
        [
            node(
                validate_partner_transition_step,
                input=lambda s: {
                    **s["input"],
                    "expected_status": expected,
                    "action": action,
                },
            ),
            node(
                set_run_status_step,
                key="transition-production-run",
                input=lambda s: {
                    "id": s["input"]["id"],
                    "status": target,
                    "metadata": {
                        section: {
                            stamp_key: utcnow().isoformat(),
                            "partner_id": str(s["input"]["partner_id"]),
                        }
                    },
                },
            ),
            node(
                cascade_parent_step,
                input=lambda s: {
                    "parent_run_id": s["results"]["validate-partner-transition"]["parent_run_id"],
                    "status": target,
                },
                when=lambda s: bool(
                    s["results"]["validate-partner-transition"].get("parent_run_id")
                ),
            ),
        ],
        result=result_of("transition-production-run"),
    )


accept_production_run_workflow = _partner_transition_workflow(
    "accept-production-run",
    action="accepted",
    expected=ProductionRunStatus.sent_to_partner,
    target=ProductionRunStatus.in_progress,
)

complete_production_run_workflow = _partner_transition_workflow(
    "complete-production-run",
    action="completed",
    expected=ProductionRunStatus.in_progress,
    target=ProductionRunStatus.completed,
)


# --- cancel --------------------------------------------------------------------


async def _cancel_runs(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    repo = _runs(ctx)
    run = await repo.retrieve(as_uuid(input["id"]))
    if run.status in _FINAL:
        raise not_allowed(f"Production run {run.id} is {run.status} and cannot be cancelled")

    previous: list[dict[str, Any]] = []
    children = await list_child_runs(ctx.session, run.id)
    targets = [run, *[c for c in children if c.status not in _FINAL]]
    for target in targets:
        previous.append({"id": str(target.id), "previous": repo.snapshot(target, ["status"])})
        await repo.update(target.id, {"status": ProductionRunStatus.cancelled})
    return StepResponse(run, compensate_input=previous)


async def _restore_cancelled(entries: list[dict[str, Any]], ctx: StepContext) -> None:
    for entry in entries:
        await _restore_run(entry, ctx)


cancel_production_run_step = create_step(
    "cancel-production-run", _cancel_runs, _restore_cancelled
)

cancel_production_run_workflow = Workflow(
    "cancel-production-run", [node(cancel_production_run_step)]
)


def ensure_dispatch_owner(execution_input: dict[str, Any] | None, run_id: uuid.UUID) -> None:
    if execution_input is None or str(execution_input.get("id")) != str(run_id):
        raise AppError(
            ErrorType.not_found,
            f"No dispatch transaction for production run {run_id}",
        )


# --- Module Notes -----------------------------------------------------------
# The dispatch workflow is stored: `start-dispatch` runs it until the template selection
# step suspends; `resume-dispatch` supplies `template_names` and finishes it.
