from __future__ import annotations

from typing import Any

import pytest
from fastapi import FastAPI
from sqlalchemy import select

from jyt_admin.db.models import Partner, WorkflowStatus
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.db.repositories.workflow_executions import WorkflowExecutionRepo
from jyt_admin.errors import AppError, invalid_data
from jyt_admin.settings import Settings
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.crud import as_uuid
from jyt_admin.workflows.engine import (
    StepResponse,
    Workflow,
    WorkflowSuspended,
    create_step,
    node,
)
from jyt_admin.workflows.reducers import append_entries, merge_dicts
from jyt_admin.workflows.runner import WorkflowRunner


async def _create_partner(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    row = await CrudRepo(ctx.session, Partner).create(input)
    return StepResponse(row, compensate_input=str(row.id))


async def _delete_partner(id: str, ctx: StepContext) -> None:
    await CrudRepo(ctx.session, Partner).delete(as_uuid(id))


async def _explode(input: Any, ctx: StepContext) -> None:
    raise invalid_data("boom")


async def _wait_for_go(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    if not input.get("resume"):
        raise WorkflowSuspended("Waiting for go", {"hint": "send go"})
    return {"go": input["resume"]["go"]}


create_partner = create_step("create-partner", _create_partner, _delete_partner)

failing = Workflow(
    "create-then-fail",
    [node(create_partner), node(create_step("explode", _explode))],
)

suspending = Workflow(
    "create-then-wait",
    [
        node(create_partner),
        node(
            create_step("wait-for-go", _wait_for_go),
            input=lambda s: {"resume": s.get("resume")},
        ),
    ],
    result=lambda s: {
        "partner": s["results"]["create-partner"],
        "go": s["results"]["wait-for-go"]["go"],
    },
    store=True,
)


async def _partner_count(app: FastAPI) -> int:
    async with app.state.sessionmaker() as session:
        return len((await session.execute(select(Partner))).scalars().all())


@pytest.mark.asyncio
async def test_failed_step_compensates_earlier_steps(app: FastAPI, settings: Settings) -> None:
    async with app.state.sessionmaker() as session:
        runner = WorkflowRunner(session=session, settings=settings, actor="tester")
        with pytest.raises(AppError) as exc:
            await runner.run(failing, {"name": "Loom", "handle": "loom"})
        assert exc.value.message == "boom"

        result = await runner.run(failing, {"name": "Loom", "handle": "loom"}, throw_on_error=False)
        assert result.status == WorkflowStatus.failed
        assert result.errors[0] == {"type": "invalid_data", "message": "boom"}

    assert await _partner_count(app) == 0


@pytest.mark.asyncio
async def test_suspend_and_resume(app: FastAPI, settings: Settings) -> None:
    async with app.state.sessionmaker() as session:
        runner = WorkflowRunner(session=session, settings=settings, actor="tester")
        started = await runner.run(suspending, {"name": "Loom", "handle": "loom"})
        assert started.status == WorkflowStatus.waiting
        assert started.waiting == {"reason": "Waiting for go", "payload": {"hint": "send go"}}

        execution = await WorkflowExecutionRepo(session).get(started.transaction_id)
        assert execution is not None
        assert execution.status == WorkflowStatus.waiting
        assert execution.actor == "tester"
        assert "create-partner" in execution.results

    # The first step's write is committed while the workflow waits.
    assert await _partner_count(app) == 1

    async with app.state.sessionmaker() as session:
        runner = WorkflowRunner(session=session, settings=settings)
        finished = await runner.resume(suspending, started.transaction_id, {"go": "yes"})
        assert finished.status == WorkflowStatus.completed
        assert finished.result["go"] == "yes"
        assert finished.result["partner"]["handle"] == "loom"

        with pytest.raises(AppError) as exc:
            await runner.resume(suspending, started.transaction_id, {"go": "again"})
        assert exc.value.type == "not_allowed"

    # Resuming does not re-run the completed step.
    assert await _partner_count(app) == 1


@pytest.mark.asyncio
async def test_unstored_workflow_cannot_suspend(app: FastAPI, settings: Settings) -> None:
    unstored = Workflow("wait-unstored", suspending.nodes)
    async with app.state.sessionmaker() as session:
        runner = WorkflowRunner(session=session, settings=settings)
        with pytest.raises(AppError) as exc:
            await runner.run(unstored, {"name": "Loom", "handle": "loom"})
        assert exc.value.type == "unexpected_state"

    assert await _partner_count(app) == 0


def test_workflow_rejects_duplicate_step_keys() -> None:
    with pytest.raises(ValueError):
        Workflow("dupes", [node(create_partner), node(create_partner)])


def test_state_reducers_keep_earlier_entries() -> None:
    results = merge_dicts({"create-partner": {"id": "p-1"}}, {"fail": None})
    assert results == {"create-partner": {"id": "p-1"}, "fail": None}
    assert merge_dicts(None, {"a": 1}) == {"a": 1}
    assert merge_dicts({"a": 1}, {"a": 2}) == {"a": 2}

    log = append_entries([{"node": "first"}], [{"node": "second"}])
    assert [entry["node"] for entry in log] == ["first", "second"]
    assert append_entries(None, None) == []
