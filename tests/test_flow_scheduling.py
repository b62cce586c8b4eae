from __future__ import annotations

from datetime import datetime, timedelta

import httpx
import pytest
from fastapi import FastAPI
from sqlalchemy import select

from jyt_admin.db.models import VisualFlowExecution
from jyt_admin.flows.cron import CronError, CronExpression
from jyt_admin.flows.scheduler import FlowScheduler
from jyt_admin.settings import Settings
from jyt_admin.workflows.context import Clients


def test_cron_next_after() -> None:
    every_ten = CronExpression.parse("*/10 * * * *")
    assert every_ten.next_after(datetime(2026, 3, 1, 12, 4, 30)) == datetime(2026, 3, 1, 12, 10)

    weekday_mornings = CronExpression.parse("30 9 * * 1-5")
    # 2026-10-17 is a Saturday.
    assert weekday_mornings.next_after(datetime(2026, 10, 17, 8, 0)) == datetime(
        2026, 10, 19, 9, 30
    )

    leap = CronExpression.parse("0 0 29 2 *")
    assert leap.next_after(datetime(2026, 3, 1)) == datetime(2028, 2, 29, 0, 0)


def test_cron_day_fields_match_either_when_both_restricted() -> None:
    expr = CronExpression.parse("0 12 1 * 0")
    assert expr.matches(datetime(2026, 10, 1, 12, 0))  # first of month (Thursday)
    assert expr.matches(datetime(2026, 10, 4, 12, 0))  # Sunday
    assert not expr.matches(datetime(2026, 10, 5, 12, 0))


@pytest.mark.parametrize("expression", ["* * *", "61 * * * *", "*/0 * * * *", "a * * * *"])
def test_cron_rejects_malformed_expressions(expression: str) -> None:
    with pytest.raises(CronError):
        CronExpression.parse(expression)


@pytest.mark.asyncio
async def test_scheduler_runs_due_flows_and_jobs(
    app: FastAPI, client: httpx.AsyncClient, admin, settings: Settings
) -> None:
    r = await client.post(
        "/admin/visual-flows",
        json={
            "name": "Every minute",
            "trigger_type": "schedule",
            "trigger_config": {"interval_seconds": 60},
            "operations": [
                {
                    "operation_key": "stamp",
                    "operation_type": "set_data",
                    "options": {"data": "{{ $trigger.payload.scheduled_at }}"},
                }
            ],
            "connections": [{"source_id": "trigger", "target_id": "stamp"}],
        },
        headers=admin,
    )
    flow_id = r.json()["flow"]["id"]
    await client.post(f"/admin/visual-flows/{flow_id}/activate", headers=admin)

    ticks: list[str | None] = []

    async def job(runner) -> None:
        ticks.append(runner._actor)

    scheduler = FlowScheduler(
        sessionmaker=app.state.sessionmaker, settings=settings, clients=Clients(), jobs=[job]
    )
    now = datetime(2026, 10, 18, 12, 0)

    # First sighting only schedules.
    assert await scheduler.tick(now) == []
    assert await scheduler.tick(now + timedelta(seconds=30)) == []
    ran = await scheduler.tick(now + timedelta(seconds=61))
    assert [str(f) for f in ran] == [flow_id]
    assert ticks == ["scheduler", "scheduler", "scheduler"]

    async with app.state.sessionmaker() as session:
        executions = (await session.execute(select(VisualFlowExecution))).scalars().all()
    assert len(executions) == 1
    assert executions[0].triggered_by == "scheduler"
    assert executions[0].status == "completed"

    await client.post(f"/admin/visual-flows/{flow_id}/deactivate", headers=admin)
    assert await scheduler.tick(now + timedelta(minutes=5)) == []
    assert scheduler.next_runs() == {}
