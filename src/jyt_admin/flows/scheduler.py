"""
jyt_admin.flows.scheduler

Schedule trigger loop for visual flows.

Responsibilities:
- Poll active `schedule` flows once per tick and compute each flow's next run
  (`trigger_config.interval_seconds` or a 5-field `trigger_config.cron`).
- Execute due flows through the `execute-visual-flow` workflow, one session per run.
- Run periodic jobs (e.g. the publishing-campaign tick) on the same loop.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jyt_admin.db.base import utcnow
from jyt_admin.db.models import FlowTriggerType, VisualFlow
from jyt_admin.db.repositories.visual_flows import VisualFlowRepo
from jyt_admin.flows.cron import CronError, CronExpression
from jyt_admin.observability.logging import get_logger
from jyt_admin.settings import Settings
from jyt_admin.workflows.context import Clients
from jyt_admin.workflows.runner import WorkflowRunner
from jyt_admin.workflows.visual_flows import execute_visual_flow_workflow, schedule_payload

log = get_logger(__name__)

PeriodicJob = Callable[[WorkflowRunner], Awaitable[Any]]


def next_run(flow: VisualFlow, after: datetime) -> datetime | None:
    config = flow.trigger_config or {}
    if config.get("cron"):
        try:
            return CronExpression.parse(str(config["cron"])).next_after(after)
        except CronError as e:
            log.warning("flow_schedule_invalid", flow_id=str(flow.id), error=str(e))
            return None
    interval = config.get("interval_seconds")
    if isinstance(interval, int | float) and interval > 0:
        return after + timedelta(seconds=interval)
    return None


class FlowScheduler:
    def __init__(
        self,
        *,
        sessionmaker: async_sessionmaker[AsyncSession],
        settings: Settings,
        clients: Clients | None = None,
        jobs: Sequence[PeriodicJob] = (),
    ) -> None:
        self._sessionmaker = sessionmaker
        self._settings = settings
        self._clients = clients or Clients()
        self._jobs = list(jobs)
        self._next_run: dict[uuid.UUID, datetime] = {}
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        log.info("flow_scheduler_started", tick_seconds=self._settings.flow_scheduler_tick_seconds)

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        log.info("flow_scheduler_stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
                await asyncio.sleep(self._settings.flow_scheduler_tick_seconds)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error("flow_scheduler_error", error=str(e), error_type=type(e).__name__)
                await asyncio.sleep(5)

    async def tick(self, now: datetime | None = None) -> list[uuid.UUID]:
        """
        Run every due schedule flow and every periodic job once. Returns the flows executed.
        """

        now = now or utcnow()
        async with self._sessionmaker() as session:
            flows = await VisualFlowRepo(session).active_flows(FlowTriggerType.schedule)

        active = {f.id for f in flows}
        for stale in set(self._next_run) - active:
            del self._next_run[stale]

        due: list[VisualFlow] = []
        for flow in flows:
            scheduled = self._next_run.get(flow.id)
            if scheduled is None:
                # First sighting: schedule from now rather than firing immediately.
                first = next_run(flow, now)
                if first is not None:
                    self._next_run[flow.id] = first
                continue
            if scheduled <= now:
                due.append(flow)

        for flow in due:
            await self._execute(flow)
            following = next_run(flow, now)
            if following is None:
                self._next_run.pop(flow.id, None)
            else:
                self._next_run[flow.id] = following

        for job in self._jobs:
            async with self._sessionmaker() as session:
                runner = WorkflowRunner(
                    session=session,
                    settings=self._settings,
                    clients=self._clients,
                    actor="scheduler",
                )
                try:
                    await job(runner)
                except Exception as e:
                    name = getattr(job, "__name__", str(job))
                    log.error("periodic_job_failed", job=name, error=str(e))
        return [f.id for f in due]

    async def _execute(self, flow: VisualFlow) -> None:
        async with self._sessionmaker() as session:
            runner = WorkflowRunner(
                session=session, settings=self._settings, clients=self._clients, actor="scheduler"
            )
            result = await runner.run(
                execute_visual_flow_workflow, schedule_payload(flow), throw_on_error=False
            )
        if result.errors:
            log.warning("scheduled_flow_failed", flow_id=str(flow.id), errors=result.errors)
        else:
            log.info("scheduled_flow_executed", flow_id=str(flow.id), result=result.result)

    def next_runs(self) -> dict[str, str]:
        return {str(k): v.isoformat() for k, v in self._next_run.items()}


# --- Module Notes -----------------------------------------------------------
# Next-run times live in memory; a restart re-schedules each flow from the first tick
# after startup.
