"""
jyt_admin.workflows.runner

Workflow runner (transaction + compensation owner).

Responsibilities:
- Execute compiled workflow graphs with a commit checkpoint after every step.
- Persist checkpoints for stored (long-running) workflows.
- Roll back and run registered compensations in reverse order when a step fails.
- Suspend on `WorkflowSuspended` and resume by transaction id.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.db.models import WorkflowStatus
from jyt_admin.db.repositories.workflow_executions import WorkflowExecutionRepo
from jyt_admin.errors import AppError, ErrorType
from jyt_admin.observability.logging import bound_context, get_logger
from jyt_admin.settings import Settings
from jyt_admin.workflows.context import Clients, StepContext
from jyt_admin.workflows.engine import Workflow, WorkflowSuspended
from jyt_admin.workflows.reducers import append_entries, merge_dicts
from jyt_admin.workflows.state import WorkflowState, to_jsonable

log = get_logger(__name__)


@dataclass(slots=True)
class WorkflowResult:
    result: Any
    transaction_id: uuid.UUID
    status: WorkflowStatus
    errors: list[dict[str, Any]] = field(default_factory=list)
    waiting: dict[str, Any] | None = None


class WorkflowRunner:
    def __init__(
        self,
        *,
        session: AsyncSession,
        settings: Settings,
        clients: Clients | None = None,
        actor: str | None = None,
    ) -> None:
        self._session = session
        self._settings = settings
        self._clients = clients or Clients()
        self._actor = actor
        self._executions = WorkflowExecutionRepo(session)

    @property
    def session(self) -> AsyncSession:
        return self._session

    def context(self, transaction_id: uuid.UUID) -> StepContext:
        return StepContext(
            session=self._session,
            settings=self._settings,
            runner=self,
            transaction_id=transaction_id,
            actor=self._actor,
            clients=self._clients,
            log=log.bind(transaction_id=str(transaction_id)),
        )

    async def run(
        self,
        workflow: Workflow,
        input: dict[str, Any] | None = None,
        *,
        throw_on_error: bool = True,
        transaction_id: uuid.UUID | None = None,
    ) -> WorkflowResult:
        transaction_id = transaction_id or uuid.uuid4()
        state: WorkflowState = {
            "transaction_id": str(transaction_id),
            "input": to_jsonable(dict(input or {})),
            "results": {},
            "compensations": [],
            "log": [],
        }
        if workflow.store:
            await self._executions.create(
                transaction_id=transaction_id,
                workflow_name=workflow.name,
                input=state["input"],
                actor=self._actor,
            )
            await self._session.commit()
        return await self._execute(workflow, state, transaction_id, throw_on_error=throw_on_error)

    async def resume(
        self,
        workflow: Workflow,
        transaction_id: uuid.UUID,
        payload: dict[str, Any] | None = None,
        *,
        throw_on_error: bool = True,
    ) -> WorkflowResult:
        execution = await self._executions.get(transaction_id)
        if execution is None or execution.workflow_name != workflow.name:
            raise AppError(
                ErrorType.not_found,
                f"Workflow execution {transaction_id} for {workflow.name} was not found",
            )
        if execution.status != WorkflowStatus.waiting:
            raise AppError(
                ErrorType.not_allowed,
                f"Workflow execution {transaction_id} is {execution.status} and cannot be resumed",
            )

        state: WorkflowState = {
            "transaction_id": str(transaction_id),
            "input": dict(execution.input or {}),
            "results": dict(execution.results or {}),
            "compensations": list(execution.compensations or []),
            "log": [*(execution.log or []), {"event": "resumed"}],
            "resume": to_jsonable(dict(payload or {})),
        }
        await self._executions.checkpoint(
            transaction_id=transaction_id,
            status=WorkflowStatus.running,
            waiting_reason="",
            waiting_payload={},
            log=state["log"],
        )
        await self._session.commit()
        return await self._execute(workflow, state, transaction_id, throw_on_error=throw_on_error)

    async def _execute(
        self,
        workflow: Workflow,
        state: WorkflowState,
        transaction_id: uuid.UUID,
        *,
        throw_on_error: bool,
    ) -> WorkflowResult:
        ctx = self.context(transaction_id)
        graph = workflow.compile(ctx)
        last_state: WorkflowState = dict(state)  # type: ignore[assignment]

        with bound_context(workflow=workflow.name, transaction_id=str(transaction_id)):
            log.info("workflow_started")
            try:
                async for update in graph.astream(
                    dict(state),
                    stream_mode="updates",
                    config={"recursion_limit": len(workflow.nodes) + 5},
                ):
                    if not isinstance(update, dict) or not update:
                        continue
                    _, node_update = next(iter(update.items()))
                    last_state = _apply(last_state, node_update or {})
                    if workflow.store:
                        await self._checkpoint(transaction_id, last_state, WorkflowStatus.running)
                    await self._session.commit()
            except WorkflowSuspended as ws:
                await self._session.rollback()
                if not workflow.store:
                    await self._compensate(workflow, last_state, ctx)
                    raise AppError(
                        ErrorType.unexpected_state,
                        f"Workflow {workflow.name} cannot be suspended without a store",
                    ) from ws
                last_state = _apply(
                    last_state, {"log": [{"event": "suspended", "reason": ws.reason}]}
                )
                await self._checkpoint(transaction_id, last_state, WorkflowStatus.waiting)
                await self._executions.checkpoint(
                    transaction_id=transaction_id,
                    waiting_reason=ws.reason,
                    waiting_payload=to_jsonable(ws.payload),
                )
                await self._session.commit()
                log.info("workflow_suspended", reason=ws.reason)
                return WorkflowResult(
                    result=None,
                    transaction_id=transaction_id,
                    status=WorkflowStatus.waiting,
                    waiting={"reason": ws.reason, "payload": to_jsonable(ws.payload)},
                )
            except Exception as e:
                await self._session.rollback()
                log.warning("workflow_failed", error=str(e), error_type=type(e).__name__)
                compensation_errors = await self._compensate(workflow, last_state, ctx)
                if workflow.store:
                    status = (
                        WorkflowStatus.failed
                        if compensation_errors or not last_state.get("compensations")
                        else WorkflowStatus.compensated
                    )
                    await self._checkpoint(transaction_id, last_state, status)
                    await self._executions.checkpoint(transaction_id=transaction_id, error=str(e))
                    await self._session.commit()
                if throw_on_error:
                    raise
                return WorkflowResult(
                    result=None,
                    transaction_id=transaction_id,
                    status=WorkflowStatus.failed,
                    errors=[_error_entry(e), *compensation_errors],
                )

            if workflow.store:
                await self._checkpoint(transaction_id, last_state, WorkflowStatus.completed)
                await self._session.commit()
            log.info("workflow_completed")
            return WorkflowResult(
                result=workflow.result(last_state),
                transaction_id=transaction_id,
                status=WorkflowStatus.completed,
            )

    async def _compensate(
        self, workflow: Workflow, state: WorkflowState, ctx: StepContext
    ) -> list[dict[str, Any]]:
        errors: list[dict[str, Any]] = []
        for entry in reversed(state.get("compensations", [])):
            step = workflow.step_for(str(entry.get("node")))
            if step is None or step.compensate is None:
                continue
            try:
                await step.compensate(entry.get("input"), ctx)
                await self._session.commit()
                log.info("step_compensated", step=entry.get("node"))
            except Exception as e:
                # Compensation is best effort; keep undoing the remaining steps.
                await self._session.rollback()
                log.error("compensation_failed", step=entry.get("node"), error=str(e))
                errors.append({"step": entry.get("node"), "error": str(e), "compensation": True})
        return errors

    async def _checkpoint(
        self, transaction_id: uuid.UUID, state: WorkflowState, status: WorkflowStatus
    ) -> None:
        await self._executions.checkpoint(
            transaction_id=transaction_id,
            status=status,
            results=dict(state.get("results", {})),
            compensations=list(state.get("compensations", [])),
            log=list(state.get("log", [])),
        )


def _apply(state: WorkflowState, update: dict[str, Any]) -> WorkflowState:
    merged: WorkflowState = dict(state)  # type: ignore[assignment]
    if "results" in update:
        merged["results"] = merge_dicts(state.get("results"), update["results"])
    if "compensations" in update:
        merged["compensations"] = append_entries(
            state.get("compensations"), update["compensations"]
        )
    if "log" in update:
        merged["log"] = append_entries(state.get("log"), update["log"])
    return merged


def _error_entry(e: Exception) -> dict[str, Any]:
    if isinstance(e, AppError):
        return {"type": str(e.type), "message": e.message}
    return {"type": str(ErrorType.unexpected_state), "message": str(e)}


# --- Module Notes -----------------------------------------------------------
# The runner is the transaction boundary: a step flushes its writes and the runner commits
# once the step reports back. A failing step's uncommitted writes are rolled back before the
# compensations of earlier (committed) steps run.
