"""
jyt_admin.flows.executor

Visual-flow execution engine.

Responsibilities:
- Build the data chain (`$trigger`, `$accountability`, `$env`, `$last`, per-operation results).
- Walk operations from the trigger, depth first, ordered by canvas position.
- Follow success/failure/default connections, including condition branches.
- Persist one execution record plus log rows for the trigger, every operation run (written
  as `running`, then settled to `success` / `failure`) and every branch target not taken.
"""

from __future__ import annotations

import os
import time
import uuid
from collections import defaultdict
from typing import Any

from sqlalchemy import select

from jyt_admin.db.base import utcnow
from jyt_admin.db.models import (
    ConnectionType,
    FlowExecutionStatus,
    FlowStatus,
    OperationLogStatus,
    VisualFlow,
    VisualFlowConnection,
    VisualFlowExecution,
    VisualFlowExecutionLog,
    VisualFlowOperation,
)
from jyt_admin.errors import AppError, ErrorType, not_found
from jyt_admin.flows.interpolation import render
from jyt_admin.flows.operations import FlowRunContext, get_operation
from jyt_admin.flows.validation import TRIGGER
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.state import to_jsonable


class FlowOperationFailed(Exception):
    def __init__(self, operation_key: str, message: str) -> None:
        super().__init__(f"Operation {operation_key} failed: {message}")
        self.operation_key = operation_key


TRIGGER_LOG_KEY = "$trigger"


def _order(op: VisualFlowOperation) -> tuple[float, float, int]:
    return (op.position_y, op.position_x, op.sort_order)


def _matches(conn: VisualFlowConnection, branch: str) -> bool:
    return conn.connection_type == branch or conn.source_handle == branch


def _is_failure_edge(conn: VisualFlowConnection) -> bool:
    return _matches(conn, ConnectionType.failure)


class FlowExecutor:
    def __init__(self, ctx: StepContext) -> None:
        self._ctx = ctx
        self._session = ctx.session

    async def load_flow(self, flow_id: uuid.UUID) -> VisualFlow:
        flow = await self._session.get(VisualFlow, flow_id)
        if flow is None or flow.deleted_at is not None:
            raise not_found("VisualFlow", flow_id)
        return flow

    async def execute(
        self,
        flow_id: uuid.UUID | str,
        *,
        payload: dict[str, Any] | None = None,
        event: str | None = None,
        triggered_by: str | None = None,
        depth: int = 0,
    ) -> dict[str, Any]:
        flow = await self.load_flow(uuid.UUID(str(flow_id)))
        if flow.status != FlowStatus.active:
            raise AppError(ErrorType.not_allowed, f"Flow {flow.id} is not active")

        ops = list(
            (
                await self._session.execute(
                    select(VisualFlowOperation).where(VisualFlowOperation.flow_id == flow.id)
                )
            )
            .scalars()
            .all()
        )
        conns = list(
            (
                await self._session.execute(
                    select(VisualFlowConnection).where(VisualFlowConnection.flow_id == flow.id)
                )
            )
            .scalars()
            .all()
        )

        execution = VisualFlowExecution(
            flow_id=flow.id,
            status=FlowExecutionStatus.running,
            trigger_data=to_jsonable(payload or {}),
            data_chain={},
            triggered_by=triggered_by,
            started_at=utcnow(),
        )
        self._session.add(execution)
        await self._session.flush()

        chain: dict[str, Any] = {
            "$trigger": {
                "payload": to_jsonable(payload or {}),
                "event": event,
                "timestamp": utcnow().isoformat(),
            },
            "$accountability": {"triggered_by": triggered_by},
            "$env": {
                k: os.environ[k] for k in self._ctx.settings.flow_env_allowlist if k in os.environ
            },
            "$last": None,
        }
        self._log(
            execution,
            TRIGGER_LOG_KEY,
            OperationLogStatus.success,
            input=chain["$trigger"]["payload"],
            output=chain["$trigger"],
            duration_ms=0,
        )
        run = FlowRunContext(
            step=self._ctx,
            flow_id=str(flow.id),
            execution_id=str(execution.id),
            chain=chain,
            depth=depth,
            execute_flow=self.execute,
        )

        by_key = {op.operation_key: op for op in ops}
        outgoing: dict[str, list[VisualFlowConnection]] = defaultdict(list)
        for conn in conns:
            outgoing[conn.source_id].append(conn)

        error: str | None = None
        try:
            visited: set[str] = set()
            for target in self._targets(outgoing[TRIGGER], by_key):
                await self._run_operation(target, run, execution, by_key, outgoing, visited)
        except FlowOperationFailed as e:
            error = str(e)

        execution.status = FlowExecutionStatus.failed if error else FlowExecutionStatus.completed
        execution.error = error
        execution.data_chain = to_jsonable(chain)
        execution.completed_at = utcnow()
        await self._session.flush()

        if self._ctx.log is not None:
            self._ctx.log.info(
                "flow_executed",
                flow_id=str(flow.id),
                execution_id=str(execution.id),
                status=str(execution.status),
                depth=depth,
            )
        result: dict[str, Any] = {
            "executionId": str(execution.id),
            "status": str(execution.status),
            "dataChain": execution.data_chain,
        }
        if error:
            result["error"] = error
        return result

    def _targets(
        self, conns: list[VisualFlowConnection], by_key: dict[str, VisualFlowOperation]
    ) -> list[VisualFlowOperation]:
        seen: set[str] = set()
        targets: list[VisualFlowOperation] = []
        for conn in conns:
            op = by_key.get(conn.target_id)
            if op is not None and op.operation_key not in seen:
                seen.add(op.operation_key)
                targets.append(op)
        return sorted(targets, key=_order)

    async def _run_operation(
        self,
        op: VisualFlowOperation,
        run: FlowRunContext,
        execution: VisualFlowExecution,
        by_key: dict[str, VisualFlowOperation],
        outgoing: dict[str, list[VisualFlowConnection]],
        visited: set[str],
    ) -> None:
        # Operations joined by several paths run once per execution.
        if op.operation_key in visited:
            return
        visited.add(op.operation_key)

        options = render(op.options or {}, run.chain)
        entry = self._log(
            execution, op.operation_key, OperationLogStatus.running, op=op, input=options
        )
        await self._session.flush()
        started = time.perf_counter()
        try:
            output = await get_operation(op.operation_type).handler(options, run)
        except Exception as e:
            entry.status = OperationLogStatus.failure
            entry.error = str(e)
            entry.duration_ms = int((time.perf_counter() - started) * 1000)
            failure_edges = [c for c in outgoing[op.operation_key] if _is_failure_edge(c)]
            if not failure_edges:
                raise FlowOperationFailed(op.operation_key, str(e)) from e
            run.chain[op.operation_key] = {"error": str(e)}
            run.chain["$last"] = {"error": str(e)}
            await self._session.flush()
            for target in self._targets(failure_edges, by_key):
                await self._run_operation(target, run, execution, by_key, outgoing, visited)
            self._skip_untaken(
                execution, outgoing[op.operation_key], failure_edges, by_key, visited
            )
            return

        output = to_jsonable(output)
        entry.status = OperationLogStatus.success
        entry.output_data = output
        entry.duration_ms = int((time.perf_counter() - started) * 1000)
        run.chain[op.operation_key] = output
        run.chain["$last"] = output
        await self._session.flush()

        conns = outgoing[op.operation_key]
        branch = output.get("_branch") if isinstance(output, dict) else None
        if branch is not None:
            follow = [c for c in conns if _matches(c, str(branch))]
        else:
            follow = [c for c in conns if not _is_failure_edge(c)]
        for target in self._targets(follow, by_key):
            await self._run_operation(target, run, execution, by_key, outgoing, visited)
        self._skip_untaken(execution, conns, follow, by_key, visited)

    def _skip_untaken(
        self,
        execution: VisualFlowExecution,
        conns: list[VisualFlowConnection],
        taken: list[VisualFlowConnection],
        by_key: dict[str, VisualFlowOperation],
        visited: set[str],
    ) -> None:
        untaken = [c for c in conns if c not in taken]
        for op in self._targets(untaken, by_key):
            if op.operation_key not in visited:
                self._log(execution, op.operation_key, OperationLogStatus.skipped, op=op)

    def _log(
        self,
        execution: VisualFlowExecution,
        operation_key: str,
        status: OperationLogStatus,
        *,
        op: VisualFlowOperation | None = None,
        input: Any = None,
        output: Any = None,
        duration_ms: int | None = None,
    ) -> VisualFlowExecutionLog:
        entry = VisualFlowExecutionLog(
            execution_id=execution.id,
            operation_id=op.id if op is not None else None,
            operation_key=operation_key,
            status=status,
            input_data=to_jsonable(input) if input is not None else None,
            output_data=output,
            duration_ms=duration_ms,
            executed_at=utcnow(),
        )
        self._session.add(entry)
        return entry


# --- Module Notes -----------------------------------------------------------
# Operation failures end the execution as `failed` (unless a failure edge handles them);
# they are recorded, not raised, so the caller's transaction still commits the logs.
