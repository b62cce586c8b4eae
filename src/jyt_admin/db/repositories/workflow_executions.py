"""
jyt_admin.db.repositories.workflow_executions

Repository for `WorkflowExecution` checkpoints.

Responsibilities:
- Create and fetch workflow executions (keyed by transaction id).
- Persist checkpoints (step results, log) and waiting/error metadata.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.db.base import utcnow
from jyt_admin.db.models import WorkflowExecution, WorkflowStatus


class WorkflowExecutionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        *,
        transaction_id: uuid.UUID,
        workflow_name: str,
        input: dict[str, Any],
        actor: str | None,
    ) -> WorkflowExecution:
        execution = WorkflowExecution(
            id=transaction_id,
            workflow_name=workflow_name,
            status=WorkflowStatus.running,
            input=input,
            results={},
            compensations=[],
            log=[],
            waiting_payload={},
            actor=actor,
        )
        self._session.add(execution)
        await self._session.flush()
        return execution

    async def get(self, transaction_id: uuid.UUID) -> WorkflowExecution | None:
        return await self._session.get(WorkflowExecution, transaction_id)

    async def list_for_workflow(
        self, workflow_name: str, *, limit: int = 50
    ) -> list[WorkflowExecution]:
        stmt = (
            select(WorkflowExecution)
            .where(WorkflowExecution.workflow_name == workflow_name)
            .order_by(desc(WorkflowExecution.created_at))
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def checkpoint(
        self,
        *,
        transaction_id: uuid.UUID,
        status: WorkflowStatus | None = None,
        results: dict[str, Any] | None = None,
        compensations: list[dict[str, Any]] | None = None,
        log: list[dict[str, Any]] | None = None,
        waiting_reason: str | None = None,
        waiting_payload: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        # Checkpoints are locked to avoid concurrent resumes clobbering results.
        execution = await self._session.get(WorkflowExecution, transaction_id, with_for_update=True)
        if execution is None:
            return
        if status is not None:
            execution.status = status
        if results is not None:
            execution.results = results
        if compensations is not None:
            execution.compensations = compensations
        if log is not None:
            execution.log = log
        if waiting_reason is not None:
            execution.waiting_reason = waiting_reason or None
        if waiting_payload is not None:
            execution.waiting_payload = waiting_payload
        if error is not None:
            execution.error = error
        execution.updated_at = utcnow()
