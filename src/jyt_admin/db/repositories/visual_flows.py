"""
jyt_admin.db.repositories.visual_flows

Repository for visual flows and their definition (operations + connections).

Responsibilities:
- Load a flow with its operations and connections.
- Replace a flow definition wholesale (update/compensation path).
- Query executions (newest first) and execution logs.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import delete, desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.db.base import to_dict
from jyt_admin.db.models import (
    ConnectionType,
    FlowStatus,
    FlowTriggerType,
    VisualFlow,
    VisualFlowConnection,
    VisualFlowExecution,
    VisualFlowExecutionLog,
    VisualFlowOperation,
)

OPERATION_FIELDS = (
    "operation_key",
    "operation_type",
    "name",
    "options",
    "position_x",
    "position_y",
    "sort_order",
)
CONNECTION_FIELDS = (
    "source_id",
    "target_id",
    "source_handle",
    "target_handle",
    "connection_type",
    "condition",
    "label",
    "style",
)


class VisualFlowRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def operations(self, flow_id: uuid.UUID) -> list[VisualFlowOperation]:
        stmt = (
            select(VisualFlowOperation)
            .where(VisualFlowOperation.flow_id == flow_id)
            .order_by(
                VisualFlowOperation.position_y,
                VisualFlowOperation.position_x,
                VisualFlowOperation.sort_order,
            )
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def connections(self, flow_id: uuid.UUID) -> list[VisualFlowConnection]:
        stmt = (
            select(VisualFlowConnection)
            .where(VisualFlowConnection.flow_id == flow_id)
            .order_by(VisualFlowConnection.created_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def details(self, flow: VisualFlow) -> dict[str, Any]:
        return {
            **to_dict(flow),
            "operations": [to_dict(o) for o in await self.operations(flow.id)],
            "connections": [to_dict(c) for c in await self.connections(flow.id)],
        }

    async def delete_definition(self, flow_id: uuid.UUID) -> None:
        await self._session.execute(
            delete(VisualFlowConnection).where(VisualFlowConnection.flow_id == flow_id)
        )
        await self._session.execute(
            delete(VisualFlowOperation).where(VisualFlowOperation.flow_id == flow_id)
        )

    async def add_definition(
        self,
        flow_id: uuid.UUID,
        operations: Iterable[Mapping[str, Any]],
        connections: Iterable[Mapping[str, Any]],
    ) -> None:
        for op in operations:
            values = {k: op[k] for k in OPERATION_FIELDS if op.get(k) is not None}
            if op.get("id"):
                values["id"] = uuid.UUID(str(op["id"]))
            self._session.add(VisualFlowOperation(flow_id=flow_id, **values))
        for conn in connections:
            values = {k: conn[k] for k in CONNECTION_FIELDS if conn.get(k) is not None}
            values["connection_type"] = ConnectionType(
                values.get("connection_type", ConnectionType.default)
            )
            if conn.get("id"):
                values["id"] = uuid.UUID(str(conn["id"]))
            self._session.add(VisualFlowConnection(flow_id=flow_id, **values))
        await self._session.flush()

    async def replace_definition(
        self,
        flow_id: uuid.UUID,
        operations: Iterable[Mapping[str, Any]],
        connections: Iterable[Mapping[str, Any]],
    ) -> None:
        await self.delete_definition(flow_id)
        await self.add_definition(flow_id, operations, connections)

    async def list_executions(
        self, flow_id: uuid.UUID, *, limit: int = 50, offset: int = 0
    ) -> list[VisualFlowExecution]:
        stmt = (
            select(VisualFlowExecution)
            .where(VisualFlowExecution.flow_id == flow_id)
            .order_by(desc(VisualFlowExecution.started_at))
            .offset(offset)
            .limit(limit)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def execution_logs(self, execution_id: uuid.UUID) -> list[VisualFlowExecutionLog]:
        stmt = (
            select(VisualFlowExecutionLog)
            .where(VisualFlowExecutionLog.execution_id == execution_id)
            .order_by(VisualFlowExecutionLog.executed_at)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def active_flows(self, trigger_type: FlowTriggerType | None = None) -> list[VisualFlow]:
        stmt = select(VisualFlow).where(
            VisualFlow.status == FlowStatus.active, VisualFlow.deleted_at.is_(None)
        )
        if trigger_type is not None:
            stmt = stmt.where(VisualFlow.trigger_type == trigger_type)
        return list((await self._session.execute(stmt.order_by(VisualFlow.name))).scalars().all())
