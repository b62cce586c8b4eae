"""
jyt_admin.events

Domain event emission.

Responsibilities:
- Log domain events (e.g. `production_run.sent_to_partner`).
- Execute active visual flows subscribed to the event (`trigger_type=event`,
  `trigger_config.event == <name>`).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select

from jyt_admin.db.models import FlowStatus, FlowTriggerType, VisualFlow
from jyt_admin.observability.logging import get_logger
from jyt_admin.workflows.context import StepContext

log = get_logger(__name__)


async def subscribed_flows(ctx: StepContext, event: str) -> list[VisualFlow]:
    stmt = select(VisualFlow).where(
        VisualFlow.status == FlowStatus.active,
        VisualFlow.trigger_type == FlowTriggerType.event,
        VisualFlow.deleted_at.is_(None),
    )
    flows = (await ctx.session.execute(stmt)).scalars().all()
    return [f for f in flows if (f.trigger_config or {}).get("event") == event]


async def emit_event(ctx: StepContext, event: str, data: dict[str, Any]) -> list[dict[str, Any]]:
    from jyt_admin.flows.executor import FlowExecutor

    log.info("event_emitted", event_name=event)
    results: list[dict[str, Any]] = []
    executor = FlowExecutor(ctx)
    for flow in await subscribed_flows(ctx, event):
        result = await executor.execute(
            flow.id, payload=data, event=event, triggered_by=ctx.actor or "system"
        )
        results.append({"flow_id": str(flow.id), **result})
    return results


# --- Module Notes -----------------------------------------------------------
# Flow failures are recorded on the flow execution and do not fail the emitting workflow.
