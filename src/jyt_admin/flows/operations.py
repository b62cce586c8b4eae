"""
jyt_admin.flows.operations

Built-in visual-flow operations and their registry.

Responsibilities:
- Define each operation's catalogue entry (name, category, options schema).
- Implement operation handlers against the execution data chain.
- Resolve operation types for the executor and for shape validation.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from jyt_admin.db.base import to_dict
from jyt_admin.db.models import (
    Design,
    MediaFile,
    Partner,
    Person,
    ProductionRun,
    SocialPost,
    Task,
)
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.flows.interpolation import resolve_path
from jyt_admin.workflows.context import StepContext

MAX_SLEEP_SECONDS = 10.0

READABLE_ENTITIES: dict[str, type] = {
    "partners": Partner,
    "persons": Person,
    "designs": Design,
    "production_runs": ProductionRun,
    "tasks": Task,
    "media_files": MediaFile,
    "social_posts": SocialPost,
}


class OperationError(Exception):
    pass


@dataclass(slots=True)
class FlowRunContext:
    step: StepContext
    flow_id: str
    execution_id: str
    chain: dict[str, Any]
    depth: int = 0
    execute_flow: Callable[..., Awaitable[dict[str, Any]]] | None = None


Handler = Callable[[dict[str, Any], FlowRunContext], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class OperationSpec:
    type: str
    name: str
    description: str
    category: str
    handler: Handler
    options: dict[str, dict[str, Any]] = field(default_factory=dict)

    def catalogue_entry(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "options": self.options,
        }


# --- condition -----------------------------------------------------------------


def _compare(actual: Any, operator: str, expected: Any) -> bool:
    if operator == "exists":
        return actual is not None
    if operator == "not_exists":
        return actual is None
    if operator == "eq":
        return actual == expected
    if operator == "neq":
        return actual != expected
    if operator == "contains":
        if isinstance(actual, str | list | tuple | dict):
            return expected in actual
        return False
    if actual is None or expected is None:
        return False
    try:
        a, b = float(actual), float(expected)
    except (TypeError, ValueError):
        a, b = str(actual), str(expected)  # type: ignore[assignment]
    if operator == "gt":
        return a > b
    if operator == "gte":
        return a >= b
    if operator == "lt":
        return a < b
    if operator == "lte":
        return a <= b
    raise OperationError(f"Unknown condition operator: {operator}")


async def condition_op(options: dict[str, Any], run: FlowRunContext) -> dict[str, Any]:
    rules = options.get("rules") or []
    if not isinstance(rules, list) or not rules:
        raise OperationError("condition requires at least one rule")
    logic = str(options.get("logic", "and")).lower()
    outcomes = [
        _compare(
            resolve_path(run.chain, str(rule.get("field", ""))),
            str(rule.get("operator", "eq")),
            rule.get("value"),
        )
        for rule in rules
    ]
    matched = any(outcomes) if logic == "or" else all(outcomes)
    return {"_branch": "success" if matched else "failure", "matched": matched}


# --- data shaping --------------------------------------------------------------


async def transform_op(options: dict[str, Any], run: FlowRunContext) -> dict[str, Any]:
    mapping = options.get("mapping")
    if not isinstance(mapping, dict):
        raise OperationError("transform requires a mapping object")
    return dict(mapping)


async def set_data_op(options: dict[str, Any], run: FlowRunContext) -> Any:
    return options.get("data")


async def log_op(options: dict[str, Any], run: FlowRunContext) -> dict[str, Any]:
    message = str(options.get("message", ""))
    level = str(options.get("level", "info")).lower()
    logger = run.step.log
    if logger is not None:
        getattr(logger, level if level in ("debug", "info", "warning", "error") else "info")(
            "flow_log", flow_id=run.flow_id, execution_id=run.execution_id, message=message
        )
    return {"message": message, "level": level}


async def sleep_op(options: dict[str, Any], run: FlowRunContext) -> dict[str, Any]:
    seconds = min(float(options.get("seconds", 0) or 0), MAX_SLEEP_SECONDS)
    await asyncio.sleep(max(seconds, 0))
    return {"slept": seconds}


# --- outbound ------------------------------------------------------------------


async def http_request_op(options: dict[str, Any], run: FlowRunContext) -> dict[str, Any]:
    url = options.get("url")
    if not url:
        raise OperationError("http_request requires a url")
    method = str(options.get("method", "GET")).upper()
    body = options.get("body")
    timeout = float(options.get("timeout") or run.step.settings.flow_http_timeout_seconds)
    try:
        resp = await run.step.http.request(
            method,
            str(url),
            headers={str(k): str(v) for k, v in (options.get("headers") or {}).items()},
            params=options.get("query") or None,
            json=body if isinstance(body, dict | list) else None,
            content=body if isinstance(body, str) else None,
            timeout=timeout,
        )
    except httpx.HTTPError as e:
        raise OperationError(f"{method} {url} failed: {e}") from e

    try:
        data: Any = resp.json()
    except ValueError:
        data = resp.text
    if resp.status_code >= 400 and options.get("fail_on_error", True):
        raise OperationError(f"{method} {url} returned {resp.status_code}")
    return {"status": resp.status_code, "headers": dict(resp.headers), "data": data}


async def read_data_op(options: dict[str, Any], run: FlowRunContext) -> dict[str, Any]:
    entity = str(options.get("entity", ""))
    model = READABLE_ENTITIES.get(entity)
    if model is None:
        raise OperationError(f"Entity '{entity}' cannot be read from flows")
    limit = max(1, min(int(options.get("limit") or 20), 100))
    rows, count = await CrudRepo(run.step.session, model).list_and_count(
        options.get("filters") or {}, limit=limit
    )
    return {"items": [to_dict(r) for r in rows], "count": count}


async def trigger_flow_op(options: dict[str, Any], run: FlowRunContext) -> dict[str, Any]:
    flow_id = options.get("flow_id")
    if not flow_id:
        raise OperationError("trigger_flow requires flow_id")
    if str(flow_id) == run.flow_id:
        raise OperationError("A flow cannot trigger itself")
    if run.depth + 1 > run.step.settings.flow_max_depth:
        raise OperationError("Maximum nested flow depth exceeded")
    if run.execute_flow is None:
        raise OperationError("Nested flow execution is not available")
    result = await run.execute_flow(
        flow_id,
        payload=options.get("payload") or {},
        event="another_flow",
        triggered_by=f"flow:{run.flow_id}",
        depth=run.depth + 1,
    )
    if result["status"] != "completed":
        raise OperationError(f"Triggered flow {flow_id} failed: {result.get('error')}")
    return result


OPERATIONS: dict[str, OperationSpec] = {
    spec.type: spec
    for spec in (
        OperationSpec(
            "condition",
            "Condition",
            "Branch on rules evaluated against the data chain",
            "logic",
            condition_op,
            {
                "rules": {"type": "array", "required": True},
                "logic": {"type": "string", "enum": ["and", "or"], "default": "and"},
            },
        ),
        OperationSpec(
            "transform",
            "Transform",
            "Build an object from templated values",
            "data",
            transform_op,
            {"mapping": {"type": "object", "required": True}},
        ),
        OperationSpec(
            "set_data",
            "Set Data",
            "Emit a static or templated value",
            "data",
            set_data_op,
            {"data": {"type": "any", "required": True}},
        ),
        OperationSpec(
            "log",
            "Log",
            "Write a message to the service log",
            "utility",
            log_op,
            {"message": {"type": "string"}, "level": {"type": "string", "default": "info"}},
        ),
        OperationSpec(
            "sleep",
            "Sleep",
            f"Pause for up to {MAX_SLEEP_SECONDS:g} seconds",
            "utility",
            sleep_op,
            {"seconds": {"type": "number", "required": True}},
        ),
        OperationSpec(
            "http_request",
            "HTTP Request",
            "Call an external HTTP endpoint",
            "integration",
            http_request_op,
            {
                "url": {"type": "string", "required": True},
                "method": {"type": "string", "default": "GET"},
                "headers": {"type": "object"},
                "query": {"type": "object"},
                "body": {"type": "any"},
                "timeout": {"type": "number"},
                "fail_on_error": {"type": "boolean", "default": True},
            },
        ),
        OperationSpec(
            "read_data",
            "Read Data",
            "Query records of a domain entity",
            "data",
            read_data_op,
            {
                "entity": {"type": "string", "enum": sorted(READABLE_ENTITIES), "required": True},
                "filters": {"type": "object"},
                "limit": {"type": "number", "default": 20},
            },
        ),
        OperationSpec(
            "trigger_flow",
            "Trigger Flow",
            "Execute another active flow and wait for its result",
            "flow",
            trigger_flow_op,
            {"flow_id": {"type": "string", "required": True}, "payload": {"type": "object"}},
        ),
    )
}


def get_operation(type: str) -> OperationSpec:
    spec = OPERATIONS.get(type)
    if spec is None:
        raise OperationError(f"Unknown operation type: {type}")
    return spec
