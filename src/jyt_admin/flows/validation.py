"""
jyt_admin.flows.validation

Shape validation for visual-flow definitions.

Checks operation keys and types, connection endpoints and types, self loops, cycles, and
that option templates only reference known data-chain roots.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from typing import Any

from jyt_admin.db.models import ConnectionType
from jyt_admin.errors import invalid_data
from jyt_admin.flows.interpolation import referenced_paths
from jyt_admin.flows.operations import OPERATIONS

TRIGGER = "trigger"
CHAIN_ROOTS = frozenset({"$trigger", "$accountability", "$env", "$last"})


def _root(path: str) -> str:
    return path.split(".", 1)[0].split("[", 1)[0]


def validate_flow_shape(
    operations: Iterable[Mapping[str, Any]],
    connections: Iterable[Mapping[str, Any]],
) -> list[str]:
    problems: list[str] = []
    ops = list(operations)
    conns = list(connections)

    keys: set[str] = set()
    for op in ops:
        key = str(op.get("operation_key") or "")
        if not key:
            problems.append("operation_key is required")
            continue
        if key == TRIGGER:
            problems.append(f"'{TRIGGER}' is reserved and cannot be an operation_key")
        if key in keys:
            problems.append(f"Duplicate operation_key: {key}")
        keys.add(key)
        if op.get("operation_type") not in OPERATIONS:
            problems.append(f"Unknown operation_type for {key}: {op.get('operation_type')}")

    edges: dict[str, list[str]] = defaultdict(list)
    for conn in conns:
        source, target = str(conn.get("source_id") or ""), str(conn.get("target_id") or "")
        if source != TRIGGER and source not in keys:
            problems.append(f"Connection source does not exist: {source}")
        if target == TRIGGER:
            problems.append("Connections cannot target the trigger")
        elif target not in keys:
            problems.append(f"Connection target does not exist: {target}")
        if source == target:
            problems.append(f"Connection loops on itself: {source}")
        ctype = conn.get("connection_type") or ConnectionType.default
        if ctype not in set(ConnectionType):
            problems.append(f"Unknown connection_type: {ctype}")
        edges[source].append(target)

    if _has_cycle(edges):
        problems.append("Flow contains a cycle")

    for op in ops:
        for path in referenced_paths(op.get("options") or {}):
            root = _root(path)
            if root not in CHAIN_ROOTS and root not in keys:
                problems.append(
                    f"Operation {op.get('operation_key')} references unknown value: {path}"
                )
    return problems


def _has_cycle(edges: Mapping[str, list[str]]) -> bool:
    visiting: set[str] = set()
    done: set[str] = set()

    def visit(node: str) -> bool:
        if node in done:
            return False
        if node in visiting:
            return True
        visiting.add(node)
        if any(visit(nxt) for nxt in edges.get(node, [])):
            return True
        visiting.discard(node)
        done.add(node)
        return False

    return any(visit(n) for n in list(edges))


def assert_valid_flow(
    operations: Iterable[Mapping[str, Any]], connections: Iterable[Mapping[str, Any]]
) -> None:
    problems = validate_flow_shape(operations, connections)
    if problems:
        raise invalid_data("Invalid flow definition: " + "; ".join(problems), problems=problems)
