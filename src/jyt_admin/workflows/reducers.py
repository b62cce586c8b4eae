"""
jyt_admin.workflows.reducers

Merge rules for the `WorkflowState` keys that step nodes update piecemeal.

Responsibilities:
- `results`: step outputs keyed by node key; a node's update never drops earlier outputs.
- `compensations` and `log`: grow in step order so a failed saga can undo the completed
  steps newest first and the execution record lists every step it ran.
"""

from __future__ import annotations

from typing import Any


def append_entries(
    left: list[dict[str, Any]] | None, right: list[dict[str, Any]] | None
) -> list[dict[str, Any]]:
    """
    Concatenate `compensations` / `log` entries.

    A step node returns `{"compensations": [{"node", "step", "input"}], "log": [entry]}`
    for its own run only; the earlier entries come from `left`.
    """

    if not left:
        return list(right or [])
    if not right:
        return list(left)
    return [*left, *right]


def merge_dicts(left: dict[str, Any] | None, right: dict[str, Any] | None) -> dict[str, Any]:
    # `results` merge: the newer output for a node key replaces the older one.
    if not left:
        return dict(right or {})
    if not right:
        return dict(left)
    return {**left, **right}


# --- Module Notes -----------------------------------------------------------
# The runner folds each streamed node update into the state it checkpoints with these same
# functions, so a stored execution matches the graph state it was taken from.
