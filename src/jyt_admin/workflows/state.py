"""
jyt_admin.workflows.state

Typed state schema shared by every compiled workflow graph.

Responsibilities:
- Define the contract between step nodes and the runner.
- Provide a stable, JSON-serializable shape for checkpoints (workflow_executions).
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from typing import Annotated, Any, TypedDict

from jyt_admin.db.base import Base, to_dict
from jyt_admin.workflows.reducers import append_entries, merge_dicts


class WorkflowState(TypedDict, total=False):
    transaction_id: str
    input: dict[str, Any]

    # Step outputs keyed by node key.
    results: Annotated[dict[str, Any], merge_dicts]

    # `{"node", "step", "input"}` entries for completed steps that can be undone.
    compensations: Annotated[list[dict[str, Any]], append_entries]

    log: Annotated[list[dict[str, Any]], append_entries]

    # Payload supplied when a waiting workflow is resumed.
    resume: dict[str, Any]


def to_jsonable(value: Any) -> Any:
    """
    Convert step outputs into JSON-safe values for checkpoint storage and responses.
    """

    if isinstance(value, Base):
        return to_dict(value)
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [to_jsonable(v) for v in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


# --- Module Notes -----------------------------------------------------------
# The state is permissive (total=False): nodes only return the keys they change and the
# reducers above merge them.
