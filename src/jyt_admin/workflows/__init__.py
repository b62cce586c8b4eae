"""
jyt_admin.workflows

Saga-style workflows: named step sequences with compensations, compiled onto LangGraph
and executed by `WorkflowRunner` with a commit after every step.
"""

from jyt_admin.workflows.context import Clients, StepContext
from jyt_admin.workflows.engine import (
    Step,
    StepResponse,
    Workflow,
    WorkflowSuspended,
    create_step,
    from_input,
    node,
    result_of,
)
from jyt_admin.workflows.runner import WorkflowResult, WorkflowRunner

__all__ = [
    "Clients",
    "Step",
    "StepContext",
    "StepResponse",
    "Workflow",
    "WorkflowResult",
    "WorkflowRunner",
    "WorkflowSuspended",
    "create_step",
    "from_input",
    "node",
    "result_of",
]
