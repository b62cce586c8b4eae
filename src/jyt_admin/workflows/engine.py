"""
jyt_admin.workflows.engine

Workflow and step primitives compiled onto LangGraph.

Responsibilities:
- Define steps (`create_step`) with an optional compensation.
- Compose steps into named workflows (ordered nodes with input mapping and `when` guards).
- Compile a workflow into a linear LangGraph `StateGraph` whose nodes report results,
  compensations and log entries through reducers.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from langgraph.graph import END, StateGraph

from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.state import WorkflowState, to_jsonable

StepInvoke = Callable[[Any, StepContext], Awaitable[Any]]
StepCompensate = Callable[[Any, StepContext], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class StepResponse:
    """
    What a step produced, plus the data its compensation needs (defaults to the output).
    """

    output: Any = None
    compensate_input: Any = None


@dataclass(frozen=True, slots=True)
class Step:
    name: str
    invoke: StepInvoke
    compensate: StepCompensate | None = None


def create_step(
    name: str,
    invoke: StepInvoke,
    compensate: StepCompensate | None = None,
) -> Step:
    return Step(name=name, invoke=invoke, compensate=compensate)


class WorkflowSuspended(Exception):
    """
    Raised by a step that must wait for an external decision before continuing.

    The runner persists the checkpoint as `waiting` and `WorkflowRunner.resume` re-enters the
    workflow with the decision exposed as `state["resume"]`.
    """

    def __init__(self, reason: str, payload: dict[str, Any] | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.payload = dict(payload or {})


@dataclass(frozen=True, slots=True)
class StepNode:
    key: str
    step: Step
    input: Callable[[WorkflowState], Any] | None = None
    when: Callable[[WorkflowState], bool] | None = None


def node(
    step: Step,
    *,
    key: str | None = None,
    input: Callable[[WorkflowState], Any] | None = None,
    when: Callable[[WorkflowState], bool] | None = None,
) -> StepNode:
    return StepNode(key=key or step.name, step=step, input=input, when=when)


def from_input(state: WorkflowState) -> Any:
    return state.get("input", {})


def result_of(key: str) -> Callable[[WorkflowState], Any]:
    def _get(state: WorkflowState) -> Any:
        return state.get("results", {}).get(key)

    return _get


class Workflow:
    """
    A named, ordered composition of steps.

    `store=True` persists every checkpoint to `workflow_executions` so the workflow can be
    suspended and resumed by transaction id.
    """

    def __init__(
        self,
        name: str,
        nodes: Sequence[StepNode],
        *,
        result: Callable[[WorkflowState], Any] | None = None,
        store: bool = False,
    ) -> None:
        if not nodes:
            raise ValueError(f"workflow {name} has no steps")
        keys = [n.key for n in nodes]
        if len(set(keys)) != len(keys):
            raise ValueError(f"workflow {name} has duplicate step keys")
        self.name = name
        self.nodes = list(nodes)
        self.store = store
        self._result = result or result_of(self.nodes[-1].key)

    def result(self, state: WorkflowState) -> Any:
        return self._result(state)

    def step_for(self, key: str) -> Step | None:
        for n in self.nodes:
            if n.key == key:
                return n.step
        return None

    def compile(self, ctx: StepContext):
        graph = StateGraph(WorkflowState)
        for n in self.nodes:
            graph.add_node(n.key, _bind_node(n, ctx))

        graph.set_entry_point(self.nodes[0].key)
        for prev, nxt in zip(self.nodes, self.nodes[1:], strict=False):
            graph.add_edge(prev.key, nxt.key)
        graph.add_edge(self.nodes[-1].key, END)
        return graph.compile()


NodeFn = Callable[[WorkflowState], Awaitable[dict[str, Any]]]


def _bind_node(n: StepNode, ctx: StepContext) -> NodeFn:
    async def _run(state: WorkflowState) -> dict[str, Any]:
        # Completed before a suspension; skip on resume.
        if n.key in state.get("results", {}):
            return {}
        if n.when is not None and not n.when(state):
            return {"log": [{"step": n.key, "event": "skipped"}]}

        step_input = n.input(state) if n.input is not None else from_input(state)
        if ctx.log is not None:
            ctx.log.info("step_started", step=n.key)
        response = await n.step.invoke(step_input, ctx)
        if not isinstance(response, StepResponse):
            response = StepResponse(output=response)

        output = to_jsonable(response.output)
        update: dict[str, Any] = {
            "results": {n.key: output},
            "log": [{"step": n.key, "event": "completed"}],
        }
        if n.step.compensate is not None:
            comp_input = (
                response.compensate_input if response.compensate_input is not None else output
            )
            update["compensations"] = [
                {"node": n.key, "step": n.step.name, "input": to_jsonable(comp_input)}
            ]
        return update

    return _run


# --- Module Notes -----------------------------------------------------------
# Outputs and compensation inputs are stored in JSON form, so steps see the same shapes
# whether they run in one go or after a resume.
