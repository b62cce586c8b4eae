"""
jyt_admin.workflows.persons

Person tagging and bulk import.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from jyt_admin.db.models import Person
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.errors import invalid_data
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.crud import as_uuid, crud_workflows
from jyt_admin.workflows.engine import StepResponse, Workflow, create_step, node
from jyt_admin.workflows.runner import WorkflowRunner


def merge_tags(existing: Iterable[str], incoming: Iterable[str]) -> list[str]:
    merged: list[str] = []
    for tag in [*existing, *incoming]:
        tag = str(tag).strip()
        if tag and tag not in merged:
            merged.append(tag)
    return merged


async def _add_tags(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    tags = input.get("tags")
    if not isinstance(tags, list) or not tags:
        raise invalid_data("tags must be a non-empty list")
    repo = CrudRepo(ctx.session, Person)
    person = await repo.retrieve(as_uuid(input["id"]))
    previous = list(person.tags or [])
    person = await repo.update(person.id, {"tags": merge_tags(previous, tags)})
    return StepResponse(person, compensate_input={"id": str(person.id), "tags": previous})


async def _restore_tags(data: dict[str, Any], ctx: StepContext) -> None:
    await CrudRepo(ctx.session, Person).update(as_uuid(data["id"]), {"tags": data["tags"]})


add_person_tags_workflow = Workflow(
    "add-person-tags", [node(create_step("add-person-tags", _add_tags, _restore_tags))]
)


async def import_persons(
    runner: WorkflowRunner, rows: list[dict[str, Any]]
) -> tuple[list[Any], list[dict[str, Any]]]:
    """
    Create each row in its own workflow run; returns (created, errors).

    Each error is `{"row": <index>, "data": <input>, "error": <message>}`.
    """

    created: list[Any] = []
    errors: list[dict[str, Any]] = []
    create = crud_workflows(Person).create
    for index, row in enumerate(rows):
        result = await runner.run(create, row, throw_on_error=False)
        if result.errors:
            errors.append({"row": index, "data": row, "error": result.errors[0]["message"]})
        else:
            created.append(result.result)
    return created, errors
