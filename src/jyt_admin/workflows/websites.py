"""
jyt_admin.workflows.websites

Website page and block workflows.

Responsibilities:
- Create pages under an existing website.
- Create, update and delete blocks while keeping unique block types (Hero, Header,
  Footer, MainContent, ContactForm) to one per page.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.db.models import UNIQUE_BLOCK_TYPES, Block, BlockType, Page, Website
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.errors import invalid_data, not_found
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.crud import as_uuid
from jyt_admin.workflows.engine import StepResponse, Workflow, create_step, node


async def get_website_page(
    session: AsyncSession, website_id: uuid.UUID, page_id: uuid.UUID
) -> Page:
    await CrudRepo(session, Website).retrieve(website_id)
    page = await CrudRepo(session, Page).get(page_id)
    if page is None or page.website_id != website_id:
        raise not_found("Page", page_id)
    return page


async def find_block_of_type(
    session: AsyncSession,
    page_id: uuid.UUID,
    block_type: BlockType,
    *,
    exclude_id: uuid.UUID | None = None,
) -> Block | None:
    stmt = select(Block).where(
        Block.page_id == page_id, Block.type == block_type, Block.deleted_at.is_(None)
    )
    if exclude_id is not None:
        stmt = stmt.where(Block.id != exclude_id)
    return (await session.execute(stmt.limit(1))).scalars().first()


def _block_type(value: Any) -> BlockType:
    try:
        return BlockType(value)
    except ValueError as e:
        raise invalid_data(f"Unknown block type: {value}") from e


# --- pages -------------------------------------------------------------------


async def _create_page(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    website_id = as_uuid(input["website_id"])
    await CrudRepo(ctx.session, Website).retrieve(website_id)
    page = await CrudRepo(ctx.session, Page).create({**input["data"], "website_id": website_id})
    return StepResponse(page, compensate_input=str(page.id))


async def _delete_page(id: str, ctx: StepContext) -> None:
    await CrudRepo(ctx.session, Page).delete(as_uuid(id))


create_page_workflow = Workflow(
    "create-page", [node(create_step("create-page", _create_page, _delete_page))]
)


# --- blocks ------------------------------------------------------------------


async def _validate_block(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    page = await get_website_page(
        ctx.session, as_uuid(input["website_id"]), as_uuid(input["page_id"])
    )
    block_type = _block_type(input["block"].get("type"))
    if block_type in UNIQUE_BLOCK_TYPES and await find_block_of_type(
        ctx.session, page.id, block_type
    ):
        raise invalid_data(f"Block type {block_type}, already exists for this page")
    return {"page_id": str(page.id), "type": str(block_type)}


async def _create_block(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    data = dict(input["block"])
    data.setdefault("name", data.get("type"))
    block = await CrudRepo(ctx.session, Block).create({**data, "page_id": input["page_id"]})
    return StepResponse(block, compensate_input=str(block.id))


async def _remove_block(id: str, ctx: StepContext) -> None:
    await CrudRepo(ctx.session, Block).delete(as_uuid(id))


create_block_workflow = Workflow(
    "create-block",
    [
        node(create_step("validate-block", _validate_block)),
        node(
            create_step("create-block", _create_block, _remove_block),
            input=lambda s: {
                "page_id": s["results"]["validate-block"]["page_id"],
                "block": s["input"]["block"],
            },
        ),
    ],
)


async def _update_block(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    page = await get_website_page(
        ctx.session, as_uuid(input["website_id"]), as_uuid(input["page_id"])
    )
    repo = CrudRepo(ctx.session, Block)
    block_id = as_uuid(input["id"])
    block = await repo.get(block_id)
    if block is None or block.page_id != page.id:
        raise not_found("Block", block_id)

    values = {k: v for k, v in input["values"].items() if k not in {"id", "page_id"}}
    if "type" in values:
        new_type = _block_type(values["type"])
        if (
            new_type != block.type
            and new_type in UNIQUE_BLOCK_TYPES
            and await find_block_of_type(ctx.session, page.id, new_type, exclude_id=block.id)
        ):
            raise invalid_data(f"A block of type {new_type} already exists for this page")
    previous = repo.snapshot(block, values.keys())
    block = await repo.update(block_id, values)
    return StepResponse(block, compensate_input={"id": str(block_id), "previous": previous})


async def _restore_block(data: dict[str, Any], ctx: StepContext) -> None:
    await CrudRepo(ctx.session, Block).update(as_uuid(data["id"]), data["previous"])


update_block_workflow = Workflow(
    "update-block", [node(create_step("update-block", _update_block, _restore_block))]
)


async def _delete_block(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    page = await get_website_page(
        ctx.session, as_uuid(input["website_id"]), as_uuid(input["page_id"])
    )
    repo = CrudRepo(ctx.session, Block)
    block_id = as_uuid(input["id"])
    block = await repo.get(block_id)
    if block is None or block.page_id != page.id:
        raise not_found("Block", block_id)
    await repo.soft_delete(block_id)
    return StepResponse({"id": str(block_id), "deleted": True}, compensate_input=str(block_id))


async def _undelete_block(id: str, ctx: StepContext) -> None:
    await CrudRepo(ctx.session, Block).restore(as_uuid(id))


delete_block_workflow = Workflow(
    "delete-block", [node(create_step("delete-block", _delete_block, _undelete_block))]
)


# --- Module Notes -----------------------------------------------------------
# Batch creation runs `create-block` once per input block, each in its own transaction, so
# earlier blocks in a batch count towards the uniqueness check of later ones.
