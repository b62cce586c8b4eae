"""
jyt_admin.api.routers.websites

Websites, their pages and page blocks.

Responsibilities:
- Website CRUD (via `crud_router`) and page CRUD scoped to a website.
- Batch block creation with per-block outcomes (201 / 207 / 400).
- Block list (type/status filters), read, update and delete scoped to a page.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_207_MULTI_STATUS, HTTP_400_BAD_REQUEST

from jyt_admin.api.crud_router import crud_router, query_filters
from jyt_admin.api.deps import Paging, db_session, paging, workflow_runner
from jyt_admin.api.schemas import (
    BlockBatchRequest,
    BlockUpdate,
    PageCreate,
    PageUpdate,
    WebsiteCreate,
    WebsiteUpdate,
)
from jyt_admin.db.base import to_dict
from jyt_admin.db.models import Block, Page, Website
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.errors import not_found
from jyt_admin.workflows.crud import crud_workflows
from jyt_admin.workflows.runner import WorkflowRunner
from jyt_admin.workflows.websites import (
    create_block_workflow,
    create_page_workflow,
    delete_block_workflow,
    get_website_page,
    update_block_workflow,
)

router = crud_router(
    Website,
    prefix="/admin/websites",
    singular="website",
    plural="websites",
    create_schema=WebsiteCreate,
    update_schema=WebsiteUpdate,
    filters=("status", "domain"),
)


# --- pages ---------------------------------------------------------------------


@router.get("/{website_id}/pages")
async def list_pages(
    website_id: uuid.UUID,
    request: Request,
    page: Paging = Depends(paging),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    await CrudRepo(session, Website).retrieve(website_id)
    filters = {**query_filters(request, ("status", "page_type")), "website_id": website_id}
    rows, count = await CrudRepo(session, Page).list_and_count(
        filters, offset=page.offset, limit=page.limit
    )
    return {
        "pages": [to_dict(r) for r in rows],
        "count": count,
        "offset": page.offset,
        "limit": page.limit,
    }


@router.post("/{website_id}/pages", status_code=HTTP_201_CREATED)
async def create_page(
    website_id: uuid.UUID,
    body: PageCreate,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    result = await runner.run(
        create_page_workflow,
        {"website_id": str(website_id), "data": body.model_dump(mode="json")},
    )
    return {"page": result.result}


@router.get("/{website_id}/pages/{page_id}")
async def retrieve_page(
    website_id: uuid.UUID, page_id: uuid.UUID, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    return {"page": to_dict(await get_website_page(session, website_id, page_id))}


@router.put("/{website_id}/pages/{page_id}")
async def update_page(
    website_id: uuid.UUID,
    page_id: uuid.UUID,
    body: PageUpdate,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    await get_website_page(runner.session, website_id, page_id)
    values = body.model_dump(mode="json", exclude_unset=True)
    result = await runner.run(crud_workflows(Page).update, {"id": str(page_id), "values": values})
    return {"page": result.result}


@router.delete("/{website_id}/pages/{page_id}")
async def delete_page(
    website_id: uuid.UUID,
    page_id: uuid.UUID,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    await get_website_page(runner.session, website_id, page_id)
    result = await runner.run(crud_workflows(Page).delete, {"id": str(page_id)})
    return result.result


# --- blocks --------------------------------------------------------------------


@router.post("/{website_id}/pages/{page_id}/blocks")
async def create_blocks(
    website_id: uuid.UUID,
    page_id: uuid.UUID,
    body: BlockBatchRequest,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> JSONResponse:
    await get_website_page(runner.session, website_id, page_id)

    created: list[Any] = []
    errors: list[dict[str, Any]] = []
    for block in body.blocks:
        data = block.model_dump(mode="json", exclude_none=True)
        result = await runner.run(
            create_block_workflow,
            {"website_id": str(website_id), "page_id": str(page_id), "block": data},
            throw_on_error=False,
        )
        if result.errors:
            errors.append({"block": data, "error": result.errors[0]["message"]})
        else:
            created.append(result.result)

    if not errors:
        return JSONResponse(status_code=HTTP_201_CREATED, content={"blocks": created})
    status = HTTP_207_MULTI_STATUS if created else HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=status, content={"blocks": created, "errors": errors})


@router.get("/{website_id}/pages/{page_id}/blocks")
async def list_blocks(
    website_id: uuid.UUID,
    page_id: uuid.UUID,
    request: Request,
    page: Paging = Depends(paging),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    await get_website_page(session, website_id, page_id)
    filters = {**query_filters(request, ("type", "status")), "page_id": page_id}
    rows, count = await CrudRepo(session, Block).list_and_count(
        filters,
        offset=page.offset,
        limit=page.limit,
        order_by=[Block.order, Block.created_at],
    )
    return {
        "blocks": [to_dict(r) for r in rows],
        "count": count,
        "offset": page.offset,
        "limit": page.limit,
    }


@router.get("/{website_id}/pages/{page_id}/blocks/{block_id}")
async def retrieve_block(
    website_id: uuid.UUID,
    page_id: uuid.UUID,
    block_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    await get_website_page(session, website_id, page_id)
    block = await CrudRepo(session, Block).get(block_id)
    if block is None or block.page_id != page_id:
        raise not_found("Block", block_id)
    return {"block": to_dict(block)}


@router.put("/{website_id}/pages/{page_id}/blocks/{block_id}")
async def update_block(
    website_id: uuid.UUID,
    page_id: uuid.UUID,
    block_id: uuid.UUID,
    body: BlockUpdate,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    result = await runner.run(
        update_block_workflow,
        {
            "website_id": str(website_id),
            "page_id": str(page_id),
            "id": str(block_id),
            "values": body.model_dump(mode="json", exclude_unset=True),
        },
    )
    return {"block": result.result}


@router.delete("/{website_id}/pages/{page_id}/blocks/{block_id}")
async def delete_block(
    website_id: uuid.UUID,
    page_id: uuid.UUID,
    block_id: uuid.UUID,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    result = await runner.run(
        delete_block_workflow,
        {"website_id": str(website_id), "page_id": str(page_id), "id": str(block_id)},
    )
    return result.result
