"""
jyt_admin.api.routers.socials

Social publishing: posts, campaigns and the Facebook webhook.

Responsibilities:
- Social post CRUD and on-demand publishing through the Graph API.
- Publishing campaign CRUD and start/pause/cancel transitions.
- Facebook webhook verification handshake and signed event intake.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED, HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN

from jyt_admin.api.crud_router import crud_router, query_filters
from jyt_admin.api.deps import Paging, db_session, paging, workflow_runner
from jyt_admin.api.schemas import (
    CampaignCreate,
    CampaignUpdate,
    SocialPostCreate,
    SocialPostUpdate,
)
from jyt_admin.auth.deps import require_roles
from jyt_admin.db.base import to_dict
from jyt_admin.db.models import PublishingCampaign, SocialPost
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.integrations.meta import verify_signature
from jyt_admin.observability.logging import get_logger
from jyt_admin.settings import Settings, get_settings
from jyt_admin.workflows.runner import WorkflowRunner
from jyt_admin.workflows.socials import (
    campaign_detail,
    cancel_campaign_workflow,
    create_campaign_workflow,
    delete_campaign_workflow,
    pause_campaign_workflow,
    publish_social_post_workflow,
    start_campaign_workflow,
    update_campaign_workflow,
)

log = get_logger(__name__)

posts_router = crud_router(
    SocialPost,
    prefix="/admin/socials/posts",
    singular="post",
    plural="posts",
    create_schema=SocialPostCreate,
    update_schema=SocialPostUpdate,
    filters=("platform", "status", "page_id"),
    tags=["socials"],
)

campaigns_router = APIRouter(
    prefix="/admin/socials/campaigns",
    tags=["socials"],
    dependencies=[Depends(require_roles("admin"))],
)

webhooks_router = APIRouter(prefix="/webhooks/social", tags=["webhooks"])


@posts_router.post("/{id}/publish")
async def publish_post(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(publish_social_post_workflow, {"id": str(id)})
    return {"post": result.result}


# --- campaigns -------------------------------------------------------------------


@campaigns_router.get("")
async def list_campaigns(
    request: Request,
    page: Paging = Depends(paging),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    rows, count = await CrudRepo(session, PublishingCampaign).list_and_count(
        query_filters(request, ("status", "platform")), offset=page.offset, limit=page.limit
    )
    return {
        "campaigns": [to_dict(r) for r in rows],
        "count": count,
        "offset": page.offset,
        "limit": page.limit,
    }


@campaigns_router.post("", status_code=HTTP_201_CREATED)
async def create_campaign(
    body: CampaignCreate, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(create_campaign_workflow, body.model_dump(mode="json"))
    return {"campaign": result.result}


@campaigns_router.get("/{id}")
async def retrieve_campaign(
    id: uuid.UUID, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    campaign = await CrudRepo(session, PublishingCampaign).retrieve(id)
    return {"campaign": await campaign_detail(session, campaign)}


@campaigns_router.put("/{id}")
async def update_campaign(
    id: uuid.UUID,
    body: CampaignUpdate,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    values = body.model_dump(mode="json", exclude_unset=True)
    result = await runner.run(update_campaign_workflow, {"id": str(id), "values": values})
    return {"campaign": result.result}


@campaigns_router.delete("/{id}")
async def delete_campaign(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(delete_campaign_workflow, {"id": str(id)})
    return result.result


@campaigns_router.post("/{id}/start")
async def start_campaign(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(start_campaign_workflow, {"id": str(id)})
    return {"campaign": result.result}


@campaigns_router.post("/{id}/pause")
async def pause_campaign(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(pause_campaign_workflow, {"id": str(id)})
    return {"campaign": result.result}


@campaigns_router.post("/{id}/cancel")
async def cancel_campaign(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(cancel_campaign_workflow, {"id": str(id)})
    return {"campaign": result.result}


# --- facebook webhook ------------------------------------------------------------


@webhooks_router.get("/facebook")
async def verify_facebook_webhook(
    mode: str | None = Query(default=None, alias="hub.mode"),
    token: str | None = Query(default=None, alias="hub.verify_token"),
    challenge: str | None = Query(default=None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
) -> PlainTextResponse:
    expected = settings.facebook_webhook_verify_token
    if mode == "subscribe" and expected and token == expected:
        return PlainTextResponse(challenge or "")
    raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Verification failed")


@webhooks_router.post("/facebook")
async def receive_facebook_webhook(
    request: Request, settings: Settings = Depends(get_settings)
) -> dict[str, Any]:
    body = await request.body()
    signature = request.headers.get("x-hub-signature-256")
    if not signature:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing signature")
    if not verify_signature(body, signature, settings.facebook_app_secret):
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        payload = {}
    log.info(
        "facebook_webhook_received",
        object=payload.get("object"),
        entries=len(payload.get("entry") or []),
    )
    return {"received": True}
