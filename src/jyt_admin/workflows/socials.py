"""
jyt_admin.workflows.socials

Social posts and publishing campaigns.

Responsibilities:
- Publish a single post through the Graph API client and record the outcome on the post.
- Campaign lifecycle workflows: create, start, pause, cancel, update, delete.
- Campaign detail stats and the periodic tick that publishes due items.

Campaign status flow: draft -> active <-> paused -> completed, with `cancelled` reachable
from draft, active and paused.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.db.base import to_dict, utcnow
from jyt_admin.db.models import (
    CampaignItem,
    CampaignItemStatus,
    CampaignStatus,
    ExternalStoreConnection,
    PublishingCampaign,
    SocialPlatform,
    SocialPost,
    SocialPostStatus,
)
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.errors import AppError, ErrorType, invalid_data, not_allowed
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.crud import as_uuid
from jyt_admin.workflows.engine import StepResponse, Workflow, create_step, node
from jyt_admin.workflows.runner import WorkflowRunner

CAMPAIGN_FIELDS = ("name", "platform", "page_id", "interval_hours", "metadata")
_EDITABLE = {CampaignStatus.draft, CampaignStatus.paused}


# --- queries -----------------------------------------------------------------


async def campaign_items(session: AsyncSession, campaign_id: uuid.UUID) -> list[CampaignItem]:
    stmt = (
        select(CampaignItem)
        .where(CampaignItem.campaign_id == campaign_id)
        .order_by(CampaignItem.position)
    )
    return list((await session.execute(stmt)).scalars().all())


async def campaign_detail(session: AsyncSession, campaign: PublishingCampaign) -> dict[str, Any]:
    items = await campaign_items(session, campaign.id)
    stats = {str(s): 0 for s in CampaignItemStatus}
    for item in items:
        stats[str(item.status)] += 1
    pending = [i for i in items if i.status == CampaignItemStatus.pending]
    next_item = min(
        pending,
        key=lambda i: (i.scheduled_at or datetime.max, i.position),
        default=None,
    )
    return {
        **to_dict(campaign),
        "items": [to_dict(i) for i in items],
        "stats": {**stats, "total": len(items)},
        "next_item": to_dict(next_item) if next_item is not None else None,
    }


async def access_token_for(session: AsyncSession, platform: str, page_id: str | None) -> str:
    stmt = select(ExternalStoreConnection).where(
        ExternalStoreConnection.provider == platform,
        ExternalStoreConnection.deleted_at.is_(None),
    )
    connections = list((await session.execute(stmt)).scalars().all())
    for conn in connections:
        if (conn.metadata_ or {}).get("page_id") == page_id:
            return conn.access_token
    if connections:
        return connections[0].access_token
    raise AppError(ErrorType.not_allowed, f"No {platform} connection configured")


# --- publishing --------------------------------------------------------------


async def publish_content(
    ctx: StepContext,
    *,
    platform: SocialPlatform,
    page_id: str | None,
    caption: str,
    media_urls: list[str],
) -> tuple[str, str | None]:
    if not page_id:
        raise invalid_data("A page_id is required to publish")
    token = await access_token_for(ctx.session, str(platform), page_id)
    if platform == SocialPlatform.instagram:
        if not media_urls:
            raise invalid_data("Instagram posts need at least one image")
        published = await ctx.graph.publish_instagram_post(
            ig_user_id=page_id, access_token=token, caption=caption, image_url=media_urls[0]
        )
    else:
        published = await ctx.graph.publish_page_post(
            page_id=page_id,
            access_token=token,
            message=caption,
            image_url=media_urls[0] if media_urls else None,
        )
    return published.id, published.url


async def _publish_post(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    post = await CrudRepo(ctx.session, SocialPost).retrieve(as_uuid(input["id"]))
    if post.status == SocialPostStatus.published:
        raise not_allowed(f"Social post {post.id} is already published")
    try:
        _, url = await publish_content(
            ctx,
            platform=post.platform,
            page_id=post.page_id,
            caption=post.caption,
            media_urls=list(post.media_urls or []),
        )
    except AppError as e:
        # Recorded on the post; the caller reads the outcome from `status`.
        post.status = SocialPostStatus.failed
        post.error_message = e.message
    else:
        post.status = SocialPostStatus.published
        post.posted_at = utcnow()
        post.post_url = url
        post.error_message = None
    await ctx.session.flush()
    if ctx.log is not None:
        ctx.log.info("social_post_published", post_id=str(post.id), status=str(post.status))
    return to_dict(post)


publish_social_post_workflow = Workflow(
    "publish-social-post", [node(create_step("publish-social-post", _publish_post))]
)


# --- campaign create / update / delete ---------------------------------------


def _item_rows(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "position": index,
            "caption": str(item.get("caption") or ""),
            "media_urls": list(item.get("media_urls") or []),
            "post_id": item.get("post_id"),
        }
        for index, item in enumerate(items)
    ]


async def _create_campaign(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    values = {k: v for k, v in input.items() if k in CAMPAIGN_FIELDS}
    if float(values.get("interval_hours", 24)) <= 0:
        raise invalid_data("interval_hours must be positive")
    campaign = await CrudRepo(ctx.session, PublishingCampaign).create(
        {**values, "status": CampaignStatus.draft}
    )
    items = CrudRepo(ctx.session, CampaignItem)
    for row in _item_rows(list(input.get("items") or [])):
        await items.create({**row, "campaign_id": campaign.id})
    return StepResponse(
        await campaign_detail(ctx.session, campaign), compensate_input=str(campaign.id)
    )


async def _remove_campaign(id: str, ctx: StepContext) -> None:
    campaign_id = as_uuid(id)
    items = CrudRepo(ctx.session, CampaignItem)
    for item in await campaign_items(ctx.session, campaign_id):
        await items.delete(item.id)
    await CrudRepo(ctx.session, PublishingCampaign).delete(campaign_id)


create_campaign_workflow = Workflow(
    "create-publishing-campaign",
    [node(create_step("create-publishing-campaign", _create_campaign, _remove_campaign))],
)


async def _update_campaign(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    repo = CrudRepo(ctx.session, PublishingCampaign)
    campaign_id = as_uuid(input["id"])
    campaign = await repo.retrieve(campaign_id)
    if campaign.status not in _EDITABLE:
        raise not_allowed(f"Campaign {campaign_id} can only be updated while draft or paused")
    values = {k: v for k, v in input.get("values", {}).items() if k in CAMPAIGN_FIELDS}
    if "interval_hours" in values and float(values["interval_hours"]) <= 0:
        raise invalid_data("interval_hours must be positive")
    previous = repo.snapshot(campaign, values.keys())
    campaign = await repo.update(campaign_id, values)
    return StepResponse(
        await campaign_detail(ctx.session, campaign),
        compensate_input={"id": str(campaign_id), "previous": previous},
    )


async def _restore_campaign(data: dict[str, Any], ctx: StepContext) -> None:
    await CrudRepo(ctx.session, PublishingCampaign).update(as_uuid(data["id"]), data["previous"])


update_campaign_workflow = Workflow(
    "update-publishing-campaign",
    [node(create_step("update-publishing-campaign", _update_campaign, _restore_campaign))],
)


async def _delete_campaign(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    repo = CrudRepo(ctx.session, PublishingCampaign)
    campaign_id = as_uuid(input["id"])
    campaign = await repo.retrieve(campaign_id)
    if campaign.status == CampaignStatus.active:
        raise not_allowed("An active campaign cannot be deleted; pause or cancel it first")
    await repo.soft_delete(campaign_id)
    return StepResponse(
        {"id": str(campaign_id), "deleted": True}, compensate_input=str(campaign_id)
    )


async def _undelete_campaign(id: str, ctx: StepContext) -> None:
    await CrudRepo(ctx.session, PublishingCampaign).restore(as_uuid(id))


delete_campaign_workflow = Workflow(
    "delete-publishing-campaign",
    [node(create_step("delete-publishing-campaign", _delete_campaign, _undelete_campaign))],
)


# --- campaign transitions ----------------------------------------------------


def _campaign_state(campaign: PublishingCampaign, items: list[CampaignItem]) -> dict[str, Any]:
    return {
        "id": str(campaign.id),
        "campaign": {
            "status": str(campaign.status),
            "started_at": campaign.started_at.isoformat() if campaign.started_at else None,
            "paused_at": campaign.paused_at.isoformat() if campaign.paused_at else None,
            "completed_at": campaign.completed_at.isoformat() if campaign.completed_at else None,
        },
        "items": [
            {
                "id": str(i.id),
                "status": str(i.status),
                "scheduled_at": i.scheduled_at.isoformat() if i.scheduled_at else None,
            }
            for i in items
        ],
    }


async def _restore_campaign_state(data: dict[str, Any], ctx: StepContext) -> None:
    await CrudRepo(ctx.session, PublishingCampaign).update(as_uuid(data["id"]), data["campaign"])
    items = CrudRepo(ctx.session, CampaignItem)
    for item in data["items"]:
        await items.update(
            as_uuid(item["id"]),
            {"status": item["status"], "scheduled_at": item["scheduled_at"]},
        )


async def _start_campaign(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    repo = CrudRepo(ctx.session, PublishingCampaign)
    campaign = await repo.retrieve(as_uuid(input["id"]))
    if campaign.status not in _EDITABLE:
        raise not_allowed(f"Campaign {campaign.id} is {campaign.status} and cannot be started")
    items = await campaign_items(ctx.session, campaign.id)
    pending = [i for i in items if i.status == CampaignItemStatus.pending]
    if not pending:
        raise not_allowed(f"Campaign {campaign.id} has no pending items")
    previous = _campaign_state(campaign, items)

    now = utcnow()
    interval = timedelta(hours=campaign.interval_hours)
    for index, item in enumerate(pending):
        item.scheduled_at = now + interval * index
    campaign.status = CampaignStatus.active
    campaign.started_at = campaign.started_at or now
    campaign.paused_at = None
    await ctx.session.flush()
    return StepResponse(await campaign_detail(ctx.session, campaign), compensate_input=previous)


async def _pause_campaign(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    campaign = await CrudRepo(ctx.session, PublishingCampaign).retrieve(as_uuid(input["id"]))
    if campaign.status != CampaignStatus.active:
        raise not_allowed(f"Campaign {campaign.id} is {campaign.status} and cannot be paused")
    previous = _campaign_state(campaign, await campaign_items(ctx.session, campaign.id))
    campaign.status = CampaignStatus.paused
    campaign.paused_at = utcnow()
    await ctx.session.flush()
    return StepResponse(await campaign_detail(ctx.session, campaign), compensate_input=previous)


async def _cancel_campaign(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    campaign = await CrudRepo(ctx.session, PublishingCampaign).retrieve(as_uuid(input["id"]))
    if campaign.status not in {CampaignStatus.draft, CampaignStatus.active, CampaignStatus.paused}:
        raise not_allowed(f"Campaign {campaign.id} is {campaign.status} and cannot be cancelled")
    items = await campaign_items(ctx.session, campaign.id)
    previous = _campaign_state(campaign, items)
    for item in items:
        if item.status == CampaignItemStatus.pending:
            item.status = CampaignItemStatus.skipped
    campaign.status = CampaignStatus.cancelled
    await ctx.session.flush()
    return StepResponse(await campaign_detail(ctx.session, campaign), compensate_input=previous)


start_campaign_workflow = Workflow(
    "start-publishing-campaign",
    [node(create_step("start-publishing-campaign", _start_campaign, _restore_campaign_state))],
)
pause_campaign_workflow = Workflow(
    "pause-publishing-campaign",
    [node(create_step("pause-publishing-campaign", _pause_campaign, _restore_campaign_state))],
)
cancel_campaign_workflow = Workflow(
    "cancel-publishing-campaign",
    [node(create_step("cancel-publishing-campaign", _cancel_campaign, _restore_campaign_state))],
)


# --- tick --------------------------------------------------------------------


async def _publish_due_items(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    now = datetime.fromisoformat(input["now"]) if input.get("now") else utcnow()
    campaigns = (
        (
            await ctx.session.execute(
                select(PublishingCampaign).where(
                    PublishingCampaign.status == CampaignStatus.active,
                    PublishingCampaign.deleted_at.is_(None),
                )
            )
        )
        .scalars()
        .all()
    )
    published: list[str] = []
    failed: list[str] = []
    completed: list[str] = []
    for campaign in campaigns:
        for item in await campaign_items(ctx.session, campaign.id):
            if item.status != CampaignItemStatus.pending:
                continue
            if item.scheduled_at is None or item.scheduled_at > now:
                continue
            try:
                await publish_content(
                    ctx,
                    platform=campaign.platform,
                    page_id=campaign.page_id,
                    caption=item.caption,
                    media_urls=list(item.media_urls or []),
                )
            except AppError as e:
                item.status = CampaignItemStatus.failed
                item.error = e.message
                failed.append(str(item.id))
            else:
                item.status = CampaignItemStatus.published
                item.published_at = now
                published.append(str(item.id))
        await ctx.session.flush()

        remaining = (
            await ctx.session.execute(
                select(func.count())
                .select_from(CampaignItem)
                .where(
                    CampaignItem.campaign_id == campaign.id,
                    CampaignItem.status == CampaignItemStatus.pending,
                )
            )
        ).scalar_one()
        if remaining == 0:
            campaign.status = CampaignStatus.completed
            campaign.completed_at = now
            completed.append(str(campaign.id))
    await ctx.session.flush()
    return {"published": published, "failed": failed, "completed": completed}


campaign_tick_workflow = Workflow(
    "publish-campaign-items", [node(create_step("publish-due-items", _publish_due_items))]
)


async def run_campaign_tick(runner: WorkflowRunner) -> dict[str, Any]:
    result = await runner.run(campaign_tick_workflow, {})
    return result.result


# --- Module Notes -----------------------------------------------------------
# Publishing failures are recorded on the post or campaign item rather than raised, so one
# failing item never rolls back the items published before it.
