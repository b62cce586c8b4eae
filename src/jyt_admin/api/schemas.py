"""
jyt_admin.api.schemas

Request bodies for the admin and partner APIs.

Responses are plain dicts built from `db.base.to_dict`, so only inputs are modelled here.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from jyt_admin.db.models import (
    AgreementStatus,
    BlockStatus,
    BlockType,
    DesignStatus,
    FlowStatus,
    FlowTriggerType,
    LeadStatus,
    PageStatus,
    PartnerStatus,
    SegmentType,
    SocialPlatform,
    WebsiteStatus,
)

_EMAIL = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class _Body(BaseModel):
    model_config = ConfigDict(extra="forbid")


# --- partners / persons --------------------------------------------------------


class PartnerCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    handle: str = Field(min_length=1, max_length=128, pattern=r"^[a-z0-9][a-z0-9-]*$")
    email: str | None = Field(default=None, pattern=_EMAIL)
    logo_url: str | None = None
    status: PartnerStatus = PartnerStatus.active
    metadata: dict[str, Any] = Field(default_factory=dict)


class PartnerUpdate(_Body):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    handle: str | None = Field(default=None, min_length=1, max_length=128)
    email: str | None = Field(default=None, pattern=_EMAIL)
    logo_url: str | None = None
    status: PartnerStatus | None = None
    metadata: dict[str, Any] | None = None


class PersonCreate(_Body):
    first_name: str = Field(min_length=1, max_length=128)
    last_name: str | None = None
    email: str = Field(pattern=_EMAIL)
    phone: str | None = None
    state: str | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class PersonUpdate(_Body):
    first_name: str | None = Field(default=None, min_length=1, max_length=128)
    last_name: str | None = None
    email: str | None = Field(default=None, pattern=_EMAIL)
    phone: str | None = None
    state: str | None = None
    tags: list[str] | None = None
    metadata: dict[str, Any] | None = None


class PersonTagsRequest(_Body):
    tags: list[str] = Field(min_length=1)


class PersonImportRequest(_Body):
    persons: list[dict[str, Any]] = Field(min_length=1, max_length=1000)


# --- segments / leads / agreements / email templates ----------------------------


class SegmentRule(_Body):
    field: str = Field(min_length=1)
    operator: Literal["=", "!=", ">", ">=", "<", "<=", "in", "not_in", "contains"]
    value: Any = None


class SegmentCriteria(_Body):
    rules: list[SegmentRule] = Field(min_length=1)
    logic: Literal["AND", "OR"] = "AND"


class CustomerSegmentCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    description: str | None = None
    segment_type: SegmentType = SegmentType.custom
    criteria: SegmentCriteria
    is_active: bool = True
    auto_update: bool = False
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    metadata: dict[str, Any] = Field(default_factory=dict)


class CustomerSegmentUpdate(_Body):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = None
    segment_type: SegmentType | None = None
    criteria: SegmentCriteria | None = None
    is_active: bool | None = None
    auto_update: bool | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    metadata: dict[str, Any] | None = None


class LeadCreate(_Body):
    email: str | None = Field(default=None, pattern=_EMAIL)
    full_name: str | None = None
    phone: str | None = None
    source: str = "manual"
    campaign_name: str | None = None
    status: LeadStatus = LeadStatus.new
    notes: str | None = None
    person_id: uuid.UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class LeadUpdate(_Body):
    email: str | None = Field(default=None, pattern=_EMAIL)
    full_name: str | None = None
    phone: str | None = None
    campaign_name: str | None = None
    status: LeadStatus | None = None
    notes: str | None = None
    person_id: uuid.UUID | None = None
    metadata: dict[str, Any] | None = None


class AgreementCreate(_Body):
    title: str = Field(min_length=1, max_length=256)
    content: str = Field(min_length=1)
    subject: str | None = None
    template_key: str | None = None
    from_email: str | None = Field(default=None, pattern=_EMAIL)
    status: AgreementStatus = AgreementStatus.draft
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _window(self) -> AgreementCreate:
        if self.valid_from and self.valid_until and self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class AgreementUpdate(_Body):
    title: str | None = Field(default=None, min_length=1, max_length=256)
    content: str | None = Field(default=None, min_length=1)
    subject: str | None = None
    template_key: str | None = None
    from_email: str | None = Field(default=None, pattern=_EMAIL)
    status: AgreementStatus | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    metadata: dict[str, Any] | None = None


class EmailTemplateCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    template_key: str = Field(min_length=1, max_length=128, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    subject: str = Field(min_length=1, max_length=512)
    html_content: str = Field(min_length=1)
    from_email: str | None = Field(default=None, pattern=_EMAIL)
    template_type: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class EmailTemplateUpdate(_Body):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    subject: str | None = Field(default=None, min_length=1, max_length=512)
    html_content: str | None = Field(default=None, min_length=1)
    from_email: str | None = Field(default=None, pattern=_EMAIL)
    template_type: str | None = None
    variables: dict[str, Any] | None = None
    is_active: bool | None = None


# --- designs / task templates ----------------------------------------------------


class DesignCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    description: str | None = None
    design_type: str | None = None
    status: DesignStatus = DesignStatus.conceptual
    thumbnail_url: str | None = None
    color_palette: list[Any] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    estimated_cost: float | None = Field(default=None, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class DesignUpdate(_Body):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = None
    design_type: str | None = None
    status: DesignStatus | None = None
    thumbnail_url: str | None = None
    color_palette: list[Any] | None = None
    tags: list[str] | None = None
    estimated_cost: float | None = Field(default=None, ge=0)
    metadata: dict[str, Any] | None = None


class TaskTemplateCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    description: str | None = None
    priority: str = "medium"
    estimated_duration: int | None = Field(default=None, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TaskTemplateUpdate(_Body):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = None
    priority: str | None = None
    estimated_duration: int | None = Field(default=None, ge=0)
    metadata: dict[str, Any] | None = None


# --- production runs -------------------------------------------------------------


class ProductionRunCreate(_Body):
    design_id: uuid.UUID
    partner_id: uuid.UUID | None = None
    quantity: float | None = Field(default=None, gt=0)
    role: str | None = None
    task_ids: list[uuid.UUID] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class Assignment(_Body):
    partner_id: uuid.UUID
    role: str | None = None
    quantity: float | None = Field(default=None, gt=0)


class ApproveRequest(_Body):
    assignments: list[Assignment] = Field(default_factory=list)


class ResumeDispatchRequest(_Body):
    transaction_id: uuid.UUID
    template_names: list[str] = Field(min_length=1)


# --- websites / pages / blocks ----------------------------------------------------


class WebsiteCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    domain: str = Field(min_length=1, max_length=256)
    description: str | None = None
    status: WebsiteStatus = WebsiteStatus.development
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebsiteUpdate(_Body):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    domain: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = None
    status: WebsiteStatus | None = None
    metadata: dict[str, Any] | None = None


class PageCreate(_Body):
    title: str = Field(min_length=1, max_length=256)
    slug: str = Field(min_length=1, max_length=256, pattern=r"^[a-z0-9][a-z0-9/-]*$")
    content: str | None = None
    page_type: str = "Custom"
    status: PageStatus = PageStatus.draft
    metadata: dict[str, Any] = Field(default_factory=dict)


class PageUpdate(_Body):
    title: str | None = Field(default=None, min_length=1, max_length=256)
    slug: str | None = Field(default=None, min_length=1, max_length=256)
    content: str | None = None
    page_type: str | None = None
    status: PageStatus | None = None
    metadata: dict[str, Any] | None = None


class BlockCreate(_Body):
    name: str | None = Field(default=None, max_length=256)
    type: BlockType
    content: dict[str, Any] = Field(default_factory=dict)
    settings: dict[str, Any] = Field(default_factory=dict)
    status: BlockStatus = BlockStatus.active
    order: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)


class BlockBatchRequest(_Body):
    blocks: list[BlockCreate] = Field(min_length=1)


class BlockUpdate(_Body):
    name: str | None = Field(default=None, max_length=256)
    type: BlockType | None = None
    content: dict[str, Any] | None = None
    settings: dict[str, Any] | None = None
    status: BlockStatus | None = None
    order: int | None = None
    metadata: dict[str, Any] | None = None


# --- media --------------------------------------------------------------------------


class MediaFolderCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    parent_id: uuid.UUID | None = None
    is_public: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)


class MediaAlbumCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    description: str | None = None
    is_public: bool = True
    cover_media_id: uuid.UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MediaAlbumUpdate(_Body):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = None
    is_public: bool | None = None
    cover_media_id: uuid.UUID | None = None
    metadata: dict[str, Any] | None = None


class UploadFile(BaseModel):
    name: str = Field(min_length=1, max_length=512)
    type: str = Field(default="application/octet-stream", max_length=256)
    size: int = Field(ge=0)


class UploadFinalizeFields(UploadFile):
    existingAlbumIds: list[uuid.UUID] = Field(default_factory=list)
    existingFolderId: uuid.UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    title: str | None = None
    alt_text: str | None = None


class PartsRequest(BaseModel):
    uploadId: str = Field(min_length=1)
    key: str = Field(min_length=1)
    partNumbers: list[int] = Field(min_length=1, max_length=1000)


class CompletedPartIn(BaseModel):
    PartNumber: int
    ETag: str = Field(min_length=1)


class CompleteUploadRequest(UploadFinalizeFields):
    uploadId: str = Field(min_length=1)
    key: str = Field(min_length=1)
    parts: list[CompletedPartIn] = Field(min_length=1)


class FinalizeSingleRequest(UploadFinalizeFields):
    key: str = Field(min_length=1)


class AbortUploadRequest(BaseModel):
    uploadId: str = Field(min_length=1)
    key: str = Field(min_length=1)


# --- visual flows -------------------------------------------------------------------


class FlowOperationIn(_Body):
    operation_key: str = Field(min_length=1, max_length=128)
    operation_type: str = Field(min_length=1, max_length=64)
    name: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    position_x: float = 0
    position_y: float = 0
    sort_order: int = 0


class FlowConnectionIn(_Body):
    source_id: str = Field(min_length=1, max_length=128)
    target_id: str = Field(min_length=1, max_length=128)
    source_handle: str = "default"
    target_handle: str = "default"
    connection_type: str = "default"
    condition: dict[str, Any] | None = None
    label: str | None = None
    style: dict[str, Any] | None = None


class VisualFlowCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    description: str | None = None
    status: FlowStatus = FlowStatus.draft
    icon: str | None = None
    color: str | None = None
    trigger_type: FlowTriggerType = FlowTriggerType.manual
    trigger_config: dict[str, Any] = Field(default_factory=dict)
    canvas_state: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    operations: list[FlowOperationIn] = Field(default_factory=list)
    connections: list[FlowConnectionIn] = Field(default_factory=list)


class VisualFlowUpdate(_Body):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    trigger_type: FlowTriggerType | None = None
    trigger_config: dict[str, Any] | None = None
    canvas_state: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    operations: list[FlowOperationIn] | None = None
    connections: list[FlowConnectionIn] | None = None


class CanvasUpdate(_Body):
    canvas_state: dict[str, Any]


class DuplicateFlowRequest(_Body):
    name: str | None = Field(default=None, max_length=256)


class ExecuteFlowRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)


# --- socials ------------------------------------------------------------------------


class SocialPostCreate(_Body):
    platform: SocialPlatform
    page_id: str | None = None
    caption: str = ""
    media_urls: list[str] = Field(default_factory=list)
    scheduled_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SocialPostUpdate(_Body):
    page_id: str | None = None
    caption: str | None = None
    media_urls: list[str] | None = None
    scheduled_at: datetime | None = None
    metadata: dict[str, Any] | None = None


class CampaignItemIn(_Body):
    caption: str = ""
    media_urls: list[str] = Field(default_factory=list)
    post_id: uuid.UUID | None = None


class CampaignCreate(_Body):
    name: str = Field(min_length=1, max_length=256)
    platform: SocialPlatform
    page_id: str | None = None
    interval_hours: float = Field(default=24, gt=0)
    metadata: dict[str, Any] = Field(default_factory=dict)
    items: list[CampaignItemIn] = Field(default_factory=list)


class CampaignUpdate(_Body):
    name: str | None = Field(default=None, min_length=1, max_length=256)
    page_id: str | None = None
    interval_hours: float | None = Field(default=None, gt=0)
    metadata: dict[str, Any] | None = None
