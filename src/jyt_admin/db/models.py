"""
jyt_admin.db.models

Persistence schema for the back-office domain.

Responsibilities:
- Define ORM models for each domain module:
  - partners and persons (CRM), customer segments, leads, agreements and email templates
  - designs, task templates, tasks and production runs
  - websites, pages and blocks
  - media folders, albums and files
  - visual flows (operations, connections, executions, execution logs)
  - social posts and publishing campaigns
  - external store connections and OAuth state
  - workflow executions (saga checkpoints)
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid as SAUuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from jyt_admin.db.base import Base, IdMixin, SoftDeleteMixin, TimestampMixin, str_enum, utcnow


# --- Partners / persons ------------------------------------------------------


class PartnerStatus(enum.StrEnum):
    active = "active"
    inactive = "inactive"
    pending = "pending"


class Partner(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "partners"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    handle: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    logo_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    status: Mapped[PartnerStatus] = mapped_column(
        str_enum(PartnerStatus), nullable=False, default=PartnerStatus.active
    )
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class Person(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "persons"

    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    state: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class SegmentType(enum.StrEnum):
    behavioral = "behavioral"
    demographic = "demographic"
    rfm = "rfm"
    engagement = "engagement"
    custom = "custom"


class CustomerSegment(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "customer_segments"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    segment_type: Mapped[SegmentType] = mapped_column(
        str_enum(SegmentType), nullable=False, default=SegmentType.custom
    )
    # `{"rules": [{"field", "operator", "value"}], "logic": "AND" | "OR"}`
    criteria: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    auto_update: Mapped[bool] = mapped_column(nullable=False, default=False)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    customer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class LeadStatus(enum.StrEnum):
    new = "new"
    contacted = "contacted"
    qualified = "qualified"
    converted = "converted"
    archived = "archived"


class Lead(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "leads"

    email: Mapped[str | None] = mapped_column(String(256), nullable=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    source: Mapped[str] = mapped_column(String(64), nullable=False, default="manual")
    campaign_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    status: Mapped[LeadStatus] = mapped_column(
        str_enum(LeadStatus), nullable=False, default=LeadStatus.new
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    person_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("persons.id"), nullable=True
    )
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class AgreementStatus(enum.StrEnum):
    draft = "draft"
    active = "active"
    archived = "archived"


class Agreement(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "agreements"

    title: Mapped[str] = mapped_column(String(256), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    subject: Mapped[str | None] = mapped_column(String(512), nullable=True)
    template_key: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    from_email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    status: Mapped[AgreementStatus] = mapped_column(
        str_enum(AgreementStatus), nullable=False, default=AgreementStatus.draft
    )
    valid_from: Mapped[datetime | None] = mapped_column(nullable=True)
    valid_until: Mapped[datetime | None] = mapped_column(nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class EmailTemplate(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "email_templates"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    template_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    html_content: Mapped[str] = mapped_column(Text, nullable=False)
    from_email: Mapped[str | None] = mapped_column(String(256), nullable=True)
    template_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Placeholder name -> description, e.g. `{"customer_first_name": "First name"}`.
    variables: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)


# --- Designs / production ----------------------------------------------------


class DesignStatus(enum.StrEnum):
    conceptual = "conceptual"
    in_development = "in_development"
    technical_review = "technical_review"
    sample_production = "sample_production"
    revision = "revision"
    approved = "approved"
    rejected = "rejected"


class Design(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "designs"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    design_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[DesignStatus] = mapped_column(
        str_enum(DesignStatus), nullable=False, default=DesignStatus.conceptual
    )
    thumbnail_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    color_palette: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    estimated_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class TaskTemplate(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "task_templates"

    name: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(32), nullable=False, default="medium")
    estimated_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class TaskStatus(enum.StrEnum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class Task(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "tasks"

    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[TaskStatus] = mapped_column(
        str_enum(TaskStatus), nullable=False, default=TaskStatus.pending
    )
    priority: Mapped[str] = mapped_column(String(32), nullable=False, default="medium")
    template_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    parent_task_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("tasks.id"), nullable=True
    )
    production_run_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("production_runs.id"), nullable=True, index=True
    )
    partner_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("partners.id"), nullable=True, index=True
    )
    design_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("designs.id"), nullable=True
    )
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class ProductionRunStatus(enum.StrEnum):
    pending_review = "pending_review"
    approved = "approved"
    sent_to_partner = "sent_to_partner"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class ProductionRun(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "production_runs"

    design_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("designs.id"), nullable=False, index=True
    )
    partner_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("partners.id"), nullable=True, index=True
    )
    parent_run_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("production_runs.id"), nullable=True, index=True
    )
    status: Mapped[ProductionRunStatus] = mapped_column(
        str_enum(ProductionRunStatus),
        nullable=False,
        default=ProductionRunStatus.pending_review,
        index=True,
    )
    quantity: Mapped[float | None] = mapped_column(Float, nullable=True)
    role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    captured_at: Mapped[datetime | None] = mapped_column(nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


# --- Websites ----------------------------------------------------------------


class WebsiteStatus(enum.StrEnum):
    active = "Active"
    inactive = "Inactive"
    maintenance = "Maintenance"
    development = "Development"


class Website(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "websites"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    domain: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[WebsiteStatus] = mapped_column(
        str_enum(WebsiteStatus), nullable=False, default=WebsiteStatus.development
    )
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class PageStatus(enum.StrEnum):
    draft = "Draft"
    published = "Published"
    archived = "Archived"


class Page(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "pages"
    __table_args__ = (UniqueConstraint("website_id", "slug", name="uq_pages_website_slug"),)

    website_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("websites.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    slug: Mapped[str] = mapped_column(String(256), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    page_type: Mapped[str] = mapped_column(String(64), nullable=False, default="Custom")
    status: Mapped[PageStatus] = mapped_column(
        str_enum(PageStatus), nullable=False, default=PageStatus.draft
    )
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class BlockType(enum.StrEnum):
    hero = "Hero"
    header = "Header"
    footer = "Footer"
    feature = "Feature"
    gallery = "Gallery"
    testimonial = "Testimonial"
    main_content = "MainContent"
    contact_form = "ContactForm"
    product = "Product"
    section = "Section"
    custom = "Custom"


# Block types that may appear at most once on a page.
UNIQUE_BLOCK_TYPES: frozenset[BlockType] = frozenset(
    {
        BlockType.hero,
        BlockType.header,
        BlockType.footer,
        BlockType.main_content,
        BlockType.contact_form,
    }
)


class BlockStatus(enum.StrEnum):
    active = "Active"
    inactive = "Inactive"
    draft = "Draft"


class Block(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "blocks"
    __table_args__ = (Index("ix_blocks_page_type", "page_id", "type"),)

    page_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("pages.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    type: Mapped[BlockType] = mapped_column(str_enum(BlockType), nullable=False)
    content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[BlockStatus] = mapped_column(
        str_enum(BlockStatus), nullable=False, default=BlockStatus.active
    )
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


# --- Media -------------------------------------------------------------------


class MediaFolder(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "media_folders"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("media_folders.id"), nullable=True, index=True
    )
    path: Mapped[str] = mapped_column(String(2048), nullable=False, default="/")
    is_public: Mapped[bool] = mapped_column(nullable=False, default=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class MediaAlbum(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "media_albums"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_public: Mapped[bool] = mapped_column(nullable=False, default=True)
    cover_media_id: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class MediaFileType(enum.StrEnum):
    image = "image"
    video = "video"
    audio = "audio"
    document = "document"
    archive = "archive"
    other = "other"


album_media_files = Table(
    "album_media_files",
    Base.metadata,
    Column("album_id", SAUuid(as_uuid=True), ForeignKey("media_albums.id"), primary_key=True),
    Column("media_file_id", SAUuid(as_uuid=True), ForeignKey("media_files.id"), primary_key=True),
)


class MediaFile(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "media_files"

    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    original_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_path: Mapped[str] = mapped_column(String(2048), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String(256), nullable=False)
    file_type: Mapped[MediaFileType] = mapped_column(
        str_enum(MediaFileType), nullable=False, default=MediaFileType.other
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    folder_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("media_folders.id"), nullable=True, index=True
    )
    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    alt_text: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


# --- Visual flows ------------------------------------------------------------


class FlowStatus(enum.StrEnum):
    active = "active"
    inactive = "inactive"
    draft = "draft"


class FlowTriggerType(enum.StrEnum):
    event = "event"
    schedule = "schedule"
    webhook = "webhook"
    manual = "manual"
    another_flow = "another_flow"


class ConnectionType(enum.StrEnum):
    success = "success"
    failure = "failure"
    default = "default"


class VisualFlow(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "visual_flows"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[FlowStatus] = mapped_column(
        str_enum(FlowStatus), nullable=False, default=FlowStatus.draft, index=True
    )
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    trigger_type: Mapped[FlowTriggerType] = mapped_column(
        str_enum(FlowTriggerType), nullable=False, default=FlowTriggerType.manual
    )
    trigger_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    canvas_state: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class VisualFlowOperation(IdMixin, TimestampMixin, Base):
    __tablename__ = "visual_flow_operations"
    __table_args__ = (
        UniqueConstraint("flow_id", "operation_key", name="uq_flow_operation_key"),
    )

    flow_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("visual_flows.id"), nullable=False, index=True
    )
    operation_key: Mapped[str] = mapped_column(String(128), nullable=False)
    operation_type: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    options: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    position_x: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    position_y: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class VisualFlowConnection(IdMixin, TimestampMixin, Base):
    __tablename__ = "visual_flow_connections"

    flow_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("visual_flows.id"), nullable=False, index=True
    )
    # Operation keys; `trigger` is the virtual entry node.
    source_id: Mapped[str] = mapped_column(String(128), nullable=False)
    target_id: Mapped[str] = mapped_column(String(128), nullable=False)
    source_handle: Mapped[str] = mapped_column(String(64), nullable=False, default="default")
    target_handle: Mapped[str] = mapped_column(String(64), nullable=False, default="default")
    connection_type: Mapped[ConnectionType] = mapped_column(
        str_enum(ConnectionType), nullable=False, default=ConnectionType.default
    )
    condition: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    label: Mapped[str | None] = mapped_column(String(256), nullable=True)
    style: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)


class FlowExecutionStatus(enum.StrEnum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class VisualFlowExecution(IdMixin, Base):
    __tablename__ = "visual_flow_executions"
    __table_args__ = (Index("ix_flow_executions_flow_started", "flow_id", "started_at"),)

    flow_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("visual_flows.id"), nullable=False
    )
    status: Mapped[FlowExecutionStatus] = mapped_column(
        str_enum(FlowExecutionStatus), nullable=False, default=FlowExecutionStatus.pending
    )
    trigger_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    data_chain: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    triggered_by: Mapped[str | None] = mapped_column(String(256), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)


class OperationLogStatus(enum.StrEnum):
    running = "running"
    success = "success"
    failure = "failure"
    skipped = "skipped"


class VisualFlowExecutionLog(IdMixin, Base):
    __tablename__ = "visual_flow_execution_logs"

    execution_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("visual_flow_executions.id"), nullable=False, index=True
    )
    operation_id: Mapped[uuid.UUID | None] = mapped_column(SAUuid(as_uuid=True), nullable=True)
    operation_key: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[OperationLogStatus] = mapped_column(
        str_enum(OperationLogStatus), nullable=False
    )
    input_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    output_data: Mapped[Any] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    executed_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)


# --- Socials -----------------------------------------------------------------


class SocialPlatform(enum.StrEnum):
    facebook = "facebook"
    instagram = "instagram"


class SocialPostStatus(enum.StrEnum):
    draft = "draft"
    scheduled = "scheduled"
    published = "published"
    failed = "failed"


class SocialPost(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "social_posts"

    platform: Mapped[SocialPlatform] = mapped_column(str_enum(SocialPlatform), nullable=False)
    page_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    caption: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_urls: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[SocialPostStatus] = mapped_column(
        str_enum(SocialPostStatus), nullable=False, default=SocialPostStatus.draft
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    post_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class CampaignStatus(enum.StrEnum):
    draft = "draft"
    active = "active"
    paused = "paused"
    completed = "completed"
    cancelled = "cancelled"


class PublishingCampaign(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "publishing_campaigns"

    name: Mapped[str] = mapped_column(String(256), nullable=False)
    platform: Mapped[SocialPlatform] = mapped_column(str_enum(SocialPlatform), nullable=False)
    page_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[CampaignStatus] = mapped_column(
        str_enum(CampaignStatus), nullable=False, default=CampaignStatus.draft, index=True
    )
    interval_hours: Mapped[float] = mapped_column(Float, nullable=False, default=24)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paused_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


class CampaignItemStatus(enum.StrEnum):
    pending = "pending"
    published = "published"
    failed = "failed"
    skipped = "skipped"


class CampaignItem(IdMixin, TimestampMixin, Base):
    __tablename__ = "campaign_items"

    campaign_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("publishing_campaigns.id"), nullable=False, index=True
    )
    post_id: Mapped[uuid.UUID | None] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("social_posts.id"), nullable=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    caption: Mapped[str] = mapped_column(Text, nullable=False, default="")
    media_urls: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[CampaignItemStatus] = mapped_column(
        str_enum(CampaignItemStatus), nullable=False, default=CampaignItemStatus.pending
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)


# --- External stores ---------------------------------------------------------


class OAuthState(IdMixin, Base):
    __tablename__ = "oauth_states"

    state: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)
    code_verifier: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)


class ExternalStoreConnection(IdMixin, TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "external_store_connections"

    provider: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_type: Mapped[str] = mapped_column(String(32), nullable=False, default="Bearer")
    scope: Mapped[str | None] = mapped_column(String(512), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )


# --- Workflow checkpoints ----------------------------------------------------


class WorkflowStatus(enum.StrEnum):
    running = "running"
    waiting = "waiting"
    completed = "completed"
    failed = "failed"
    compensated = "compensated"


class WorkflowExecution(TimestampMixin, Base):
    __tablename__ = "workflow_executions"
    __table_args__ = (Index("ix_workflow_executions_name_status", "workflow_name", "status"),)

    # The transaction id handed back to callers (e.g. start-dispatch).
    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workflow_name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[WorkflowStatus] = mapped_column(str_enum(WorkflowStatus), nullable=False)
    input: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    results: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    compensations: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    log: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    waiting_reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    waiting_payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor: Mapped[str | None] = mapped_column(String(256), nullable=True)


# --- Module Notes -----------------------------------------------------------
# Enum values are stored (see `db.base.str_enum`), so they are part of the API contract.
# Visual-flow connections reference operations by key, which keeps a flow definition
# portable between create/update/duplicate without id remapping.
