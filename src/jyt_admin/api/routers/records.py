"""
jyt_admin.api.routers.records

Admin CRUD for the simple records: partners, persons, designs, task templates, customer
segments, leads, agreements and email templates.

Responsibilities:
- Build the standard CRUD routers via `crud_router`.
- Add person tag merging and bulk import (207 on partial failure).
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Depends
from fastapi.responses import JSONResponse
from starlette.status import HTTP_201_CREATED, HTTP_207_MULTI_STATUS, HTTP_400_BAD_REQUEST

from jyt_admin.api.crud_router import crud_router
from jyt_admin.api.deps import workflow_runner
from jyt_admin.api.schemas import (
    AgreementCreate,
    AgreementUpdate,
    CustomerSegmentCreate,
    CustomerSegmentUpdate,
    DesignCreate,
    DesignUpdate,
    EmailTemplateCreate,
    EmailTemplateUpdate,
    LeadCreate,
    LeadUpdate,
    PartnerCreate,
    PartnerUpdate,
    PersonCreate,
    PersonImportRequest,
    PersonTagsRequest,
    PersonUpdate,
    TaskTemplateCreate,
    TaskTemplateUpdate,
)
from jyt_admin.db.models import (
    Agreement,
    CustomerSegment,
    Design,
    EmailTemplate,
    Lead,
    Partner,
    Person,
    TaskTemplate,
)
from jyt_admin.workflows.persons import add_person_tags_workflow, import_persons
from jyt_admin.workflows.runner import WorkflowRunner

partners_router = crud_router(
    Partner,
    prefix="/admin/partners",
    singular="partner",
    plural="partners",
    create_schema=PartnerCreate,
    update_schema=PartnerUpdate,
    filters=("status", "handle"),
)

persons_router = crud_router(
    Person,
    prefix="/admin/persons",
    singular="person",
    plural="persons",
    create_schema=PersonCreate,
    update_schema=PersonUpdate,
    filters=("email", "state"),
)

designs_router = crud_router(
    Design,
    prefix="/admin/designs",
    singular="design",
    plural="designs",
    create_schema=DesignCreate,
    update_schema=DesignUpdate,
    filters=("status", "design_type"),
)

task_templates_router = crud_router(
    TaskTemplate,
    prefix="/admin/task-templates",
    singular="task_template",
    plural="task_templates",
    create_schema=TaskTemplateCreate,
    update_schema=TaskTemplateUpdate,
    filters=("name", "priority"),
    tags=["task-templates"],
)

segments_router = crud_router(
    CustomerSegment,
    prefix="/admin/ad-planning/segments",
    singular="segment",
    plural="segments",
    create_schema=CustomerSegmentCreate,
    update_schema=CustomerSegmentUpdate,
    filters=("segment_type", "is_active"),
)

leads_router = crud_router(
    Lead,
    prefix="/admin/leads",
    singular="lead",
    plural="leads",
    create_schema=LeadCreate,
    update_schema=LeadUpdate,
    filters=("status", "source", "email", "person_id"),
)

agreements_router = crud_router(
    Agreement,
    prefix="/admin/agreements",
    singular="agreement",
    plural="agreements",
    create_schema=AgreementCreate,
    update_schema=AgreementUpdate,
    filters=("status", "template_key"),
)

email_templates_router = crud_router(
    EmailTemplate,
    prefix="/admin/email-templates",
    singular="email_template",
    plural="email_templates",
    create_schema=EmailTemplateCreate,
    update_schema=EmailTemplateUpdate,
    filters=("template_key", "template_type", "is_active"),
    tags=["email-templates"],
)


@persons_router.post("/{id}/tags")
async def add_person_tags(
    id: uuid.UUID,
    body: PersonTagsRequest,
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    result = await runner.run(add_person_tags_workflow, {"id": str(id), "tags": body.tags})
    return {"person": result.result}


@persons_router.post("/import")
async def import_persons_batch(
    body: PersonImportRequest, runner: WorkflowRunner = Depends(workflow_runner)
) -> JSONResponse:
    created, errors = await import_persons(runner, body.persons)
    if not errors:
        status = HTTP_201_CREATED
    elif created:
        status = HTTP_207_MULTI_STATUS
    else:
        status = HTTP_400_BAD_REQUEST
    return JSONResponse(status_code=status, content={"persons": created, "errors": errors})
