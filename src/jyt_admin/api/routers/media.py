"""
jyt_admin.api.routers.media

Media library and the server side of the chunked upload handshake.

Responsibilities:
- Folders (computed paths), albums and files.
- Presign single uploads; initiate, sign parts, complete and abort multipart uploads.
- Finalize uploaded objects into `MediaFile` rows via the finalize workflow.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_201_CREATED

from jyt_admin.api.crud_router import crud_router, query_filters
from jyt_admin.api.deps import Paging, db_session, paging, storage_from_app, workflow_runner
from jyt_admin.api.schemas import (
    AbortUploadRequest,
    CompleteUploadRequest,
    FinalizeSingleRequest,
    MediaAlbumCreate,
    MediaAlbumUpdate,
    MediaFolderCreate,
    PartsRequest,
    UploadFile,
    UploadFinalizeFields,
)
from jyt_admin.auth.deps import require_roles
from jyt_admin.db.base import to_dict
from jyt_admin.db.models import MediaAlbum, MediaFile, MediaFolder, album_media_files
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.errors import invalid_data
from jyt_admin.observability.logging import get_logger
from jyt_admin.settings import Settings, get_settings
from jyt_admin.storage.base import CompletedPart, StorageBackend, build_object_key, public_url
from jyt_admin.workflows.crud import crud_workflows
from jyt_admin.workflows.media import create_media_folder_workflow, finalize_upload_workflow
from jyt_admin.workflows.runner import WorkflowRunner

log = get_logger(__name__)

MAX_PART_NUMBER = 10_000

router = APIRouter(
    prefix="/admin/medias",
    tags=["media"],
    dependencies=[Depends(require_roles("admin"))],
)

albums_router = crud_router(
    MediaAlbum,
    prefix="/admin/medias/albums",
    singular="album",
    plural="albums",
    create_schema=MediaAlbumCreate,
    update_schema=MediaAlbumUpdate,
    filters=("is_public",),
    tags=["media"],
)


def _listing(key: str, rows: list[Any], count: int, page: Paging) -> dict[str, Any]:
    return {
        key: [to_dict(r) for r in rows],
        "count": count,
        "offset": page.offset,
        "limit": page.limit,
    }


# --- folders -------------------------------------------------------------------


@router.get("/folders")
async def list_folders(
    request: Request,
    page: Paging = Depends(paging),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    rows, count = await CrudRepo(session, MediaFolder).list_and_count(
        query_filters(request, ("parent_id",)),
        offset=page.offset,
        limit=page.limit,
        order_by=[MediaFolder.path],
    )
    return _listing("folders", rows, count, page)


@router.post("/folders", status_code=HTTP_201_CREATED)
async def create_folder(
    body: MediaFolderCreate, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(create_media_folder_workflow, body.model_dump(mode="json"))
    return {"folder": result.result}


@router.get("/folders/{id}")
async def retrieve_folder(
    id: uuid.UUID, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    return {"folder": to_dict(await CrudRepo(session, MediaFolder).retrieve(id))}


@router.delete("/folders/{id}")
async def delete_folder(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(crud_workflows(MediaFolder).delete, {"id": str(id)})
    return result.result


# --- files ---------------------------------------------------------------------


@router.get("/files")
async def list_files(
    request: Request,
    album_id: uuid.UUID | None = None,
    page: Paging = Depends(paging),
    session: AsyncSession = Depends(db_session),
) -> dict[str, Any]:
    filters = query_filters(request, ("folder_id", "file_type", "mime_type"))
    if album_id is not None:
        linked = select(album_media_files.c.media_file_id).where(
            album_media_files.c.album_id == album_id
        )
        filters["id"] = list((await session.execute(linked)).scalars().all())
    rows, count = await CrudRepo(session, MediaFile).list_and_count(
        filters, offset=page.offset, limit=page.limit
    )
    return _listing("files", rows, count, page)


@router.get("/files/{id}")
async def retrieve_file(
    id: uuid.UUID, session: AsyncSession = Depends(db_session)
) -> dict[str, Any]:
    file = await CrudRepo(session, MediaFile).retrieve(id)
    albums = select(album_media_files.c.album_id).where(album_media_files.c.media_file_id == id)
    album_ids = [str(a) for a in (await session.execute(albums)).scalars().all()]
    return {"file": {**to_dict(file), "album_ids": album_ids}}


@router.delete("/files/{id}")
async def delete_file(
    id: uuid.UUID, runner: WorkflowRunner = Depends(workflow_runner)
) -> dict[str, Any]:
    result = await runner.run(crud_workflows(MediaFile).delete, {"id": str(id)})
    return result.result


# --- uploads -------------------------------------------------------------------


def _finalize_input(body: UploadFinalizeFields, *, key: str, url: str) -> dict[str, Any]:
    return {
        "key": key,
        "original_name": body.name,
        "url": url,
        "size": body.size,
        "mime_type": body.type,
        "title": body.title,
        "alt_text": body.alt_text,
        "metadata": body.metadata,
        "album_ids": [str(a) for a in body.existingAlbumIds],
        "folder_id": str(body.existingFolderId) if body.existingFolderId else None,
    }


@router.post("/uploads/presign")
async def presign_upload(
    body: UploadFile,
    settings: Settings = Depends(get_settings),
    storage: StorageBackend = Depends(storage_from_app),
) -> dict[str, Any]:
    if body.size > settings.upload_small_file_threshold:
        raise invalid_data(
            "File is too large for a single upload; use the multipart endpoints",
            size=body.size,
            threshold=settings.upload_small_file_threshold,
        )
    key = build_object_key(settings.s3_key_prefix, body.name)
    url = await storage.presign_put(
        key=key, content_type=body.type, expires_in=settings.upload_presign_ttl_seconds
    )
    return {"url": url, "key": key, "method": "PUT"}


@router.post("/uploads/initiate")
async def initiate_upload(
    body: UploadFile,
    settings: Settings = Depends(get_settings),
    storage: StorageBackend = Depends(storage_from_app),
) -> dict[str, Any]:
    if -(-body.size // settings.upload_part_size) > MAX_PART_NUMBER:
        raise invalid_data("File needs more than 10000 parts", size=body.size)
    key = build_object_key(settings.s3_key_prefix, body.name)
    upload_id = await storage.create_multipart_upload(key=key, content_type=body.type)
    log.info("multipart_initiated", key=key, size=body.size)
    return {"uploadId": upload_id, "key": key, "partSize": settings.upload_part_size}


@router.post("/uploads/parts")
async def sign_parts(
    body: PartsRequest,
    settings: Settings = Depends(get_settings),
    storage: StorageBackend = Depends(storage_from_app),
) -> dict[str, Any]:
    bad = [n for n in body.partNumbers if not 1 <= n <= MAX_PART_NUMBER]
    if bad:
        raise invalid_data("Part numbers must be between 1 and 10000", part_numbers=bad)
    urls = [
        {
            "partNumber": n,
            "url": await storage.presign_part(
                key=body.key,
                upload_id=body.uploadId,
                part_number=n,
                expires_in=settings.upload_presign_ttl_seconds,
            ),
        }
        for n in sorted(set(body.partNumbers))
    ]
    return {"urls": urls}


@router.post("/uploads/complete")
async def complete_upload(
    body: CompleteUploadRequest,
    settings: Settings = Depends(get_settings),
    storage: StorageBackend = Depends(storage_from_app),
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    numbers = [p.PartNumber for p in body.parts]
    if len(set(numbers)) != len(numbers):
        raise invalid_data("Duplicate part numbers", part_numbers=numbers)
    if any(not 1 <= n <= MAX_PART_NUMBER for n in numbers):
        raise invalid_data("Part numbers must be between 1 and 10000", part_numbers=numbers)

    parts = sorted(
        (CompletedPart(part_number=p.PartNumber, etag=p.ETag) for p in body.parts),
        key=lambda p: p.part_number,
    )
    completed = await storage.complete_multipart_upload(
        key=body.key, upload_id=body.uploadId, parts=parts
    )
    url = public_url(
        completed.key, public_base=settings.file_public_base, fallback=completed.location
    )
    result = await runner.run(
        finalize_upload_workflow, _finalize_input(body, key=completed.key, url=url)
    )
    return {
        "message": "Upload completed",
        "s3": {"location": completed.location, "key": completed.key},
        "result": result.result,
    }


@router.post("/uploads/finalize-single")
async def finalize_single(
    body: FinalizeSingleRequest,
    settings: Settings = Depends(get_settings),
    storage: StorageBackend = Depends(storage_from_app),
    runner: WorkflowRunner = Depends(workflow_runner),
) -> dict[str, Any]:
    location = storage.object_url(body.key)
    url = public_url(body.key, public_base=settings.file_public_base, fallback=location)
    result = await runner.run(
        finalize_upload_workflow, _finalize_input(body, key=body.key, url=url)
    )
    return {
        "message": "Upload completed",
        "s3": {"location": location, "key": body.key},
        "result": result.result,
    }


@router.post("/uploads/abort")
async def abort_upload(
    body: AbortUploadRequest, storage: StorageBackend = Depends(storage_from_app)
) -> dict[str, Any]:
    await storage.abort_multipart_upload(key=body.key, upload_id=body.uploadId)
    log.info("multipart_aborted", key=body.key)
    return {"aborted": True, "key": body.key}


# --- Module Notes -----------------------------------------------------------
# Bytes never pass through this service: clients PUT directly to the pre-signed URLs and
# only report keys, sizes and ETags back.
