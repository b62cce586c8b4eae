"""
jyt_admin.workflows.media

Media library workflows.

Responsibilities:
- Create folders with a computed path (`/<parent path>/<name>`).
- Finalize an uploaded object into a `MediaFile`, linking it to albums and a folder.
"""

from __future__ import annotations

import mimetypes
from typing import Any

from sqlalchemy import delete, insert

from jyt_admin.db.base import to_dict
from jyt_admin.db.models import MediaAlbum, MediaFile, MediaFileType, MediaFolder, album_media_files
from jyt_admin.db.repositories.crud import CrudRepo
from jyt_admin.errors import invalid_data
from jyt_admin.workflows.context import StepContext
from jyt_admin.workflows.crud import as_uuid
from jyt_admin.workflows.engine import StepResponse, Workflow, create_step, node

_ARCHIVE_TYPES = {
    "application/zip",
    "application/x-tar",
    "application/gzip",
    "application/x-7z-compressed",
    "application/x-rar-compressed",
}


def file_type_for(mime_type: str) -> MediaFileType:
    major = mime_type.split("/", 1)[0]
    if major in {"image", "video", "audio"}:
        return MediaFileType(major)
    if mime_type in _ARCHIVE_TYPES:
        return MediaFileType.archive
    if major == "text" or mime_type == "application/pdf" or "document" in mime_type:
        return MediaFileType.document
    return MediaFileType.other


def folder_path(parent: MediaFolder | None, name: str) -> str:
    base = parent.path.rstrip("/") if parent is not None else ""
    return f"{base}/{name}"


# --- folders -----------------------------------------------------------------


async def _create_folder(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    repo = CrudRepo(ctx.session, MediaFolder)
    data = dict(input)
    name = str(data.get("name") or "").strip()
    if not name or "/" in name:
        raise invalid_data("Folder name is required and cannot contain '/'")
    parent = await repo.retrieve(as_uuid(data["parent_id"])) if data.get("parent_id") else None
    data["path"] = folder_path(parent, name)
    folder = await repo.create(data)
    return StepResponse(folder, compensate_input=str(folder.id))


async def _delete_folder(id: str, ctx: StepContext) -> None:
    await CrudRepo(ctx.session, MediaFolder).delete(as_uuid(id))


create_media_folder_workflow = Workflow(
    "create-media-folder",
    [node(create_step("create-media-folder", _create_folder, _delete_folder))],
)


# --- finalize upload ---------------------------------------------------------


async def _validate_targets(input: dict[str, Any], ctx: StepContext) -> dict[str, Any]:
    album_ids = [str(as_uuid(a)) for a in input.get("album_ids") or []]
    for album_id in album_ids:
        await CrudRepo(ctx.session, MediaAlbum).retrieve(as_uuid(album_id))
    folder_id = input.get("folder_id")
    if folder_id:
        await CrudRepo(ctx.session, MediaFolder).retrieve(as_uuid(folder_id))
    return {"album_ids": album_ids, "folder_id": str(folder_id) if folder_id else None}


async def _create_media_file(input: dict[str, Any], ctx: StepContext) -> StepResponse:
    file = input["file"]
    targets = input["targets"]
    mime_type = file.get("mime_type") or (
        mimetypes.guess_type(file["original_name"])[0] or "application/octet-stream"
    )
    row = await CrudRepo(ctx.session, MediaFile).create(
        {
            "file_name": file["key"].rsplit("/", 1)[-1],
            "original_name": file["original_name"],
            "file_path": file["key"],
            "file_size": int(file.get("size") or 0),
            "mime_type": mime_type,
            "file_type": file_type_for(mime_type),
            "url": file["url"],
            "folder_id": targets["folder_id"],
            "title": file.get("title"),
            "alt_text": file.get("alt_text"),
            "metadata": dict(file.get("metadata") or {}),
        }
    )
    if targets["album_ids"]:
        await ctx.session.execute(
            insert(album_media_files),
            [{"album_id": as_uuid(a), "media_file_id": row.id} for a in targets["album_ids"]],
        )
        await ctx.session.flush()
    return StepResponse(
        {**to_dict(row), "album_ids": targets["album_ids"]}, compensate_input=str(row.id)
    )


async def _remove_media_file(id: str, ctx: StepContext) -> None:
    file_id = as_uuid(id)
    await ctx.session.execute(
        delete(album_media_files).where(album_media_files.c.media_file_id == file_id)
    )
    await CrudRepo(ctx.session, MediaFile).delete(file_id)


finalize_upload_workflow = Workflow(
    "finalize-media-upload",
    [
        node(
            create_step("validate-media-targets", _validate_targets),
            input=lambda s: {
                "album_ids": s["input"].get("album_ids"),
                "folder_id": s["input"].get("folder_id"),
            },
        ),
        node(
            create_step("create-media-file", _create_media_file, _remove_media_file),
            input=lambda s: {
                "file": s["input"],
                "targets": s["results"]["validate-media-targets"],
            },
        ),
    ],
)


# --- Module Notes -----------------------------------------------------------
# The storage object is not deleted by compensation: a failed finalize leaves an orphan
# object that can be retried with the same key.
