"""
jyt_admin.storage.base

Object storage boundary used by the media upload handshake.

Responsibilities:
- Define the operations the upload routes and workflows need (presign, multipart, delete).
- Build object keys and public URLs consistently.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True, slots=True)
class CompletedPart:
    part_number: int
    etag: str


@dataclass(frozen=True, slots=True)
class CompletedUpload:
    location: str
    key: str


class StorageBackend(Protocol):
    bucket: str

    async def presign_put(self, *, key: str, content_type: str, expires_in: int) -> str: ...

    async def create_multipart_upload(self, *, key: str, content_type: str) -> str: ...

    async def presign_part(
        self, *, key: str, upload_id: str, part_number: int, expires_in: int
    ) -> str: ...

    async def complete_multipart_upload(
        self, *, key: str, upload_id: str, parts: list[CompletedPart]
    ) -> CompletedUpload: ...

    async def abort_multipart_upload(self, *, key: str, upload_id: str) -> None: ...

    async def delete_object(self, *, key: str) -> None: ...

    def object_url(self, key: str) -> str: ...


_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def build_object_key(prefix: str, filename: str) -> str:
    """`<prefix>/<uuid>-<sanitized name>`, so concurrent uploads of one name never collide."""

    safe = _UNSAFE.sub("-", filename).strip("-") or "file"
    name = f"{uuid.uuid4().hex}-{safe}"
    return f"{prefix.strip('/')}/{name}" if prefix else name


def public_url(key: str, *, public_base: str | None, fallback: str) -> str:
    if public_base:
        return f"{public_base.rstrip('/')}/{key}"
    return fallback
