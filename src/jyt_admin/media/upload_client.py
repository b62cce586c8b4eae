"""
jyt_admin.media.upload_client

Client side of the chunked media upload handshake.

Responsibilities:
- Queue files and upload up to `max_file_concurrency` of them at once.
- Small files: presigned single PUT, then `finalize-single`.
- Large files: initiate a multipart upload, request part URLs per batch, upload the parts
  of a batch in parallel with per-part retries, then `complete`.
- Pause / resume / retry per file and for all files; notify progress listeners.
- Abort the server-side multipart upload when a part exhausts its retries.
"""

from __future__ import annotations

import asyncio
import enum
import mimetypes
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from jyt_admin.observability.logging import get_logger
from jyt_admin.settings import Settings

log = get_logger(__name__)


class UploadStatus(enum.StrEnum):
    queued = "queued"
    uploading = "uploading"
    paused = "paused"
    completed = "completed"
    error = "error"


class UploadFailed(Exception):
    pass


@dataclass(slots=True)
class UploadItem:
    name: str
    data: bytes
    content_type: str
    album_ids: list[str] = field(default_factory=list)
    folder_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: UploadStatus = UploadStatus.queued
    uploaded_bytes: int = 0
    error: str | None = None
    result: dict[str, Any] | None = None
    # Multipart state survives pause/resume.
    upload_id: str | None = None
    key: str | None = None
    part_size: int | None = None
    etags: dict[int, str] = field(default_factory=dict)
    pause_requested: bool = False

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def progress(self) -> float:
        return 1.0 if self.size == 0 else min(1.0, self.uploaded_bytes / self.size)

    def _require_part_size(self) -> int:
        if not self.part_size:
            raise UploadFailed(f"{self.name}: multipart upload has not been initiated")
        return self.part_size

    def part_count(self) -> int:
        return max(1, -(-self.size // self._require_part_size()))

    def part(self, number: int) -> bytes:
        size = self._require_part_size()
        start = (number - 1) * size
        return self.data[start : start + size]


ProgressListener = Callable[[UploadItem], None]


class _Paused(Exception):
    pass


class UploadManager:
    """
    Drives uploads against the `/admin/medias/uploads` routes.

    `http` carries the API base URL and auth headers; presigned URLs are absolute and are
    requested through the same client.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_path: str = "/admin/medias/uploads",
        small_file_threshold: int = 5 * 1024 * 1024,
        max_file_concurrency: int = 2,
        max_part_concurrency: int = 4,
        part_retries: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        self._http = http
        self._base = base_path.rstrip("/")
        self._small = small_file_threshold
        self._file_slots = asyncio.Semaphore(max_file_concurrency)
        self._part_concurrency = max_part_concurrency
        self._retries = part_retries
        self._retry_delay = retry_delay
        self._items: dict[str, UploadItem] = {}
        self._listeners: list[ProgressListener] = []

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> UploadManager:
        return cls(
            http,
            small_file_threshold=settings.upload_small_file_threshold,
            max_file_concurrency=settings.upload_max_file_concurrency,
            max_part_concurrency=settings.upload_max_part_concurrency,
            part_retries=settings.upload_part_retries,
        )

    # --- queue -------------------------------------------------------------

    @property
    def items(self) -> list[UploadItem]:
        return list(self._items.values())

    def get(self, item_id: str) -> UploadItem:
        return self._items[item_id]

    def add(
        self,
        name: str,
        data: bytes,
        *,
        content_type: str | None = None,
        album_ids: list[str] | None = None,
        folder_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> UploadItem:
        item = UploadItem(
            name=name,
            data=data,
            content_type=content_type
            or mimetypes.guess_type(name)[0]
            or "application/octet-stream",
            album_ids=list(album_ids or []),
            folder_id=folder_id,
            metadata=dict(metadata or {}),
        )
        self._items[item.id] = item
        self._notify(item)
        return item

    def add_path(self, path: str | Path, **kwargs: Any) -> UploadItem:
        p = Path(path)
        return self.add(p.name, p.read_bytes(), **kwargs)

    def on_progress(self, listener: ProgressListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self, item: UploadItem) -> None:
        for listener in list(self._listeners):
            listener(item)

    async def run(self) -> list[UploadItem]:
        """Upload every queued item; returns them once each has settled."""

        queued = [i for i in self._items.values() if i.status == UploadStatus.queued]
        await asyncio.gather(*(self._guarded(i) for i in queued))
        return queued

    # --- controls ----------------------------------------------------------

    def pause(self, item_id: str) -> None:
        item = self._items[item_id]
        if item.status == UploadStatus.queued:
            item.status = UploadStatus.paused
            self._notify(item)
        elif item.status == UploadStatus.uploading:
            # Takes effect before the next batch of parts.
            item.pause_requested = True

    def resume(self, item_id: str) -> None:
        item = self._items[item_id]
        if item.status == UploadStatus.paused:
            item.pause_requested = False
            item.status = UploadStatus.queued
            self._notify(item)
        elif item.status == UploadStatus.uploading:
            # Withdraws a pause that has not taken effect yet.
            item.pause_requested = False

    def retry(self, item_id: str) -> None:
        item = self._items[item_id]
        if item.status == UploadStatus.error:
            item.error = None
            item.upload_id = item.key = item.part_size = None
            item.etags.clear()
            item.uploaded_bytes = 0
            item.status = UploadStatus.queued
            self._notify(item)

    def pause_all(self) -> None:
        for item_id in list(self._items):
            self.pause(item_id)

    def resume_all(self) -> None:
        for item_id in list(self._items):
            self.resume(item_id)

    def retry_all(self) -> None:
        for item_id in list(self._items):
            self.retry(item_id)

    # --- upload ------------------------------------------------------------

    async def _guarded(self, item: UploadItem) -> None:
        async with self._file_slots:
            if item.status != UploadStatus.queued:
                return
            item.status = UploadStatus.uploading
            self._notify(item)
            try:
                if item.size <= self._small:
                    item.result = await self._upload_single(item)
                else:
                    item.result = await self._upload_multipart(item)
            except _Paused:
                item.pause_requested = False
                item.status = UploadStatus.paused
                log.info("upload_paused", name=item.name, parts_done=len(item.etags))
            except (UploadFailed, httpx.HTTPError) as e:
                item.status = UploadStatus.error
                item.error = str(e)
                log.warning("upload_failed", name=item.name, error=str(e))
            else:
                item.status = UploadStatus.completed
                item.uploaded_bytes = item.size
            self._notify(item)

    async def _api(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        resp = await self._http.post(f"{self._base}/{path}", json=payload)
        if resp.status_code >= 400:
            raise UploadFailed(f"{path} failed ({resp.status_code}): {resp.text}")
        return resp.json()

    def _finalize_fields(self, item: UploadItem) -> dict[str, Any]:
        return {
            "name": item.name,
            "type": item.content_type,
            "size": item.size,
            "existingAlbumIds": item.album_ids,
            "existingFolderId": item.folder_id,
            "metadata": item.metadata,
        }

    async def _upload_single(self, item: UploadItem) -> dict[str, Any]:
        signed = await self._api(
            "presign", {"name": item.name, "type": item.content_type, "size": item.size}
        )
        await self._put_with_retries(
            signed["url"], item.data, headers={"Content-Type": item.content_type}, label="file"
        )
        item.uploaded_bytes = item.size
        self._notify(item)
        return await self._api(
            "finalize-single", {"key": signed["key"], **self._finalize_fields(item)}
        )

    async def _upload_multipart(self, item: UploadItem) -> dict[str, Any]:
        if item.upload_id is None:
            started = await self._api(
                "initiate", {"name": item.name, "type": item.content_type, "size": item.size}
            )
            item.upload_id, item.key = started["uploadId"], started["key"]
            item.part_size = int(started["partSize"])

        remaining = [n for n in range(1, item.part_count() + 1) if n not in item.etags]
        try:
            for offset in range(0, len(remaining), self._part_concurrency):
                if item.pause_requested:
                    raise _Paused()
                batch = remaining[offset : offset + self._part_concurrency]
                signed = await self._api(
                    "parts", {"uploadId": item.upload_id, "key": item.key, "partNumbers": batch}
                )
                urls = {int(u["partNumber"]): u["url"] for u in signed["urls"]}
                await self._upload_batch(item, batch, urls)
        except (UploadFailed, httpx.HTTPError):
            await self._abort(item)
            raise

        parts = [{"PartNumber": n, "ETag": item.etags[n]} for n in sorted(item.etags)]
        return await self._api(
            "complete",
            {
                "uploadId": item.upload_id,
                "key": item.key,
                "parts": parts,
                **self._finalize_fields(item),
            },
        )

    async def _upload_batch(
        self, item: UploadItem, batch: list[int], urls: dict[int, str]
    ) -> None:
        tasks = [asyncio.create_task(self._upload_part(item, n, urls[n])) for n in batch]
        try:
            await asyncio.gather(*tasks)
        finally:
            # A failed part cancels its siblings; none may record an ETag after abort.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _upload_part(self, item: UploadItem, number: int, url: str) -> None:
        chunk = item.part(number)
        resp = await self._put_with_retries(url, chunk, label=f"part {number}")
        etag = resp.headers.get("etag")
        if not etag:
            raise UploadFailed(f"part {number} returned no ETag")
        item.etags[number] = etag
        item.uploaded_bytes += len(chunk)
        self._notify(item)

    async def _put_with_retries(
        self, url: str, content: bytes, *, label: str, headers: dict[str, str] | None = None
    ) -> httpx.Response:
        last_error: Exception | None = None
        for attempt in range(1, self._retries + 1):
            try:
                resp = await self._http.put(url, content=content, headers=headers)
                if resp.status_code < 400:
                    return resp
                last_error = UploadFailed(f"{label} upload returned {resp.status_code}")
            except httpx.HTTPError as e:
                last_error = e
            if attempt < self._retries:
                await asyncio.sleep(self._retry_delay * attempt)
        raise UploadFailed(f"{label} failed after {self._retries} attempts: {last_error}")

    async def _abort(self, item: UploadItem) -> None:
        if item.upload_id is None:
            return
        try:
            await self._api("abort", {"uploadId": item.upload_id, "key": item.key})
        except (UploadFailed, httpx.HTTPError) as e:
            log.warning("upload_abort_failed", name=item.name, error=str(e))
        item.upload_id = None
        item.etags.clear()
        item.uploaded_bytes = 0
        self._notify(item)


# --- Module Notes -----------------------------------------------------------
# Pausing keeps the multipart upload open; resuming re-requests URLs only for the parts
# that have no ETag yet.
