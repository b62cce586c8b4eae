from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from jyt_admin.media.upload_client import (
    UploadFailed,
    UploadItem,
    UploadManager,
    UploadStatus,
)

API = "http://api.test"


class FakeUploadApi:
    """Plays both the admin upload routes and the storage endpoints."""

    def __init__(
        self,
        *,
        part_size: int = 4,
        fail_part: int | None = None,
        slow_part: int | None = None,
    ) -> None:
        self.part_size = part_size
        self.fail_part = fail_part
        self.slow_part = slow_part
        self.part_requests: list[list[int]] = []
        self.calls: list[str] = []
        self.stored: dict[str, bytes] = {}
        self.completed_parts: list[dict] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "PUT":
            part = request.url.params.get("partNumber")
            self.calls.append(f"PUT {part or 'single'}")
            if part is not None and int(part) == self.fail_part:
                return httpx.Response(500)
            if part is not None and int(part) == self.slow_part:
                await asyncio.sleep(0.05)
            self.stored[part or "single"] = request.content
            return httpx.Response(200, headers={"ETag": f'"etag-{part}"'})

        action = path.rsplit("/", 1)[-1]
        self.calls.append(action)
        body = json.loads(request.content or b"{}")
        if action == "presign":
            return httpx.Response(
                200, json={"url": "https://storage.test/obj", "key": "k/one", "method": "PUT"}
            )
        if action == "initiate":
            return httpx.Response(
                200, json={"uploadId": "u-1", "key": "k/big", "partSize": self.part_size}
            )
        if action == "parts":
            self.part_requests.append(body["partNumbers"])
            return httpx.Response(
                200,
                json={
                    "urls": [
                        {"partNumber": n, "url": f"https://storage.test/big?partNumber={n}"}
                        for n in body["partNumbers"]
                    ]
                },
            )
        if action == "complete":
            self.completed_parts = body["parts"]
            return httpx.Response(200, json={"result": {"id": "media-big"}})
        if action == "finalize-single":
            return httpx.Response(200, json={"result": {"id": "media-one", "key": body["key"]}})
        if action == "abort":
            return httpx.Response(200, json={"aborted": True, "key": body["key"]})
        return httpx.Response(404)


def _manager(api: FakeUploadApi, **kwargs) -> tuple[UploadManager, httpx.AsyncClient]:
    http = httpx.AsyncClient(transport=httpx.MockTransport(api.handler), base_url=API)
    options = {"small_file_threshold": 8, "max_part_concurrency": 2, "retry_delay": 0}
    options.update(kwargs)
    return UploadManager(http, **options), http


@pytest.mark.asyncio
async def test_small_file_uses_single_put() -> None:
    api = FakeUploadApi()
    manager, http = _manager(api)
    item = manager.add("logo.png", b"tiny")
    seen: list[UploadStatus] = []
    manager.on_progress(lambda i: seen.append(i.status))

    await manager.run()
    await http.aclose()

    assert item.status == UploadStatus.completed
    assert item.result == {"result": {"id": "media-one", "key": "k/one"}}
    assert api.calls == ["presign", "PUT single", "finalize-single"]
    assert seen[0] == UploadStatus.uploading
    assert seen[-1] == UploadStatus.completed
    assert item.progress == 1.0


@pytest.mark.asyncio
async def test_large_file_uploads_parts_in_batches() -> None:
    api = FakeUploadApi(part_size=4)
    manager, http = _manager(api)
    item = manager.add("lookbook.pdf", b"0123456789", album_ids=["album-1"])

    await manager.run()
    await http.aclose()

    assert item.status == UploadStatus.completed
    assert api.calls.count("parts") == 2
    assert [p["PartNumber"] for p in api.completed_parts] == [1, 2, 3]
    assert api.stored["3"] == b"89"
    assert item.result == {"result": {"id": "media-big"}}


@pytest.mark.asyncio
async def test_failed_part_aborts_and_can_be_retried() -> None:
    api = FakeUploadApi(part_size=4, fail_part=2)
    manager, http = _manager(api, part_retries=2)
    item = manager.add("lookbook.pdf", b"0123456789")

    await manager.run()
    assert item.status == UploadStatus.error
    assert "part 2" in (item.error or "")
    assert api.calls.count("PUT 2") == 2
    assert "abort" in api.calls
    assert item.upload_id is None

    api.fail_part = None
    manager.retry(item.id)
    assert item.status == UploadStatus.queued
    await manager.run()
    await http.aclose()
    assert item.status == UploadStatus.completed


@pytest.mark.asyncio
async def test_pause_and_resume_queued_item() -> None:
    api = FakeUploadApi()
    manager, http = _manager(api)
    item = manager.add("logo.png", b"tiny")

    manager.pause_all()
    await manager.run()
    assert item.status == UploadStatus.paused
    assert api.calls == []

    manager.resume_all()
    await manager.run()
    await http.aclose()
    assert item.status == UploadStatus.completed


@pytest.mark.asyncio
async def test_failed_part_cancels_sibling_parts_before_abort() -> None:
    api = FakeUploadApi(part_size=4, fail_part=1, slow_part=2)
    manager, http = _manager(api, part_retries=1)
    item = manager.add("lookbook.pdf", b"0123456789")

    await manager.run()
    # Give a stray sibling upload time to land if it had not been cancelled.
    await asyncio.sleep(0.1)
    await http.aclose()

    assert item.status == UploadStatus.error
    assert api.calls[-1] == "abort"
    assert "2" not in api.stored
    assert item.etags == {}
    assert item.uploaded_bytes == 0


@pytest.mark.asyncio
async def test_pause_mid_upload_resumes_missing_parts_only() -> None:
    api = FakeUploadApi(part_size=4)
    manager, http = _manager(api)
    item = manager.add("lookbook.pdf", b"0123456789")
    paused: list[bool] = []

    def pause_after_first_batch(i) -> None:
        if i.status == UploadStatus.uploading and len(i.etags) == 2 and not paused:
            paused.append(True)
            manager.pause(i.id)

    manager.on_progress(pause_after_first_batch)

    await manager.run()
    assert item.status == UploadStatus.paused
    assert sorted(item.etags) == [1, 2]
    assert item.upload_id == "u-1"

    manager.resume(item.id)
    await manager.run()
    await http.aclose()

    assert item.status == UploadStatus.completed
    assert api.calls.count("initiate") == 1
    assert api.part_requests == [[1, 2], [3]]
    assert [p["PartNumber"] for p in api.completed_parts] == [1, 2, 3]


@pytest.mark.asyncio
async def test_resume_withdraws_pending_pause() -> None:
    api = FakeUploadApi(part_size=4)
    manager, http = _manager(api)
    item = manager.add("lookbook.pdf", b"0123456789")

    def pause_then_resume(i) -> None:
        if i.status == UploadStatus.uploading and len(i.etags) == 1:
            manager.pause(i.id)
            manager.resume(i.id)

    manager.on_progress(pause_then_resume)

    await manager.run()
    await http.aclose()

    assert item.status == UploadStatus.completed
    assert item.pause_requested is False
    assert api.part_requests == [[1, 2], [3]]


@pytest.mark.asyncio
async def test_retry_all_requeues_failed_items() -> None:
    api = FakeUploadApi(part_size=4, fail_part=3)
    manager, http = _manager(api, part_retries=1)
    first = manager.add("a.pdf", b"0123456789")
    second = manager.add("b.pdf", b"abcdefghij")

    await manager.run()
    assert {first.status, second.status} == {UploadStatus.error}

    api.fail_part = None
    manager.retry_all()
    assert {first.status, second.status} == {UploadStatus.queued}
    await manager.run()
    await http.aclose()

    assert {first.status, second.status} == {UploadStatus.completed}
    assert first.progress == second.progress == 1.0


def test_parts_require_an_initiated_upload() -> None:
    item = UploadItem(name="lookbook.pdf", data=b"0123456789", content_type="application/pdf")
    with pytest.raises(UploadFailed, match="not been initiated"):
        item.part_count()
    with pytest.raises(UploadFailed):
        item.part(1)

    item.part_size = 4
    assert item.part_count() == 3
    assert item.part(3) == b"89"
