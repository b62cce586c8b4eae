from __future__ import annotations

import httpx
import pytest

from conftest import MemoryStorage

MIB = 1024 * 1024


@pytest.mark.asyncio
async def test_folders_get_nested_paths(client: httpx.AsyncClient, admin) -> None:
    r = await client.post("/admin/medias/folders", json={"name": "campaigns"}, headers=admin)
    assert r.status_code == 201
    parent = r.json()["folder"]
    assert parent["path"] == "/campaigns"

    r = await client.post(
        "/admin/medias/folders",
        json={"name": "autumn", "parent_id": parent["id"]},
        headers=admin,
    )
    assert r.json()["folder"]["path"] == "/campaigns/autumn"

    r = await client.post("/admin/medias/folders", json={"name": "a/b"}, headers=admin)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_single_upload_handshake(
    client: httpx.AsyncClient, admin, storage: MemoryStorage
) -> None:
    r = await client.post(
        "/admin/medias/uploads/presign",
        json={"name": "scarf photo.jpg", "type": "image/jpeg", "size": 1024},
        headers=admin,
    )
    assert r.status_code == 200
    signed = r.json()
    assert signed["method"] == "PUT"
    assert signed["key"].startswith("uploads/")
    assert signed["key"].endswith("-scarf-photo.jpg")

    r = await client.post(
        "/admin/medias/uploads/presign",
        json={"name": "video.mp4", "type": "video/mp4", "size": 50 * MIB},
        headers=admin,
    )
    assert r.status_code == 400

    r = await client.post(
        "/admin/medias/uploads/finalize-single",
        json={
            "key": signed["key"],
            "name": "scarf photo.jpg",
            "type": "image/jpeg",
            "size": 1024,
            "title": "Scarf",
        },
        headers=admin,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Upload completed"
    media = body["result"]
    assert media["file_type"] == "image"
    assert media["url"] == storage.object_url(signed["key"])
    assert media["title"] == "Scarf"


@pytest.mark.asyncio
async def test_multipart_upload_handshake(
    client: httpx.AsyncClient, admin, storage: MemoryStorage
) -> None:
    r = await client.post("/admin/medias/albums", json={"name": "Lookbook"}, headers=admin)
    album_id = r.json()["album"]["id"]

    size = 12 * MIB
    r = await client.post(
        "/admin/medias/uploads/initiate",
        json={"name": "lookbook.pdf", "type": "application/pdf", "size": size},
        headers=admin,
    )
    started = r.json()
    assert started["partSize"] == 5 * MIB
    assert started["uploadId"] in storage.open_uploads

    r = await client.post(
        "/admin/medias/uploads/parts",
        json={"uploadId": started["uploadId"], "key": started["key"], "partNumbers": [3, 1, 2]},
        headers=admin,
    )
    urls = r.json()["urls"]
    assert [u["partNumber"] for u in urls] == [1, 2, 3]
    assert "partNumber=1" in urls[0]["url"]

    r = await client.post(
        "/admin/medias/uploads/parts",
        json={"uploadId": started["uploadId"], "key": started["key"], "partNumbers": [0]},
        headers=admin,
    )
    assert r.status_code == 400

    complete = {
        "uploadId": started["uploadId"],
        "key": started["key"],
        "name": "lookbook.pdf",
        "type": "application/pdf",
        "size": size,
        "existingAlbumIds": [album_id],
    }
    r = await client.post(
        "/admin/medias/uploads/complete",
        json={
            **complete,
            "parts": [{"PartNumber": 1, "ETag": "a"}, {"PartNumber": 1, "ETag": "b"}],
        },
        headers=admin,
    )
    assert r.status_code == 400

    r = await client.post(
        "/admin/medias/uploads/complete",
        json={
            **complete,
            "parts": [
                {"PartNumber": 2, "ETag": "e2"},
                {"PartNumber": 1, "ETag": "e1"},
                {"PartNumber": 3, "ETag": "e3"},
            ],
        },
        headers=admin,
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["s3"]["key"] == started["key"]
    assert storage.completed == [(started["key"], [1, 2, 3])]
    media = body["result"]
    assert media["file_type"] == "document"
    assert media["album_ids"] == [album_id]

    r = await client.get("/admin/medias/files", params={"album_id": album_id}, headers=admin)
    assert [f["id"] for f in r.json()["files"]] == [media["id"]]


@pytest.mark.asyncio
async def test_finalize_with_unknown_album_leaves_no_file(
    client: httpx.AsyncClient, admin
) -> None:
    r = await client.post(
        "/admin/medias/uploads/finalize-single",
        json={
            "key": "uploads/x-a.png",
            "name": "a.png",
            "size": 10,
            "existingAlbumIds": ["00000000-0000-0000-0000-000000000001"],
        },
        headers=admin,
    )
    assert r.status_code == 404
    r = await client.get("/admin/medias/files", headers=admin)
    assert r.json()["count"] == 0


@pytest.mark.asyncio
async def test_abort_multipart_upload(
    client: httpx.AsyncClient, admin, storage: MemoryStorage
) -> None:
    r = await client.post(
        "/admin/medias/uploads/initiate",
        json={"name": "big.zip", "size": 20 * MIB},
        headers=admin,
    )
    started = r.json()
    r = await client.post(
        "/admin/medias/uploads/abort",
        json={"uploadId": started["uploadId"], "key": started["key"]},
        headers=admin,
    )
    assert r.json() == {"aborted": True, "key": started["key"]}
    assert storage.aborted == [started["uploadId"]]
    assert storage.open_uploads == {}
