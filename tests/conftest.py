"""
tests.conftest

Shared fixtures: an in-process app over in-memory SQLite with fake outbound clients.

Responsibilities:
- Build test settings and start/stop the app explicitly (httpx does not run lifespan).
- Provide an in-memory storage backend and a recorded Graph/HTTP transport.
- Mint admin and partner bearer tokens.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from jyt_admin.api.app import create_app
from jyt_admin.auth.jwt import JwtConfig, issue_token
from jyt_admin.errors import invalid_data
from jyt_admin.integrations.meta import MetaGraphClient
from jyt_admin.settings import Settings
from jyt_admin.storage.base import CompletedPart, CompletedUpload
from jyt_admin.workflows.context import Clients


class MemoryStorage:
    """In-memory `StorageBackend`: signs fake URLs and tracks multipart uploads."""

    bucket = "test-media"

    def __init__(self) -> None:
        self.open_uploads: dict[str, str] = {}
        self.completed: list[tuple[str, list[int]]] = []
        self.aborted: list[str] = []
        self.deleted: list[str] = []

    async def presign_put(self, *, key: str, content_type: str, expires_in: int) -> str:
        return f"https://storage.test/{self.bucket}/{key}?op=put"

    async def create_multipart_upload(self, *, key: str, content_type: str) -> str:
        upload_id = f"upload-{len(self.open_uploads) + len(self.completed) + 1}"
        self.open_uploads[upload_id] = key
        return upload_id

    async def presign_part(
        self, *, key: str, upload_id: str, part_number: int, expires_in: int
    ) -> str:
        query = f"uploadId={upload_id}&partNumber={part_number}"
        return f"https://storage.test/{self.bucket}/{key}?{query}"

    async def complete_multipart_upload(
        self, *, key: str, upload_id: str, parts: list[CompletedPart]
    ) -> CompletedUpload:
        if self.open_uploads.get(upload_id) != key:
            raise invalid_data(f"Unknown multipart upload {upload_id}")
        del self.open_uploads[upload_id]
        self.completed.append((key, [p.part_number for p in parts]))
        return CompletedUpload(location=self.object_url(key), key=key)

    async def abort_multipart_upload(self, *, key: str, upload_id: str) -> None:
        self.open_uploads.pop(upload_id, None)
        self.aborted.append(upload_id)

    async def delete_object(self, *, key: str) -> None:
        self.deleted.append(key)

    def object_url(self, key: str) -> str:
        return f"https://storage.test/{self.bucket}/{key}"


class RecordingTransport:
    """
    Routes outbound HTTP for the Graph API and flow `http_request` operations.

    Handlers are matched on URL path suffix; unmatched requests answer 404.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.transport = httpx.MockTransport(self._handle)

    def on(self, suffix: str, response: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[suffix] = response

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, response in self.routes.items():
            if request.url.path.endswith(suffix):
                return response(request)
        return httpx.Response(404, json={"error": {"message": "no route"}})


def json_response(status: int, body: Any) -> Callable[[httpx.Request], httpx.Response]:
    return lambda request: httpx.Response(status, content=json.dumps(body).encode())


@pytest.fixture
def settings() -> Settings:
    return Settings(
        env="test",
        database_url="sqlite+aiosqlite://",
        flow_scheduler_enabled=False,
        facebook_app_secret="fb-app-secret",
        facebook_webhook_verify_token="verify-me",
        etsy_client_id="etsy-client",
        upload_part_size=5 * 1024 * 1024,
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def outbound() -> RecordingTransport:
    return RecordingTransport()


@pytest_asyncio.fixture
async def app(
    settings: Settings, storage: MemoryStorage, outbound: RecordingTransport
) -> AsyncIterator[FastAPI]:
    http = httpx.AsyncClient(transport=outbound.transport)
    clients = Clients(
        http=http, storage=storage, graph=MetaGraphClient(http=http, settings=settings)
    )
    app = create_app(settings=settings, clients=clients)
    await app.router.startup()
    try:
        yield app
    finally:
        await app.router.shutdown()
        await http.aclose()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def token_for(settings: Settings) -> Callable[..., dict[str, str]]:
    def _headers(
        subject: str = "admin@jyt.test", roles: list[str] | None = None, partner_id: Any = None
    ) -> dict[str, str]:
        token = issue_token(
            cfg=JwtConfig.from_settings(settings),
            subject=subject,
            roles=roles if roles is not None else ["admin"],
            partner_id=str(partner_id) if partner_id else None,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin(token_for: Callable[..., dict[str, str]]) -> dict[str, str]:
    return token_for()


# --- Module Notes -----------------------------------------------------------
# Each test gets a fresh in-memory database: the engine (and its single StaticPool
# connection) is created on startup and disposed on shutdown.
