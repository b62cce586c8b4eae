from __future__ import annotations

import uuid

import httpx
import jwt
import pytest

from jyt_admin.api.app import create_app
from jyt_admin.auth.jwt import JwtConfig, JwtValidationError, issue_token, principal_from_token
from jyt_admin.settings import Settings


@pytest.mark.asyncio
async def test_health_and_readiness(client: httpx.AsyncClient) -> None:
    r = await client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}

    r = await client.get("/readyz")
    assert r.status_code == 200
    assert r.json() == {"status": "ready", "scheduler": "disabled"}


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: httpx.AsyncClient) -> None:
    r = await client.get("/healthz", headers={"x-request-id": "req-123"})
    assert r.headers.get("x-request-id") == "req-123"


@pytest.mark.asyncio
async def test_dev_token_grants_admin_access(client: httpx.AsyncClient) -> None:
    r = await client.post("/v1/dev/token", json={"subject": "ops@jyt.test", "roles": ["admin"]})
    assert r.status_code == 200
    token = r.json()["access_token"]

    r = await client.get("/admin/partners", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["partners"] == []


@pytest.mark.asyncio
async def test_admin_routes_require_a_valid_token(client: httpx.AsyncClient, token_for) -> None:
    r = await client.get("/admin/partners")
    assert r.status_code == 401

    r = await client.get("/admin/partners", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

    r = await client.get("/admin/partners", headers=token_for("someone", roles=["viewer"]))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_dev_token_is_disabled_in_prod() -> None:
    app = create_app(
        settings=Settings(
            env="prod", database_url="sqlite+aiosqlite://", flow_scheduler_enabled=False
        )
    )
    await app.router.startup()
    try:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            r = await client.post("/v1/dev/token", json={"subject": "x", "roles": ["admin"]})
            assert r.status_code == 404
    finally:
        await app.router.shutdown()


def test_principal_from_token_claims(settings: Settings) -> None:
    cfg = JwtConfig.from_settings(settings)
    partner_id = uuid.uuid4()
    token = issue_token(
        cfg=cfg, subject="maker@loom.test", roles=["partner", "partner"], partner_id=partner_id
    )
    principal = principal_from_token(cfg=cfg, token=token)
    assert principal.roles == frozenset({"partner"})
    assert principal.partner_id == partner_id
    assert not principal.is_admin

    claims = jwt.decode(token, cfg.secret, algorithms=[cfg.alg], audience=cfg.audience)
    bad = jwt.encode({**claims, "partner_id": "not-a-uuid"}, cfg.secret, algorithm=cfg.alg)
    with pytest.raises(JwtValidationError, match="partner_id"):
        principal_from_token(cfg=cfg, token=bad)

    bad = jwt.encode({**claims, "roles": "admin"}, cfg.secret, algorithm=cfg.alg)
    with pytest.raises(JwtValidationError, match="roles"):
        principal_from_token(cfg=cfg, token=bad)

    other = JwtConfig(alg=cfg.alg, issuer=cfg.issuer, audience="elsewhere", secret=cfg.secret)
    with pytest.raises(JwtValidationError):
        principal_from_token(cfg=other, token=token)
