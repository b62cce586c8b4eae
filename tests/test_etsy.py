from __future__ import annotations

import base64
import hashlib
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from conftest import RecordingTransport, json_response
from jyt_admin.integrations.etsy import code_challenge, generate_code_verifier


def test_code_verifier_bounds() -> None:
    assert len(generate_code_verifier()) == 64
    assert len(generate_code_verifier(43)) == 43
    assert len(generate_code_verifier(128)) == 128
    with pytest.raises(ValueError):
        generate_code_verifier(42)
    with pytest.raises(ValueError):
        generate_code_verifier(129)


def test_code_challenge_is_unpadded_s256() -> None:
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
    assert code_challenge(verifier) == expected.rstrip(b"=").decode()
    assert code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


@pytest.mark.asyncio
async def test_authorize_and_callback(
    client: httpx.AsyncClient, admin, outbound: RecordingTransport
) -> None:
    outbound.on(
        "/token",
        json_response(
            200,
            {"access_token": "etsy-access", "refresh_token": "etsy-refresh", "expires_in": 3600},
        ),
    )

    r = await client.get("/admin/external-stores/etsy/authorize", headers=admin)
    assert r.status_code == 200
    body = r.json()
    query = parse_qs(urlsplit(body["authorization_url"]).query)
    assert query["state"] == [body["state"]]
    assert query["client_id"] == ["etsy-client"]
    assert query["code_challenge_method"] == ["S256"]

    r = await client.get(
        "/admin/external-stores/etsy/callback",
        params={"code": "auth-code", "state": body["state"]},
        headers=admin,
    )
    assert r.status_code == 200
    connection = r.json()["connection"]
    assert connection["provider"] == "etsy"
    assert "access_token" not in connection
    assert "refresh_token" not in connection

    sent = parse_qs(outbound.requests[-1].content.decode())
    assert sent["code"] == ["auth-code"]
    assert code_challenge(sent["code_verifier"][0]) == query["code_challenge"][0]

    r = await client.get(
        "/admin/external-stores/etsy/callback",
        params={"code": "auth-code", "state": body["state"]},
        headers=admin,
    )
    assert r.status_code == 400
    assert r.json()["type"] == "invalid_data"


@pytest.mark.asyncio
async def test_failed_exchange_still_consumes_state(
    client: httpx.AsyncClient, admin, outbound: RecordingTransport
) -> None:
    outbound.on("/token", json_response(401, {"error": "invalid_grant"}))
    state = (await client.get("/admin/external-stores/etsy/authorize", headers=admin)).json()[
        "state"
    ]
    params = {"code": "bad", "state": state}
    r = await client.get("/admin/external-stores/etsy/callback", params=params, headers=admin)
    assert r.status_code == 400
    assert len(outbound.requests) == 1

    r = await client.get("/admin/external-stores/etsy/callback", params=params, headers=admin)
    assert r.status_code == 400
    assert len(outbound.requests) == 1
