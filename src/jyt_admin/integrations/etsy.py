"""
jyt_admin.integrations.etsy

Etsy OAuth 2.0 authorization-code flow with PKCE.

Responsibilities:
- Generate code verifiers / S256 challenges and authorization URLs.
- Persist `{state, code_verifier}` until the callback and consume it exactly once.
- Exchange the code for tokens and store the external-store connection.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from datetime import timedelta
from typing import Any
from urllib.parse import urlencode

import httpx
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.db.base import utcnow
from jyt_admin.db.models import ExternalStoreConnection, OAuthState
from jyt_admin.errors import AppError, ErrorType, invalid_data
from jyt_admin.observability.logging import get_logger
from jyt_admin.settings import Settings

log = get_logger(__name__)

PROVIDER = "etsy"
CHALLENGE_METHOD = "S256"
_VERIFIER_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-._~"


def generate_code_verifier(length: int = 64) -> str:
    if not 43 <= length <= 128:
        raise ValueError("code verifier length must be between 43 and 128")
    return "".join(secrets.choice(_VERIFIER_ALPHABET) for _ in range(length))


def code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def authorization_url(settings: Settings, *, state: str, verifier: str) -> str:
    params = {
        "response_type": "code",
        "client_id": settings.etsy_client_id,
        "redirect_uri": settings.etsy_redirect_uri,
        "scope": " ".join(settings.etsy_scopes),
        "state": state,
        "code_challenge": code_challenge(verifier),
        "code_challenge_method": CHALLENGE_METHOD,
    }
    return f"{settings.etsy_auth_url}?{urlencode(params)}"


async def start_authorization(session: AsyncSession, settings: Settings) -> dict[str, str]:
    if not settings.etsy_client_id:
        raise AppError(ErrorType.unexpected_state, "Etsy client id is not configured")
    state = secrets.token_urlsafe(24)
    verifier = generate_code_verifier()
    now = utcnow()
    session.add(
        OAuthState(
            state=state,
            provider=PROVIDER,
            code_verifier=verifier,
            created_at=now,
            expires_at=now + timedelta(seconds=settings.oauth_state_ttl_seconds),
        )
    )
    # Drop expired states for this provider while we are here.
    await session.execute(
        delete(OAuthState).where(OAuthState.provider == PROVIDER, OAuthState.expires_at < now)
    )
    await session.commit()
    return {
        "authorization_url": authorization_url(settings, state=state, verifier=verifier),
        "state": state,
    }


async def consume_state(session: AsyncSession, state: str) -> str:
    row = (
        await session.execute(
            select(OAuthState).where(OAuthState.state == state, OAuthState.provider == PROVIDER)
        )
    ).scalars().first()
    if row is None:
        raise invalid_data("Unknown or already used OAuth state")
    verifier, expired = row.code_verifier, row.expires_at < utcnow()
    await session.delete(row)
    await session.flush()
    if expired:
        await session.commit()
        raise invalid_data("OAuth state has expired")
    return verifier


async def exchange_code(
    http: httpx.AsyncClient, settings: Settings, *, code: str, verifier: str
) -> dict[str, Any]:
    try:
        resp = await http.post(
            settings.etsy_token_url,
            data={
                "grant_type": "authorization_code",
                "client_id": settings.etsy_client_id,
                "redirect_uri": settings.etsy_redirect_uri,
                "code": code,
                "code_verifier": verifier,
            },
        )
    except httpx.HTTPError as e:
        raise AppError(ErrorType.unexpected_state, f"Etsy token request failed: {e}") from e
    if resp.status_code >= 400:
        log.warning("etsy_token_exchange_failed", status_code=resp.status_code)
        raise invalid_data(f"Etsy token exchange failed ({resp.status_code})", body=resp.text)
    return resp.json()


async def complete_authorization(
    session: AsyncSession,
    http: httpx.AsyncClient,
    settings: Settings,
    *,
    code: str,
    state: str,
) -> ExternalStoreConnection:
    verifier = await consume_state(session, state)
    # The state is single use even when the exchange fails.
    await session.commit()
    tokens = await exchange_code(http, settings, code=code, verifier=verifier)
    expires_in = tokens.get("expires_in")
    connection = ExternalStoreConnection(
        provider=PROVIDER,
        access_token=tokens["access_token"],
        refresh_token=tokens.get("refresh_token"),
        token_type=tokens.get("token_type", "Bearer"),
        scope=" ".join(settings.etsy_scopes),
        expires_at=utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None,
    )
    session.add(connection)
    await session.commit()
    log.info("external_store_connected", provider=PROVIDER, connection_id=str(connection.id))
    return connection
