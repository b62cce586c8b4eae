"""
jyt_admin.api.routers.external_stores

Etsy store connection via OAuth 2.0 authorization code + PKCE.
"""

from __future__ import annotations

from typing import Any

import httpx
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from jyt_admin.api.deps import clients_from_app, db_session
from jyt_admin.auth.deps import require_roles
from jyt_admin.db.base import to_dict
from jyt_admin.errors import AppError, ErrorType
from jyt_admin.integrations.etsy import complete_authorization, start_authorization
from jyt_admin.settings import Settings, get_settings
from jyt_admin.workflows.context import Clients

router = APIRouter(
    prefix="/admin/external-stores",
    tags=["external-stores"],
    dependencies=[Depends(require_roles("admin"))],
)


def _http(clients: Clients = Depends(clients_from_app)) -> httpx.AsyncClient:
    if clients.http is None:
        raise AppError(ErrorType.unexpected_state, "HTTP client is not configured")
    return clients.http


@router.get("/etsy/authorize")
async def etsy_authorize(
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
) -> dict[str, str]:
    return await start_authorization(session, settings)


@router.get("/etsy/callback")
async def etsy_callback(
    code: str = Query(min_length=1),
    state: str = Query(min_length=1),
    session: AsyncSession = Depends(db_session),
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(_http),
) -> dict[str, Any]:
    connection = await complete_authorization(session, http, settings, code=code, state=state)
    return {
        "connection": to_dict(connection, exclude={"access_token", "refresh_token"}),
    }


# --- Module Notes -----------------------------------------------------------
# Tokens are stored but never returned; the callback answers with the connection metadata.
