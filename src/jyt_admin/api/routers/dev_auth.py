"""
jyt_admin.api.routers.dev_auth

Token minting for local development and tests.

Disabled (404) when `JYT_ENV=prod`.
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.status import HTTP_404_NOT_FOUND

from jyt_admin.auth.jwt import JwtConfig, issue_token
from jyt_admin.settings import Settings, get_settings

router = APIRouter(prefix="/v1/dev", tags=["dev"])


class DevTokenRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=256)
    roles: list[str] = Field(default_factory=list)
    partner_id: uuid.UUID | None = None
    ttl_minutes: int = Field(default=60, ge=1, le=24 * 60)


class DevTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


@router.post("/token", response_model=DevTokenResponse)
async def mint_dev_token(
    body: DevTokenRequest,
    settings: Settings = Depends(get_settings),
) -> DevTokenResponse:
    if settings.env == "prod":
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Not found")

    token = issue_token(
        cfg=JwtConfig.from_settings(settings),
        subject=body.subject,
        roles=body.roles,
        partner_id=str(body.partner_id) if body.partner_id else None,
        ttl=timedelta(minutes=body.ttl_minutes),
    )
    return DevTokenResponse(access_token=token)
