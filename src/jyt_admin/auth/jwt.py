"""
jyt_admin.auth.jwt

Bearer tokens for admin and partner-portal callers.

Responsibilities:
- Issue HS256 tokens carrying `roles` and an optional `partner_id` claim.
- Validate signature and registered claims, then map the payload onto a `Principal`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from jwt import InvalidTokenError

from jyt_admin.auth.models import Principal
from jyt_admin.settings import Settings

REQUIRED_CLAIMS = ("exp", "iat", "iss", "aud", "sub")


@dataclass(frozen=True, slots=True)
class JwtConfig:
    alg: str
    issuer: str
    audience: str
    secret: str

    @classmethod
    def from_settings(cls, settings: Settings) -> JwtConfig:
        return cls(
            alg=settings.jwt_alg,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            secret=settings.jwt_secret,
        )


class JwtValidationError(Exception):
    pass


def issue_token(
    *,
    cfg: JwtConfig,
    subject: str,
    roles: list[str],
    partner_id: str | uuid.UUID | None = None,
    ttl: timedelta = timedelta(hours=1),
) -> str:
    issued = datetime.now(tz=UTC)
    claims: dict[str, Any] = {
        "iss": cfg.issuer,
        "aud": cfg.audience,
        "sub": subject,
        "roles": sorted(set(roles)),
        "iat": int(issued.timestamp()),
        "exp": int((issued + ttl).timestamp()),
    }
    if partner_id:
        claims["partner_id"] = str(partner_id)
    return jwt.encode(claims, cfg.secret, algorithm=cfg.alg)


def decode_and_validate(*, cfg: JwtConfig, token: str) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            cfg.secret,
            algorithms=[cfg.alg],
            issuer=cfg.issuer,
            audience=cfg.audience,
            options={"require": list(REQUIRED_CLAIMS)},
        )
    except InvalidTokenError as e:
        raise JwtValidationError(str(e)) from e


def principal_from_token(*, cfg: JwtConfig, token: str) -> Principal:
    """
    Decode `token` into the caller identity.

    Raises `JwtValidationError` for bad signatures, expired tokens and malformed
    `sub` / `roles` / `partner_id` claims alike, so callers map every failure to 401.
    """

    claims = decode_and_validate(cfg=cfg, token=token)

    subject = str(claims.get("sub") or "")
    if not subject:
        raise JwtValidationError("empty subject")
    roles = claims.get("roles", [])
    if not isinstance(roles, list):
        raise JwtValidationError("roles claim must be a list")

    partner_id: uuid.UUID | None = None
    if claims.get("partner_id"):
        try:
            partner_id = uuid.UUID(str(claims["partner_id"]))
        except ValueError as e:
            raise JwtValidationError("partner_id claim is not a UUID") from e

    return Principal(
        subject=subject, roles=frozenset(str(r) for r in roles), partner_id=partner_id
    )


# --- Module Notes -----------------------------------------------------------
# Tokens are minted by `api/routers/dev_auth.py` outside prod and by the test suite;
# production tokens come from the identity provider with the same claims.
