"""
jyt_admin.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Convert a bearer token into a typed `Principal`.
- Enforce RBAC via reusable dependency factories.
- Resolve the partner a portal user acts for.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN

from jyt_admin.auth.jwt import JwtConfig, JwtValidationError, principal_from_token
from jyt_admin.auth.models import Principal
from jyt_admin.settings import Settings, get_settings

_bearer = HTTPBearer(auto_error=False)


def get_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> Principal:
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    cfg = JwtConfig.from_settings(settings)
    try:
        return principal_from_token(cfg=cfg, token=creds.credentials)
    except JwtValidationError as e:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}") from e


def require_roles(*required: str):
    required_set = frozenset(required)

    def _dep(principal: Principal = Depends(get_principal)) -> Principal:
        # Admin bypasses role checks.
        if principal.is_admin:
            return principal
        if not required_set.issubset(principal.roles):
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Insufficient role")
        return principal

    return _dep


def require_partner(principal: Principal = Depends(require_roles("partner"))) -> Principal:
    if principal.partner_id is None:
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="No partner associated")
    return principal


# --- Module Notes -----------------------------------------------------------
# Admin routes depend on `require_roles("admin")`; partner portal routes depend on
# `require_partner`, which also requires a `partner_id` claim even for admins.
