"""
jyt_admin.integrations.meta

Meta Graph API client (Facebook pages and Instagram business accounts).

Responsibilities:
- Publish a Facebook page feed post (text, link or single photo).
- Publish to Instagram via the two-step container + `media_publish` flow.
- Verify webhook payload signatures (`X-Hub-Signature-256`).
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from typing import Any

import httpx

from jyt_admin.errors import AppError, ErrorType
from jyt_admin.observability.logging import get_logger
from jyt_admin.settings import Settings

log = get_logger(__name__)

SIGNATURE_PREFIX = "sha256="


def sign_payload(body: bytes, secret: str) -> str:
    return SIGNATURE_PREFIX + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, header: str | None, secret: str) -> bool:
    if not header or not header.startswith(SIGNATURE_PREFIX) or not secret:
        return False
    return hmac.compare_digest(sign_payload(body, secret), header)


@dataclass(frozen=True, slots=True)
class PublishedPost:
    id: str
    url: str | None


class MetaGraphClient:
    def __init__(self, *, http: httpx.AsyncClient, settings: Settings) -> None:
        self._http = http
        self._base = f"{settings.facebook_graph_url.rstrip('/')}/{settings.facebook_graph_version}"

    async def _post(self, path: str, data: dict[str, Any]) -> dict[str, Any]:
        try:
            resp = await self._http.post(f"{self._base}/{path.lstrip('/')}", data=data)
        except httpx.HTTPError as e:
            raise AppError(ErrorType.unexpected_state, f"Graph API request failed: {e}") from e
        body = resp.json() if resp.content else {}
        if resp.status_code >= 400 or "error" in body:
            message = (body.get("error") or {}).get("message") or resp.text
            log.warning("graph_api_error", path=path, status_code=resp.status_code, error=message)
            raise AppError(ErrorType.unexpected_state, f"Graph API error: {message}")
        return body

    async def publish_page_post(
        self,
        *,
        page_id: str,
        access_token: str,
        message: str,
        image_url: str | None = None,
        link: str | None = None,
    ) -> PublishedPost:
        if image_url:
            body = await self._post(
                f"{page_id}/photos",
                {"url": image_url, "caption": message, "access_token": access_token},
            )
            post_id = str(body.get("post_id") or body["id"])
        else:
            data: dict[str, Any] = {"message": message, "access_token": access_token}
            if link:
                data["link"] = link
            body = await self._post(f"{page_id}/feed", data)
            post_id = str(body["id"])
        return PublishedPost(id=post_id, url=f"https://www.facebook.com/{post_id}")

    async def publish_instagram_post(
        self,
        *,
        ig_user_id: str,
        access_token: str,
        caption: str,
        image_url: str,
    ) -> PublishedPost:
        container = await self._post(
            f"{ig_user_id}/media",
            {"image_url": image_url, "caption": caption, "access_token": access_token},
        )
        published = await self._post(
            f"{ig_user_id}/media_publish",
            {"creation_id": container["id"], "access_token": access_token},
        )
        return PublishedPost(id=str(published["id"]), url=None)
