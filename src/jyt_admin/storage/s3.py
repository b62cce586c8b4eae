"""
jyt_admin.storage.s3

S3-compatible storage backend (boto3).

Responsibilities:
- Generate pre-signed PUT URLs for single uploads and for multipart parts.
- Create, complete and abort multipart uploads.
- Run blocking boto3 calls off the event loop.
"""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from jyt_admin.errors import AppError, ErrorType
from jyt_admin.observability.logging import get_logger
from jyt_admin.settings import Settings
from jyt_admin.storage.base import CompletedPart, CompletedUpload

log = get_logger(__name__)


class S3Storage:
    def __init__(self, *, settings: Settings, client: Any | None = None) -> None:
        self.bucket = settings.s3_bucket
        self._region = settings.s3_region
        self._endpoint = settings.s3_endpoint_url
        self._client = client or boto3.client(
            "s3",
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    async def _call(self, op: str, fn, /, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except (BotoCoreError, ClientError) as e:
            log.error("s3_error", op=op, error=str(e))
            raise AppError(ErrorType.unexpected_state, f"Storage {op} failed: {e}") from e

    async def presign_put(self, *, key: str, content_type: str, expires_in: int) -> str:
        return await self._call(
            "presign_put",
            self._client.generate_presigned_url,
            ClientMethod="put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in,
        )

    async def create_multipart_upload(self, *, key: str, content_type: str) -> str:
        resp = await self._call(
            "create_multipart_upload",
            self._client.create_multipart_upload,
            Bucket=self.bucket,
            Key=key,
            ContentType=content_type,
        )
        return str(resp["UploadId"])

    async def presign_part(
        self, *, key: str, upload_id: str, part_number: int, expires_in: int
    ) -> str:
        return await self._call(
            "presign_part",
            self._client.generate_presigned_url,
            ClientMethod="upload_part",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "UploadId": upload_id,
                "PartNumber": part_number,
            },
            ExpiresIn=expires_in,
        )

    async def complete_multipart_upload(
        self, *, key: str, upload_id: str, parts: list[CompletedPart]
    ) -> CompletedUpload:
        ordered = sorted(parts, key=lambda p: p.part_number)
        resp = await self._call(
            "complete_multipart_upload",
            self._client.complete_multipart_upload,
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={
                "Parts": [{"PartNumber": p.part_number, "ETag": p.etag} for p in ordered]
            },
        )
        return CompletedUpload(location=str(resp.get("Location") or self.object_url(key)), key=key)

    async def abort_multipart_upload(self, *, key: str, upload_id: str) -> None:
        await self._call(
            "abort_multipart_upload",
            self._client.abort_multipart_upload,
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
        )

    async def delete_object(self, *, key: str) -> None:
        await self._call(
            "delete_object", self._client.delete_object, Bucket=self.bucket, Key=key
        )

    def object_url(self, key: str) -> str:
        if self._endpoint:
            return f"{self._endpoint.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self._region}.amazonaws.com/{key}"


# --- Module Notes -----------------------------------------------------------
# Tests substitute an in-memory backend implementing `storage.base.StorageBackend`.
