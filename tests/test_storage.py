from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import pytest
from botocore.stub import Stubber

from jyt_admin.errors import AppError, ErrorType
from jyt_admin.settings import Settings
from jyt_admin.storage.base import CompletedPart, build_object_key
from jyt_admin.storage.s3 import S3Storage


@pytest.fixture
def s3_settings() -> Settings:
    return Settings(
        env="test",
        s3_bucket="media",
        s3_region="eu-west-1",
        s3_endpoint_url="http://minio.test:9000",
        s3_access_key_id="test-key",
        s3_secret_access_key="test-secret",
    )


@pytest.fixture
def s3(s3_settings: Settings) -> S3Storage:
    return S3Storage(settings=s3_settings)


def test_object_keys_and_urls(s3: S3Storage) -> None:
    key = build_object_key("/uploads/", "Summer Look (final).jpg")
    prefix, name = key.split("/")
    assert prefix == "uploads"
    assert name.endswith("-Summer-Look-final-.jpg")
    assert "/" not in build_object_key("", "a/b.png")

    assert s3.object_url("uploads/x.png") == "http://minio.test:9000/media/uploads/x.png"
    aws = S3Storage(settings=Settings(env="test", s3_bucket="media", s3_region="eu-west-1"))
    assert aws.object_url("x.png") == "https://media.s3.eu-west-1.amazonaws.com/x.png"


@pytest.mark.asyncio
async def test_presigned_urls_are_path_style(s3: S3Storage) -> None:
    url = await s3.presign_put(key="uploads/a.jpg", content_type="image/jpeg", expires_in=600)
    parts = urlsplit(url)
    assert parts.netloc == "minio.test:9000"
    assert parts.path == "/media/uploads/a.jpg"
    assert "X-Amz-Signature" in parse_qs(parts.query)

    url = await s3.presign_part(key="uploads/a.jpg", upload_id="u-9", part_number=3, expires_in=60)
    query = parse_qs(urlsplit(url).query)
    assert query["partNumber"] == ["3"]
    assert query["uploadId"] == ["u-9"]


@pytest.mark.asyncio
async def test_multipart_calls(s3: S3Storage) -> None:
    with Stubber(s3._client) as stub:
        stub.add_response(
            "create_multipart_upload",
            {"UploadId": "u-1", "Bucket": "media", "Key": "uploads/big.bin"},
            {"Bucket": "media", "Key": "uploads/big.bin", "ContentType": "application/zip"},
        )
        stub.add_response(
            "complete_multipart_upload",
            {"Location": "http://minio.test:9000/media/uploads/big.bin", "Key": "uploads/big.bin"},
            {
                "Bucket": "media",
                "Key": "uploads/big.bin",
                "UploadId": "u-1",
                "MultipartUpload": {
                    "Parts": [{"PartNumber": 1, "ETag": '"a"'}, {"PartNumber": 2, "ETag": '"b"'}]
                },
            },
        )

        upload_id = await s3.create_multipart_upload(
            key="uploads/big.bin", content_type="application/zip"
        )
        done = await s3.complete_multipart_upload(
            key="uploads/big.bin",
            upload_id=upload_id,
            parts=[CompletedPart(2, '"b"'), CompletedPart(1, '"a"')],
        )
        stub.assert_no_pending_responses()

    assert upload_id == "u-1"
    assert done.location == "http://minio.test:9000/media/uploads/big.bin"


@pytest.mark.asyncio
async def test_client_errors_become_app_errors(s3: S3Storage) -> None:
    with Stubber(s3._client) as stub:
        stub.add_client_error(
            "abort_multipart_upload", service_error_code="NoSuchUpload", http_status_code=404
        )
        with pytest.raises(AppError) as exc:
            await s3.abort_multipart_upload(key="uploads/big.bin", upload_id="gone")
    assert exc.value.type == ErrorType.unexpected_state
    assert "abort_multipart_upload" in exc.value.message
