"""
Object storage for uploaded media (style references, faces).

Backed by S3 with SigV4 presigned URLs.  boto3 is synchronous, so every call
runs in a worker thread and goes through the shared retry policy.  Object keys
are chosen by callers; the enrichment pipeline uses content-addressed keys so
``exists`` lets it skip re-uploads.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, cast

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from conductor.config import settings
from conductor.core.retry import RetryExhaustedError, is_transient, retry_with_backoff

logger = logging.getLogger(__name__)

# Use Signature Version 4 for presigned URLs. SigV2 (legacy) can cause 403 from S3.
S3_CONFIG = Config(signature_version="s3v4")

_MISSING_KEY_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class _S3Client(Protocol):
    """Structural interface for the boto3 S3 client methods used in this module."""

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentType: str) -> dict[str, object]: ...
    def head_object(self, *, Bucket: str, Key: str) -> dict[str, object]: ...
    def generate_presigned_url(self, operation: str, /, **kwargs: object) -> str: ...


class StorageError(Exception):
    """An upload or signing step failed."""

    def __init__(self, message: str, bucket: str, path: str):
        self.bucket = bucket
        self.path = path
        super().__init__(f"{message} ({bucket}/{path})")


class StorageService(Protocol):
    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str: ...

    async def exists(self, bucket: str, path: str) -> bool: ...

    async def create_signed_url(self, bucket: str, path: str, ttl: int) -> str: ...


def _is_transient_storage_error(exc: BaseException) -> bool:
    if isinstance(exc, NoCredentialsError):
        return False
    if isinstance(exc, ClientError):
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        code = exc.response.get("Error", {}).get("Code", "")
        return status >= 500 or code in ("SlowDown", "RequestTimeout", "Throttling")
    if isinstance(exc, BotoCoreError):
        return True
    return is_transient(exc)


def _s3_client() -> _S3Client:
    region = settings.aws_region
    endpoint_url = settings.aws_endpoint_url or f"https://s3.{region}.amazonaws.com"
    # boto3 has no type stubs; cast to our Protocol at the untyped library boundary.
    return cast(
        _S3Client,
        boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            config=S3_CONFIG,
        ),
    )


class S3StorageService:
    """``StorageService`` on S3 (or any S3-compatible endpoint)."""

    def __init__(self, client: Optional[_S3Client] = None):
        self._client = client

    @property
    def client(self) -> _S3Client:
        if self._client is None:
            self._client = _s3_client()
        return self._client

    async def _run(self, label: str, bucket: str, path: str, fn):  # type: ignore[no-untyped-def]
        try:
            return await retry_with_backoff(
                lambda: asyncio.to_thread(fn),
                label=f"s3:{label}",
                classify=_is_transient_storage_error,
            )
        except RetryExhaustedError as e:
            raise StorageError(f"{label} failed after retries", bucket, path) from e
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"S3 {label} failed for {bucket}/{path}: {e}")
            raise StorageError(f"{label} failed", bucket, path) from e

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """Upload bytes (overwriting any existing object) and return a signed URL."""
        await self._run(
            "upload", bucket, path,
            lambda: self.client.put_object(Bucket=bucket, Key=path, Body=data, ContentType=content_type),
        )
        logger.info(f"Uploaded {len(data)} bytes to {bucket}/{path}")
        return await self.create_signed_url(bucket, path, settings.signed_url_ttl_seconds)

    async def exists(self, bucket: str, path: str) -> bool:
        def _head() -> bool:
            try:
                self.client.head_object(Bucket=bucket, Key=path)
                return True
            except ClientError as e:
                if e.response.get("Error", {}).get("Code", "") in _MISSING_KEY_CODES:
                    return False
                raise

        return bool(await self._run("head", bucket, path, _head))

    async def create_signed_url(self, bucket: str, path: str, ttl: int) -> str:
        url = await self._run(
            "sign", bucket, path,
            lambda: self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": path},
                ExpiresIn=ttl,
            ),
        )
        return str(url)
