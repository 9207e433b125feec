"""
Object storage (S3-compatible) access for video assets.

One ``ObjectStorage`` is built at startup from validated configuration and
held on ``app.state``; request handlers receive it through ``get_storage``.
boto3 is synchronous, so calls run in Starlette's threadpool.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings

DEFAULT_CONTENT_TYPE = "video/mp4"
READ_CHUNK_SIZE = 1024 * 1024


class StorageConfigError(RuntimeError):
    """Required storage configuration is missing."""


class StorageError(Exception):
    """Object could not be fetched or read."""


class StorageConfig(BaseModel):
    endpoint_url: str
    region: str
    bucket_name: str
    public_base_url: str
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        missing = []
        if not settings.storage_bucket_name:
            missing.append("EVAL_STORAGE_BUCKET_NAME")
        if not settings.public_base_url:
            missing.append("EVAL_PUBLIC_BASE_URL")
        if missing:
            raise StorageConfigError(
                f"Storage is not configured: set {', '.join(missing)}"
            )
        return cls(
            endpoint_url=settings.storage_endpoint_url,
            region=settings.storage_region,
            bucket_name=settings.storage_bucket_name,
            public_base_url=settings.public_base_url.rstrip("/"),
            access_key_id=settings.storage_access_key_id,
            secret_access_key=settings.storage_secret_access_key,
        )


@dataclass
class StoredObject:
    body: bytes
    content_type: str
    content_length: int
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None


class ObjectStorage:
    def __init__(self, config: StorageConfig, client: Any | None = None):
        self.config = config
        self._client = client or boto3.client(
            "s3",
            endpoint_url=config.endpoint_url,
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
        )

    @property
    def bucket_name(self) -> str:
        return self.config.bucket_name

    async def fetch(self, key: str) -> StoredObject | None:
        """Fetch and fully buffer an object. Returns None when it does not exist."""
        return await run_in_threadpool(self._fetch_sync, key)

    def _fetch_sync(self, key: str) -> StoredObject | None:
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404", "NotFound"):
                return None
            raise StorageError(f"Failed to fetch object: {code}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to fetch object: {exc}") from exc

        stream = response.get("Body")
        if stream is None:
            return None

        chunks: list[bytes] = []
        try:
            for chunk in stream.iter_chunks(chunk_size=READ_CHUNK_SIZE):
                chunks.append(chunk)
        except (BotoCoreError, OSError) as exc:
            raise StorageError(f"Failed to read object: {exc}") from exc
        finally:
            stream.close()

        body = b"".join(chunks)
        return StoredObject(
            body=body,
            content_type=response.get("ContentType") or DEFAULT_CONTENT_TYPE,
            content_length=len(body),
            etag=response.get("ETag"),
            last_modified=response.get("LastModified"),
        )

    def proxy_url(self, key: str) -> str:
        return proxy_url(self.config.public_base_url, key)


# ---------------------------------------------------------------------------
# Key and URL helpers
# ---------------------------------------------------------------------------

def proxy_url(public_base_url: str, key: str) -> str:
    """URL served by this API's video proxy rather than the bucket directly."""
    return f"{public_base_url.rstrip('/')}/api/v1/video/{key}"


def get_storage(request: Request) -> ObjectStorage:
    """FastAPI dependency: the process-wide storage client."""
    return request.app.state.storage
