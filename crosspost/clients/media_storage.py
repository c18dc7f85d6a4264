"""
Media storage backends.

Both backends store objects under caller-chosen keys and return a public URL
that social platforms can fetch. Keys are content-addressed by the media
resolver, so :meth:`exists` doubles as the deduplication check.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Protocol

import boto3
from botocore.exceptions import ClientError

from crosspost.core.config import AWSSettings


class MediaStorage(Protocol):
    async def exists(self, key: str) -> bool: ...

    async def put(self, key: str, data: bytes, content_type: str) -> None: ...

    def public_url(self, key: str) -> str: ...


class LocalMediaStorage:
    """Store media on the local filesystem behind a static base URL."""

    def __init__(self, root_dir: str, base_url: str) -> None:
        self._root = Path(root_dir)
        self._base_url = base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise ValueError(f"Media key escapes storage root: {key}")
        return path

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).exists)

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(_write)

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/{key}"


class S3MediaStorage:
    """Store media in an S3 (or S3-compatible) bucket."""

    def __init__(self, settings: AWSSettings, client: Optional[object] = None) -> None:
        if not settings.s3_bucket:
            raise ValueError("MEDIA_S3_BUCKET must be set to use S3 media storage.")
        self._settings = settings
        self._bucket = settings.s3_bucket
        self._client = client or boto3.client(
            "s3",
            region_name=settings.region_name,
            endpoint_url=settings.s3_endpoint_url,
        )

    async def exists(self, key: str) -> bool:
        def _head() -> bool:
            try:
                self._client.head_object(Bucket=self._bucket, Key=key)
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                    return False
                raise
            return True

        return await asyncio.to_thread(_head)

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(
            self._client.put_object,
            Bucket=self._bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )

    def public_url(self, key: str) -> str:
        if self._settings.public_base_url:
            return f"{self._settings.public_base_url.rstrip('/')}/{key}"
        if self._settings.s3_endpoint_url:
            return f"{self._settings.s3_endpoint_url.rstrip('/')}/{self._bucket}/{key}"
        return f"https://{self._bucket}.s3.{self._settings.region_name}.amazonaws.com/{key}"


__all__ = ["LocalMediaStorage", "MediaStorage", "S3MediaStorage"]
