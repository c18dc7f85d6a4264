"""Turn uploads and remote URLs into durable, publicly fetchable media."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import mimetypes
import uuid
from pathlib import PurePosixPath
from typing import Awaitable, Iterable, List, Optional, Sequence
from urllib.parse import urlparse

import httpx

from crosspost.clients.media_storage import MediaStorage
from crosspost.core.errors import ValidationError
from crosspost.models.publish import MediaDescriptor, MediaType, MediaUpload

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "video/mp4",
        "video/quicktime",
        "video/avi",
        "video/webm",
        "application/pdf",
    }
)

DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "video/quicktime": ".mov",
    "video/avi": ".avi",
}


def _extension(mime_type: str, filename: str) -> str:
    suffix = PurePosixPath(filename).suffix.lower()
    if suffix:
        return suffix
    return _EXTENSIONS.get(mime_type) or mimetypes.guess_extension(mime_type) or ""


def validate_uploads(
    uploads: Iterable[MediaUpload], *, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
) -> None:
    """Raise :class:`ValidationError` listing every unacceptable file."""
    errors: List[str] = []
    for upload in uploads:
        if upload.content_type not in ALLOWED_MIME_TYPES:
            errors.append(
                f"{upload.filename}: file type {upload.content_type} is not allowed"
            )
        if upload.size > max_bytes:
            errors.append(
                f"{upload.filename}: file size exceeds {max_bytes // (1024 * 1024)}MB"
            )
        if upload.size == 0:
            errors.append(f"{upload.filename}: file is empty")
    if errors:
        raise ValidationError("Invalid media files", errors=errors)


class MediaResolver:
    """Store media content-addressed by SHA-256 so duplicates are kept once.

    Keys have the form ``media/{user_id}/{sha256}{ext}``; when the key already
    exists the upload is skipped and the existing object is reused.
    """

    def __init__(
        self,
        storage: MediaStorage,
        *,
        max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        download_timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._storage = storage
        self._max_bytes = max_bytes
        self._download_timeout = download_timeout
        self._transport = transport

    @staticmethod
    def content_hash(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()

    async def resolve_upload(self, user_id: str, upload: MediaUpload) -> MediaDescriptor:
        validate_uploads([upload], max_bytes=self._max_bytes)
        return await self._store(user_id, upload)

    async def resolve_url(self, user_id: str, url: str) -> MediaDescriptor:
        """Download ``url`` without ever holding more than ``max_bytes`` of it."""
        filename = PurePosixPath(urlparse(url).path).name or "file"
        too_large = ValidationError(
            "Invalid media files",
            errors=[f"{filename}: file size exceeds {self._max_bytes // (1024 * 1024)}MB"],
        )
        async with httpx.AsyncClient(
            timeout=self._download_timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self._max_bytes:
                    raise too_large

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > self._max_bytes:
                        raise too_large
                content_type = response.headers.get(
                    "content-type", "application/octet-stream"
                )

        upload = MediaUpload(
            filename=filename,
            content_type=content_type.split(";", 1)[0].strip().lower(),
            data=bytes(body),
        )
        validate_uploads([upload], max_bytes=self._max_bytes)
        return await self._store(user_id, upload, source_url=url)

    async def resolve_all(
        self,
        user_id: str,
        uploads: Sequence[MediaUpload] = (),
        urls: Sequence[str] = (),
    ) -> List[MediaDescriptor]:
        """Resolve every upload and URL concurrently, skipping any that fail."""
        tasks = [
            self._try(self.resolve_upload(user_id, upload), upload.filename)
            for upload in uploads
        ]
        tasks.extend(self._try(self.resolve_url(user_id, url), "from URL") for url in urls)
        resolved = await asyncio.gather(*tasks)
        return [item for item in resolved if item is not None]

    @staticmethod
    async def _try(
        resolution: Awaitable[MediaDescriptor], label: str
    ) -> Optional[MediaDescriptor]:
        try:
            return await resolution
        except Exception:
            logger.exception("Skipping media %s that could not be resolved", label)
            return None

    async def _store(
        self, user_id: str, upload: MediaUpload, *, source_url: Optional[str] = None
    ) -> MediaDescriptor:
        digest = self.content_hash(upload.data)
        key = f"media/{user_id}/{digest}{_extension(upload.content_type, upload.filename)}"

        if await self._storage.exists(key):
            logger.info("Reusing stored media %s", key)
        else:
            await self._storage.put(key, upload.data, upload.content_type)
            logger.info("Stored media %s (%s bytes)", key, upload.size)

        return MediaDescriptor(
            id=uuid.uuid4().hex,
            url=self._storage.public_url(key),
            key=key,
            mime_type=upload.content_type,
            size=upload.size,
            media_type=MediaType.from_mime_type(upload.content_type),
            original_filename=upload.filename,
            hash=digest,
            source_url=source_url,
        )


__all__ = [
    "ALLOWED_MIME_TYPES",
    "DEFAULT_MAX_UPLOAD_BYTES",
    "MediaResolver",
    "validate_uploads",
]
