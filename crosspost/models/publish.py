"""
Domain models for cross-platform publishing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from crosspost.models.oauth import utcnow


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PublishStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    PARTIALLY_COMPLETED = "PARTIALLY_COMPLETED"
    FAILED = "FAILED"


class ScheduleStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PUBLISHED = "PUBLISHED"
    PARTIALLY_PUBLISHED = "PARTIALLY_PUBLISHED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @classmethod
    def from_publish_status(cls, status: PublishStatus) -> "ScheduleStatus":
        if status == PublishStatus.COMPLETED:
            return cls.PUBLISHED
        if status == PublishStatus.PARTIALLY_COMPLETED:
            return cls.PARTIALLY_PUBLISHED
        return cls.FAILED


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"

    @classmethod
    def from_mime_type(cls, mime_type: str) -> "MediaType":
        if mime_type.startswith("image/"):
            return cls.IMAGE
        if mime_type.startswith("video/"):
            return cls.VIDEO
        return cls.DOCUMENT


@dataclass(frozen=True)
class MediaUpload:
    """An uploaded file held in memory until it is stored."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class MediaDescriptor(_CamelModel):
    """Durable, publicly fetchable media produced by the media resolver."""

    id: str
    url: str
    key: str
    mime_type: str
    size: int
    media_type: MediaType
    original_filename: str = "file"
    hash: Optional[str] = None
    source_url: Optional[str] = None


class PublishTarget(_CamelModel):
    """One platform account a publish request is addressed to."""

    platform: str
    account_id: str
    platform_specific_params: Dict[str, Any] = Field(default_factory=dict)


class PlatformResult(_CamelModel):
    """Outcome of publishing to a single target."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    platform: str
    account_id: str
    success: bool
    post_id: Optional[str] = None
    posted_at: Optional[datetime] = None
    error: Optional[str] = None
    retry_count: int = 0
    retry_scheduled: bool = False
    next_retry_at: Optional[datetime] = None


class PostResult(BaseModel):
    """What a platform client reports after a successful post."""

    platform_post_id: str
    posted_at: datetime = Field(default_factory=utcnow)
    url: Optional[str] = None


class PublishRequest(_CamelModel):
    """A request to publish one piece of content to several accounts."""

    user_id: str
    content: str
    platforms: List[PublishTarget] = Field(default_factory=list)
    media_urls: List[str] = Field(default_factory=list)
    schedule_time: Optional[datetime] = None

    @field_validator("schedule_time")
    @classmethod
    def _normalize_schedule_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)


class PublishRecord(_CamelModel):
    """Audit trail of one publish request and its per-platform outcomes."""

    id: str
    user_id: str
    content: str
    platforms: List[PublishTarget]
    schedule_time: Optional[datetime] = None
    status: PublishStatus = PublishStatus.PENDING
    media_items: List[MediaDescriptor] = Field(default_factory=list)
    results: List[PlatformResult] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ScheduledPost(_CamelModel):
    """Content waiting to be published at ``scheduled_time``.

    Media is resolved when the post is scheduled, so the worker publishes
    exactly what the user uploaded even if the source URLs change later.
    """

    id: str
    user_id: str
    content: str
    platforms: List[PublishTarget]
    scheduled_time: datetime
    status: ScheduleStatus = ScheduleStatus.PENDING
    media_urls: List[str] = Field(default_factory=list)
    media_items: List[MediaDescriptor] = Field(default_factory=list)
    publish_id: Optional[str] = None
    results: List[PlatformResult] = Field(default_factory=list)
    error: Optional[str] = None
    published_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("scheduled_time")
    @classmethod
    def _normalize_scheduled_time(cls, value: datetime) -> datetime:
        return as_utc(value)


def aggregate_status(results: List[PlatformResult]) -> PublishStatus:
    """Derive the overall publish status from per-platform results."""
    if not results:
        return PublishStatus.PENDING
    succeeded = sum(1 for result in results if result.success)
    if succeeded == len(results):
        return PublishStatus.COMPLETED
    if succeeded == 0:
        return PublishStatus.FAILED
    return PublishStatus.PARTIALLY_COMPLETED


__all__ = [
    "MediaDescriptor",
    "MediaType",
    "MediaUpload",
    "PlatformResult",
    "PostResult",
    "PublishRecord",
    "PublishRequest",
    "PublishStatus",
    "PublishTarget",
    "ScheduleStatus",
    "ScheduledPost",
    "aggregate_status",
    "as_utc",
]
