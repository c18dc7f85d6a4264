"""Schemas for publish requests and publish record queries."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from crosspost.models.publish import PublishRecord, PublishStatus, PublishTarget


class PublishStatusResponse(BaseModel):
    status: PublishStatus


class PublishPage(BaseModel):
    """One page of a user's publish history, newest first."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: List[PublishRecord]
    total: int
    page: int
    limit: int


class RetryTargetRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    platform: str
    account_id: str


class ScheduledPostUpdate(BaseModel):
    """Fields of a pending scheduled post that may be changed; omitted ones are kept."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    content: Optional[str] = None
    media_urls: Optional[List[str]] = None
    platforms: Optional[List[PublishTarget]] = None
    scheduled_time: Optional[datetime] = None


__all__ = [
    "PublishPage",
    "PublishStatusResponse",
    "RetryTargetRequest",
    "ScheduledPostUpdate",
]
