"""
Deferred publishing.

A scheduled post stores its content, targets and already-resolved media until
``scheduled_time``; the publish worker then hands it to the publish
orchestrator and copies the outcome back onto the post.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

from crosspost.core.errors import NotFoundError, ValidationError
from crosspost.models.oauth import utcnow
from crosspost.models.publish import (
    MediaUpload,
    PublishRequest,
    ScheduledPost,
    ScheduleStatus,
    as_utc,
)
from crosspost.schemas import ScheduledPostUpdate
from crosspost.services.media_resolver import (
    DEFAULT_MAX_UPLOAD_BYTES,
    MediaResolver,
    validate_uploads,
)
from crosspost.services.publish_orchestrator import PublishOrchestrator
from crosspost.services.schedule_repository import ScheduledPostRepository

logger = logging.getLogger(__name__)


def _require_future(scheduled_time: Optional[datetime]) -> datetime:
    if scheduled_time is None:
        raise ValidationError("scheduleTime is required to schedule a post")
    scheduled_time = as_utc(scheduled_time)
    if scheduled_time <= utcnow():
        raise ValidationError("Scheduled time must be in the future")
    return scheduled_time


class SchedulerService:
    """Create, edit, cancel and run scheduled posts for a user."""

    def __init__(
        self,
        *,
        posts: ScheduledPostRepository,
        publisher: PublishOrchestrator,
        media_resolver: MediaResolver,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        batch_size: int = 50,
    ) -> None:
        self._posts = posts
        self._publisher = publisher
        self._media = media_resolver
        self._max_upload_bytes = max_upload_bytes
        self._batch_size = batch_size

    async def schedule_post(
        self, request: PublishRequest, files: Sequence[MediaUpload] = ()
    ) -> ScheduledPost:
        """Store ``request`` for publishing at its ``schedule_time``.

        Media is resolved now so the stored post references durable URLs.
        """
        scheduled_time = _require_future(request.schedule_time)
        if not request.platforms:
            raise ValidationError("At least one platform must be specified")
        validate_uploads(files, max_bytes=self._max_upload_bytes)

        post = ScheduledPost(
            id=uuid.uuid4().hex,
            user_id=request.user_id,
            content=request.content,
            platforms=request.platforms,
            scheduled_time=scheduled_time,
            media_urls=request.media_urls,
        )
        await self._posts.create(post)

        post.media_items = await self._media.resolve_all(
            request.user_id, files, request.media_urls
        )
        await self._posts.save(post)
        logger.info(
            "Scheduled post %s for %s on %d platform(s)",
            post.id,
            post.scheduled_time.isoformat(),
            len(post.platforms),
        )
        return post

    async def get_scheduled_post(self, post_id: str, user_id: str) -> ScheduledPost:
        post = await self._posts.get(post_id, user_id)
        if post is None:
            raise NotFoundError(f"Scheduled post {post_id} not found")
        return post

    async def list_scheduled_posts(
        self,
        user_id: str,
        *,
        status: Optional[ScheduleStatus] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        platform: Optional[str] = None,
    ) -> List[ScheduledPost]:
        """The user's scheduled posts, soonest first."""
        return await self._posts.list_for_user(
            user_id, status=status, start=start, end=end, platform=platform
        )

    async def update_scheduled_post(
        self, post_id: str, user_id: str, changes: ScheduledPostUpdate
    ) -> ScheduledPost:
        post = await self.get_scheduled_post(post_id, user_id)
        if post.status != ScheduleStatus.PENDING:
            raise ValidationError("Only pending posts can be updated")

        if changes.scheduled_time is not None:
            post.scheduled_time = _require_future(changes.scheduled_time)
        if changes.content is not None:
            post.content = changes.content
        if changes.platforms is not None:
            if not changes.platforms:
                raise ValidationError("At least one platform must be specified")
            post.platforms = changes.platforms
        if changes.media_urls is not None:
            uploaded = [item for item in post.media_items if item.source_url is None]
            fetched = await self._media.resolve_all(user_id, urls=changes.media_urls)
            post.media_urls = changes.media_urls
            post.media_items = uploaded + fetched

        if not await self._posts.save(post, expected=ScheduleStatus.PENDING):
            raise ValidationError("Only pending posts can be updated")
        return post

    async def cancel_scheduled_post(self, post_id: str, user_id: str) -> ScheduledPost:
        post = await self.get_scheduled_post(post_id, user_id)
        if post.status != ScheduleStatus.PENDING:
            raise ValidationError("Only pending posts can be cancelled")

        post.status = ScheduleStatus.CANCELLED
        if not await self._posts.save(post, expected=ScheduleStatus.PENDING):
            raise ValidationError("Only pending posts can be cancelled")
        logger.info("Cancelled scheduled post %s", post.id)
        return post

    async def process_due_posts(self, now: Optional[datetime] = None) -> int:
        """Publish every pending post whose time has come; return how many ran."""
        now = now or utcnow()
        processed = 0
        for post in await self._posts.list_due(now, limit=self._batch_size):
            post.status = ScheduleStatus.PROCESSING
            if not await self._posts.save(post, expected=ScheduleStatus.PENDING):
                # Cancelled or claimed since it was listed.
                continue
            await self._publish(post)
            processed += 1
        return processed

    async def _publish(self, post: ScheduledPost) -> None:
        request = PublishRequest(
            user_id=post.user_id,
            content=post.content,
            platforms=post.platforms,
            media_urls=post.media_urls,
            schedule_time=post.scheduled_time,
        )
        try:
            record = await self._publisher.publish_resolved(request, post.media_items)
        except Exception as exc:
            logger.exception("Scheduled post %s could not be published", post.id)
            post.status = ScheduleStatus.FAILED
            post.error = str(exc) or exc.__class__.__name__
        else:
            post.status = ScheduleStatus.from_publish_status(record.status)
            post.publish_id = record.id
            post.results = record.results
            post.published_at = utcnow()
            logger.info(
                "Scheduled post %s published as %s with %s",
                post.id,
                record.id,
                record.status.value,
            )
        await self._posts.save(post)


__all__ = ["SchedulerService"]
