"""
Fan a single piece of content out to several platform accounts.

Media is resolved once before any platform is contacted. Each target then
runs as its own task that always ends in a :class:`PlatformResult`; a failing
target never affects the others and never escapes :meth:`publish`.

Targets that fail for a transient reason (provider error, rate limit or
timeout) are marked for retry with exponential backoff. The publish worker
picks them up through :meth:`PublishOrchestrator.retry_due`.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from crosspost.clients.platforms import PlatformRegistry
from crosspost.core.errors import (
    NotFoundError,
    PlatformError,
    RateLimitError,
    ValidationError,
)
from crosspost.models.oauth import utcnow
from crosspost.models.publish import (
    MediaDescriptor,
    MediaUpload,
    PlatformResult,
    PublishRecord,
    PublishRequest,
    PublishStatus,
    PublishTarget,
    aggregate_status,
)
from crosspost.schemas import PublishPage
from crosspost.services.auth_orchestrator import AuthOrchestrator
from crosspost.services.media_resolver import (
    DEFAULT_MAX_UPLOAD_BYTES,
    MediaResolver,
    validate_uploads,
)
from crosspost.services.publish_repository import PublishRepository

logger = logging.getLogger(__name__)

_RETRYABLE = (PlatformError, RateLimitError)


class PublishOrchestrator:
    """Publishes content to many platforms and records the outcome."""

    def __init__(
        self,
        *,
        registry: PlatformRegistry,
        auth: AuthOrchestrator,
        media_resolver: MediaResolver,
        records: PublishRepository,
        post_timeout_seconds: float = 30.0,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        max_retries: int = 5,
        retry_base_delay_seconds: float = 60.0,
        retry_max_delay_seconds: float = 3600.0,
    ) -> None:
        self._registry = registry
        self._auth = auth
        self._media = media_resolver
        self._records = records
        self._post_timeout = post_timeout_seconds
        self._max_upload_bytes = max_upload_bytes
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay_seconds
        self._retry_max_delay = retry_max_delay_seconds

    async def publish(
        self, request: PublishRequest, files: Sequence[MediaUpload] = ()
    ) -> PublishRecord:
        """Publish ``request`` to every target and return the stored record.

        Partial failure is reported through the record's status and per-target
        results, not raised. Requests for a future ``schedule_time`` belong to
        the scheduler and are rejected here.
        """
        if not request.platforms:
            raise ValidationError("At least one platform must be specified")
        if request.schedule_time is not None and request.schedule_time > utcnow():
            raise ValidationError(
                "scheduleTime is in the future; schedule the post instead"
            )
        validate_uploads(files, max_bytes=self._max_upload_bytes)

        record = self._new_record(request)
        await self._records.create(record)

        record.media_items = await self._media.resolve_all(
            request.user_id, files, request.media_urls
        )
        await self._records.save(record)
        return await self._publish_record(record)

    async def publish_resolved(
        self, request: PublishRequest, media: Sequence[MediaDescriptor]
    ) -> PublishRecord:
        """Publish with media that was already stored, e.g. when it was scheduled."""
        if not request.platforms:
            raise ValidationError("At least one platform must be specified")

        record = self._new_record(request)
        record.media_items = list(media)
        await self._records.create(record)
        return await self._publish_record(record)

    @staticmethod
    def _new_record(request: PublishRequest) -> PublishRecord:
        return PublishRecord(
            id=uuid.uuid4().hex,
            user_id=request.user_id,
            content=request.content,
            platforms=request.platforms,
            schedule_time=request.schedule_time,
            status=PublishStatus.PENDING,
        )

    async def _publish_record(self, record: PublishRecord) -> PublishRecord:
        results = await asyncio.gather(
            *(
                self._publish_to_target(
                    record.user_id, record.content, target, record.media_items
                )
                for target in record.platforms
            )
        )
        record.results = list(results)
        record.status = aggregate_status(record.results)
        await self._records.save(record)

        logger.info(
            "Publish %s finished with %s (%d/%d targets succeeded)",
            record.id,
            record.status.value,
            sum(1 for result in record.results if result.success),
            len(record.results),
        )
        return record

    def retry_delay(self, retry_count: int) -> float:
        """Seconds to wait before retry number ``retry_count + 1``."""
        delay = self._retry_base_delay * (2 ** retry_count)
        delay += delay * 0.1 * random.uniform(-1.0, 1.0)
        return min(delay, self._retry_max_delay)

    def _failed_result(
        self,
        platform: str,
        target: PublishTarget,
        error: str,
        *,
        retry_count: int,
        retry_after: Optional[float] = None,
    ) -> PlatformResult:
        if retry_after is None or retry_count >= self._max_retries:
            return PlatformResult(
                platform=platform,
                account_id=target.account_id,
                success=False,
                error=error,
                retry_count=retry_count,
            )
        return PlatformResult(
            platform=platform,
            account_id=target.account_id,
            success=False,
            error=error,
            retry_count=retry_count,
            retry_scheduled=True,
            next_retry_at=utcnow() + timedelta(seconds=retry_after),
        )

    async def _publish_to_target(
        self,
        user_id: str,
        content: str,
        target: PublishTarget,
        media: List[MediaDescriptor],
        *,
        retry_count: int = 0,
    ) -> PlatformResult:
        client = self._registry.get(target.platform)
        if client is None:
            return PlatformResult(
                platform=target.platform,
                account_id=target.account_id,
                success=False,
                error=f"Unsupported platform: {target.platform}",
                retry_count=retry_count,
            )

        policy_error = client.check_media_policy(media)
        if policy_error:
            return self._failed_result(
                client.name, target, policy_error, retry_count=retry_count
            )

        retry_after: Optional[float] = None
        try:
            account, access_token = await self._auth.get_valid_access_token(
                client.name, target.account_id, user_id
            )
            post = await asyncio.wait_for(
                client.post(
                    account,
                    access_token,
                    content,
                    list(media),
                    target.platform_specific_params,
                ),
                timeout=self._post_timeout,
            )
        except asyncio.TimeoutError:
            error = f"{client.display_name} did not respond within {self._post_timeout:g}s"
            retry_after = self.retry_delay(retry_count)
        except _RETRYABLE as exc:
            error = str(exc) or exc.__class__.__name__
            retry_after = self.retry_delay(retry_count)
            if isinstance(exc, RateLimitError) and exc.retry_after:
                retry_after = max(retry_after, float(exc.retry_after))
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
        else:
            return PlatformResult(
                platform=client.name,
                account_id=target.account_id,
                success=True,
                post_id=post.platform_post_id,
                posted_at=post.posted_at,
                retry_count=retry_count,
            )

        logger.warning(
            "Publishing to %s account %s failed (attempt %d): %s",
            client.name,
            target.account_id,
            retry_count + 1,
            error,
        )
        return self._failed_result(
            client.name, target, error, retry_count=retry_count, retry_after=retry_after
        )

    async def _retry_targets(
        self, record: PublishRecord, indexes: Sequence[int]
    ) -> PublishRecord:
        attempts = await asyncio.gather(
            *(
                self._publish_to_target(
                    record.user_id,
                    record.content,
                    record.platforms[index],
                    record.media_items,
                    retry_count=record.results[index].retry_count + 1,
                )
                for index in indexes
            )
        )
        for index, result in zip(indexes, attempts):
            record.results[index] = result
        record.status = aggregate_status(record.results)
        await self._records.save(record)

        logger.info(
            "Retried %d target(s) of publish %s, now %s",
            len(indexes),
            record.id,
            record.status.value,
        )
        return record

    async def retry_due(self, now: Optional[datetime] = None, *, limit: int = 50) -> int:
        """Re-run every target whose retry is due; return how many were attempted."""
        now = now or utcnow()
        attempted = 0
        for record in await self._records.list_due_retries(now, limit=limit):
            due = [
                index
                for index, result in enumerate(record.results)
                if result.retry_scheduled
                and result.next_retry_at is not None
                and result.next_retry_at <= now
            ]
            if not due:
                continue
            try:
                await self._retry_targets(record, due)
            except Exception:
                logger.exception("Retrying publish %s failed", record.id)
                continue
            attempted += len(due)
        return attempted

    async def retry_publish(
        self, publish_id: str, user_id: str, platform: str, account_id: str
    ) -> PublishRecord:
        """Retry one failed target right away, regardless of its backoff."""
        record = await self.get_publish_record(publish_id, user_id)
        index = self._find_result(record, platform, account_id)
        if record.results[index].success:
            raise ValidationError(f"{platform} account {account_id} was already published")
        return await self._retry_targets(record, [index])

    @staticmethod
    def _find_result(record: PublishRecord, platform: str, account_id: str) -> int:
        wanted: Tuple[str, str] = ((platform or "").lower(), account_id)
        for index, target in enumerate(record.platforms[: len(record.results)]):
            if (target.platform.lower(), target.account_id) == wanted:
                return index
        raise NotFoundError(
            f"Publish record {record.id} has no {platform} target {account_id}"
        )

    async def get_publish_record(self, publish_id: str, user_id: str) -> PublishRecord:
        record = await self._records.get(publish_id, user_id)
        if record is None:
            raise NotFoundError(f"Publish record {publish_id} not found")
        return record

    async def get_publish_status(self, publish_id: str, user_id: str) -> PublishStatus:
        record = await self.get_publish_record(publish_id, user_id)
        return record.status

    async def list_publish_records(
        self,
        user_id: str,
        *,
        page: int = 1,
        limit: int = 20,
        status: Optional[PublishStatus] = None,
    ) -> PublishPage:
        page = max(page, 1)
        limit = min(max(limit, 1), 100)
        items, total = await self._records.list_for_user(
            user_id, page=page, limit=limit, status=status
        )
        return PublishPage(items=items, total=total, page=page, limit=limit)


__all__ = ["PublishOrchestrator"]
