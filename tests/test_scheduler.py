try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from crosspost.clients.media_storage import LocalMediaStorage
from crosspost.clients.platforms import FacebookClient, LinkedInClient, PlatformRegistry
from crosspost.core.config import FacebookSettings, LinkedInSettings
from crosspost.core.errors import NotFoundError, ValidationError
from crosspost.models.oauth import LinkedAccount, utcnow
from crosspost.models.publish import (
    MediaUpload,
    PostResult,
    PublishRequest,
    PublishStatus,
    PublishTarget,
    ScheduleStatus,
)
from crosspost.schemas import ScheduledPostUpdate
from crosspost.services.media_resolver import MediaResolver
from crosspost.services.publish_orchestrator import PublishOrchestrator
from crosspost.services.publish_repository import PublishRepository
from crosspost.services.publish_worker import PublishWorker
from crosspost.services.schedule_repository import ScheduledPostRepository
from crosspost.services.scheduler import SchedulerService

PNG = MediaUpload(filename="launch.png", content_type="image/png", data=b"\x89PNG launch")


class RecordingFacebookClient(FacebookClient):
    def __init__(self) -> None:
        super().__init__(FacebookSettings())
        self.posts: list[tuple[str, list]] = []

    async def post(self, account, access_token, content, media, params) -> PostResult:
        self.posts.append((content, media))
        return PostResult(platform_post_id=f"fb-{len(self.posts)}")


class RecordingLinkedInClient(LinkedInClient):
    def __init__(self) -> None:
        super().__init__(LinkedInSettings())
        self.posts: list[str] = []

    async def post(self, account, access_token, content, media, params) -> PostResult:
        self.posts.append(content)
        return PostResult(platform_post_id="urn:li:share:1")


class FakeAuth:
    async def get_valid_access_token(self, platform, account_id, user_id):
        account = LinkedAccount(
            id=account_id,
            platform=platform,
            user_id=user_id,
            provider_user_id=f"{platform}-user",
            access_token="token",
        )
        return account, "token"


class ExplodingPublisher:
    async def publish_resolved(self, request, media):
        raise RuntimeError("database is locked")


def _remote_media(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        200, headers={"content-type": "image/png"}, content=request.url.path.encode()
    )


@pytest.fixture()
def harness(tmp_path):
    facebook = RecordingFacebookClient()
    linkedin = RecordingLinkedInClient()
    registry = PlatformRegistry()
    registry.register(facebook)
    registry.register(linkedin)
    resolver = MediaResolver(
        LocalMediaStorage(str(tmp_path / "media"), "https://media.example.com"),
        transport=httpx.MockTransport(_remote_media),
    )
    records = PublishRepository(str(tmp_path / "app.db"))
    publisher = PublishOrchestrator(
        registry=registry,
        auth=FakeAuth(),
        media_resolver=resolver,
        records=records,
    )
    posts = ScheduledPostRepository(str(tmp_path / "app.db"))
    scheduler = SchedulerService(posts=posts, publisher=publisher, media_resolver=resolver)
    return scheduler, publisher, posts, records, facebook, linkedin


def _request(
    when: datetime,
    *platforms: str,
    user_id: str = "user-1",
    media_urls: tuple[str, ...] = (),
) -> PublishRequest:
    return PublishRequest(
        user_id=user_id,
        content="Launch day",
        platforms=[
            PublishTarget(platform=platform, account_id=f"{platform}-acc")
            for platform in platforms or ("facebook",)
        ],
        media_urls=list(media_urls),
        schedule_time=when,
    )


@pytest.mark.asyncio
async def test_schedule_stores_pending_post_with_resolved_media(harness) -> None:
    scheduler, _, _, _, facebook, _ = harness
    when = utcnow() + timedelta(hours=2)

    post = await scheduler.schedule_post(
        _request(when, media_urls=("https://cdn.example.com/banner.png",)), [PNG]
    )

    assert post.status == ScheduleStatus.PENDING
    assert post.scheduled_time == when
    assert [item.original_filename for item in post.media_items] == [
        "launch.png",
        "banner.png",
    ]
    stored = await scheduler.get_scheduled_post(post.id, "user-1")
    assert stored.media_items == post.media_items
    assert facebook.posts == []


@pytest.mark.asyncio
async def test_naive_schedule_time_is_treated_as_utc(harness) -> None:
    scheduler, _, _, _, _, _ = harness
    naive = (utcnow() + timedelta(hours=1)).replace(tzinfo=None)

    post = await scheduler.schedule_post(_request(naive))

    assert post.scheduled_time.tzinfo is not None
    assert post.scheduled_time.replace(tzinfo=None) == naive


@pytest.mark.asyncio
async def test_schedule_time_must_be_given_and_in_the_future(harness) -> None:
    scheduler, _, posts, _, _, _ = harness
    missing = _request(utcnow())
    missing.schedule_time = None

    with pytest.raises(ValidationError):
        await scheduler.schedule_post(_request(utcnow() - timedelta(minutes=1)))
    with pytest.raises(ValidationError):
        await scheduler.schedule_post(missing)
    assert await posts.list_for_user("user-1") == []


@pytest.mark.asyncio
async def test_due_posts_are_published_once(harness) -> None:
    scheduler, _, _, records, facebook, linkedin = harness
    due = await scheduler.schedule_post(
        _request(utcnow() + timedelta(minutes=5), "facebook", "linkedin"), [PNG]
    )
    later = await scheduler.schedule_post(_request(utcnow() + timedelta(days=1)))

    ran = await scheduler.process_due_posts(utcnow() + timedelta(minutes=10))

    assert ran == 1
    assert len(facebook.posts) == 1
    assert facebook.posts[0][1][0].original_filename == "launch.png"
    assert linkedin.posts == ["Launch day"]

    published = await scheduler.get_scheduled_post(due.id, "user-1")
    assert published.status == ScheduleStatus.PUBLISHED
    assert published.published_at is not None
    assert [result.success for result in published.results] == [True, True]
    record = await records.get(published.publish_id, "user-1")
    assert record.status == PublishStatus.COMPLETED
    assert record.schedule_time == due.scheduled_time

    pending = await scheduler.get_scheduled_post(later.id, "user-1")
    assert pending.status == ScheduleStatus.PENDING
    assert await scheduler.process_due_posts(utcnow() + timedelta(minutes=10)) == 0


@pytest.mark.asyncio
async def test_partial_outcome_maps_to_partially_published(harness) -> None:
    scheduler, _, _, _, _, _ = harness
    post = await scheduler.schedule_post(
        _request(utcnow() + timedelta(minutes=1), "facebook", "myspace")
    )

    await scheduler.process_due_posts(utcnow() + timedelta(minutes=2))

    stored = await scheduler.get_scheduled_post(post.id, "user-1")
    assert stored.status == ScheduleStatus.PARTIALLY_PUBLISHED


@pytest.mark.asyncio
async def test_publisher_crash_marks_post_failed(harness, tmp_path) -> None:
    _, _, posts, _, _, _ = harness
    resolver = MediaResolver(
        LocalMediaStorage(str(tmp_path / "media"), "https://media.example.com")
    )
    scheduler = SchedulerService(
        posts=posts, publisher=ExplodingPublisher(), media_resolver=resolver
    )
    post = await scheduler.schedule_post(_request(utcnow() + timedelta(minutes=1)))

    assert await scheduler.process_due_posts(utcnow() + timedelta(minutes=2)) == 1

    stored = await scheduler.get_scheduled_post(post.id, "user-1")
    assert stored.status == ScheduleStatus.FAILED
    assert stored.error == "database is locked"


@pytest.mark.asyncio
async def test_cancelled_post_is_never_published(harness) -> None:
    scheduler, _, _, _, facebook, _ = harness
    post = await scheduler.schedule_post(_request(utcnow() + timedelta(minutes=1)))

    cancelled = await scheduler.cancel_scheduled_post(post.id, "user-1")
    ran = await scheduler.process_due_posts(utcnow() + timedelta(minutes=2))

    assert cancelled.status == ScheduleStatus.CANCELLED
    assert ran == 0
    assert facebook.posts == []
    with pytest.raises(ValidationError):
        await scheduler.cancel_scheduled_post(post.id, "user-1")


@pytest.mark.asyncio
async def test_update_changes_pending_post(harness) -> None:
    scheduler, _, _, _, _, _ = harness
    post = await scheduler.schedule_post(
        _request(
            utcnow() + timedelta(hours=1),
            media_urls=("https://cdn.example.com/old.png",),
        ),
        [PNG],
    )
    new_time = utcnow() + timedelta(hours=3)

    updated = await scheduler.update_scheduled_post(
        post.id,
        "user-1",
        ScheduledPostUpdate(
            content="Launch moved",
            scheduled_time=new_time,
            media_urls=["https://cdn.example.com/new.png"],
        ),
    )

    assert updated.content == "Launch moved"
    assert updated.scheduled_time == new_time
    assert updated.media_urls == ["https://cdn.example.com/new.png"]
    assert [item.original_filename for item in updated.media_items] == [
        "launch.png",
        "new.png",
    ]
    stored = await scheduler.get_scheduled_post(post.id, "user-1")
    assert stored.content == "Launch moved"


@pytest.mark.asyncio
async def test_update_rejects_past_time_and_finished_posts(harness) -> None:
    scheduler, _, _, _, _, _ = harness
    post = await scheduler.schedule_post(_request(utcnow() + timedelta(minutes=1)))

    with pytest.raises(ValidationError):
        await scheduler.update_scheduled_post(
            post.id,
            "user-1",
            ScheduledPostUpdate(scheduled_time=utcnow() - timedelta(minutes=1)),
        )

    await scheduler.process_due_posts(utcnow() + timedelta(minutes=2))
    with pytest.raises(ValidationError):
        await scheduler.update_scheduled_post(
            post.id, "user-1", ScheduledPostUpdate(content="too late")
        )


@pytest.mark.asyncio
async def test_scheduled_posts_are_scoped_to_their_owner(harness) -> None:
    scheduler, _, _, _, _, _ = harness
    post = await scheduler.schedule_post(_request(utcnow() + timedelta(hours=1)))

    with pytest.raises(NotFoundError):
        await scheduler.get_scheduled_post(post.id, "user-2")
    with pytest.raises(NotFoundError):
        await scheduler.cancel_scheduled_post(post.id, "user-2")
    assert await scheduler.list_scheduled_posts("user-2") == []


@pytest.mark.asyncio
async def test_list_filters_and_orders_by_time(harness) -> None:
    scheduler, _, _, _, _, _ = harness
    now = utcnow()
    third = await scheduler.schedule_post(_request(now + timedelta(hours=3), "linkedin"))
    first = await scheduler.schedule_post(_request(now + timedelta(hours=1)))
    second = await scheduler.schedule_post(
        _request(now + timedelta(hours=2), "facebook", "linkedin")
    )
    await scheduler.cancel_scheduled_post(first.id, "user-1")

    everything = await scheduler.list_scheduled_posts("user-1")
    on_linkedin = await scheduler.list_scheduled_posts("user-1", platform="LinkedIn")
    pending = await scheduler.list_scheduled_posts("user-1", status=ScheduleStatus.PENDING)
    window = await scheduler.list_scheduled_posts(
        "user-1", start=now + timedelta(minutes=90), end=now + timedelta(minutes=150)
    )

    assert [post.id for post in everything] == [first.id, second.id, third.id]
    assert [post.id for post in on_linkedin] == [second.id, third.id]
    assert [post.id for post in pending] == [second.id, third.id]
    assert [post.id for post in window] == [second.id]


@pytest.mark.asyncio
async def test_worker_tick_runs_scheduled_posts_and_retries(harness) -> None:
    scheduler, publisher, _, _, facebook, _ = harness
    worker = PublishWorker(scheduler=scheduler, publisher=publisher, poll_interval_seconds=60)
    await scheduler.schedule_post(_request(utcnow() + timedelta(minutes=1)))

    summary = await worker.run_once(utcnow() + timedelta(minutes=2))

    assert summary == {"posts": 1, "retries": 0}
    assert len(facebook.posts) == 1
    assert worker.metrics["posts_processed"] == 1


@pytest.mark.asyncio
async def test_worker_starts_and_stops(harness) -> None:
    scheduler, publisher, _, _, _, _ = harness
    worker = PublishWorker(scheduler=scheduler, publisher=publisher, poll_interval_seconds=60)

    await worker.start()
    assert worker.is_running
    for _ in range(100):
        if worker.metrics["last_poll_at"] is not None:
            break
        await asyncio.sleep(0.02)
    await worker.stop(timeout=5)

    assert not worker.is_running
    assert worker.metrics["last_poll_at"] is not None
