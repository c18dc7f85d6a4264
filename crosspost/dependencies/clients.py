"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from crosspost.clients import (
    CacheBackend,
    InMemoryCacheBackend,
    LocalMediaStorage,
    MediaStorage,
    RedisCacheBackend,
    S3MediaStorage,
    SQLiteStore,
)
from crosspost.clients.platforms import PlatformRegistry, build_default_registry
from crosspost.dependencies.config import get_app_settings
from crosspost.services import (
    AccountRepository,
    AccountService,
    AuthOrchestrator,
    MediaResolver,
    OAuthStateStore,
    PublishOrchestrator,
    PublishRepository,
    PublishWorker,
    ScheduledPostRepository,
    SchedulerService,
    TokenCacheService,
    TokenCipherService,
)


@lru_cache()
def get_cache_backend() -> CacheBackend:
    """Provide Redis when configured, otherwise a process-local cache."""
    settings = get_app_settings()
    if settings.cache.redis_url:
        return RedisCacheBackend(
            settings.cache.redis_url, key_prefix=settings.cache.key_prefix
        )
    return InMemoryCacheBackend()


@lru_cache()
def get_sqlite_store() -> SQLiteStore:
    """Provide shared SQLite record store."""
    return SQLiteStore(get_app_settings().storage.database_path)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = get_app_settings()
    return TokenCipherService(secrets=settings.security.token_encryption_secret)


@lru_cache()
def get_platform_registry() -> PlatformRegistry:
    """Provide one client per supported platform."""
    return build_default_registry(get_app_settings())


@lru_cache()
def get_token_cache() -> TokenCacheService:
    settings = get_app_settings()
    return TokenCacheService(get_cache_backend(), settings.platform_settings())


@lru_cache()
def get_state_store() -> OAuthStateStore:
    settings = get_app_settings()
    return OAuthStateStore(
        get_cache_backend(),
        get_sqlite_store(),
        ttl_seconds=settings.oauth.state_ttl_seconds,
    )


@lru_cache()
def get_account_repository() -> AccountRepository:
    settings = get_app_settings()
    return AccountRepository(
        settings.storage.database_path, get_token_cipher_service()
    )


@lru_cache()
def get_publish_repository() -> PublishRepository:
    return PublishRepository(get_app_settings().storage.database_path)


@lru_cache()
def get_scheduled_post_repository() -> ScheduledPostRepository:
    return ScheduledPostRepository(get_app_settings().storage.database_path)


@lru_cache()
def get_media_storage() -> MediaStorage:
    """Provide the configured media backend (``local`` or ``s3``)."""
    settings = get_app_settings()
    if settings.storage.media_backend == "s3":
        return S3MediaStorage(settings.aws)
    return LocalMediaStorage(
        settings.storage.local_media_dir, settings.storage.local_media_base_url
    )


@lru_cache()
def get_media_resolver() -> MediaResolver:
    settings = get_app_settings()
    return MediaResolver(
        get_media_storage(),
        max_bytes=settings.storage.max_upload_bytes,
        download_timeout=settings.oauth.provider_timeout_seconds,
    )


@lru_cache()
def get_auth_orchestrator() -> AuthOrchestrator:
    """Provide the OAuth lifecycle orchestrator.

    Cached so per-account refresh locks are shared by every request.
    """
    settings = get_app_settings()
    return AuthOrchestrator(
        registry=get_platform_registry(),
        state_store=get_state_store(),
        token_cache=get_token_cache(),
        accounts=get_account_repository(),
        refresh_window_seconds=settings.oauth.refresh_window_seconds,
    )


def get_publish_orchestrator() -> PublishOrchestrator:
    """Build a publish orchestrator using configured services."""
    settings = get_app_settings()
    return PublishOrchestrator(
        registry=get_platform_registry(),
        auth=get_auth_orchestrator(),
        media_resolver=get_media_resolver(),
        records=get_publish_repository(),
        post_timeout_seconds=settings.oauth.provider_timeout_seconds,
        max_upload_bytes=settings.storage.max_upload_bytes,
        max_retries=settings.scheduler.max_retries,
        retry_base_delay_seconds=settings.scheduler.retry_base_delay_seconds,
        retry_max_delay_seconds=settings.scheduler.retry_max_delay_seconds,
    )


def get_account_service() -> AccountService:
    return AccountService(
        registry=get_platform_registry(),
        accounts=get_account_repository(),
        auth=get_auth_orchestrator(),
    )


def get_scheduler_service() -> SchedulerService:
    settings = get_app_settings()
    return SchedulerService(
        posts=get_scheduled_post_repository(),
        publisher=get_publish_orchestrator(),
        media_resolver=get_media_resolver(),
        max_upload_bytes=settings.storage.max_upload_bytes,
        batch_size=settings.scheduler.batch_size,
    )


def get_publish_worker() -> PublishWorker:
    """Build the background worker; the application lifespan owns its lifetime."""
    settings = get_app_settings()
    return PublishWorker(
        scheduler=get_scheduler_service(),
        publisher=get_publish_orchestrator(),
        poll_interval_seconds=settings.scheduler.poll_interval_seconds,
        batch_size=settings.scheduler.batch_size,
    )


__all__ = [
    "get_account_repository",
    "get_account_service",
    "get_auth_orchestrator",
    "get_cache_backend",
    "get_media_resolver",
    "get_media_storage",
    "get_platform_registry",
    "get_publish_orchestrator",
    "get_publish_repository",
    "get_publish_worker",
    "get_scheduled_post_repository",
    "get_scheduler_service",
    "get_sqlite_store",
    "get_state_store",
    "get_token_cache",
    "get_token_cipher_service",
]
