"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_account_repository,
    get_account_service,
    get_auth_orchestrator,
    get_cache_backend,
    get_media_resolver,
    get_media_storage,
    get_platform_registry,
    get_publish_orchestrator,
    get_publish_repository,
    get_publish_worker,
    get_scheduled_post_repository,
    get_scheduler_service,
    get_sqlite_store,
    get_state_store,
    get_token_cache,
    get_token_cipher_service,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_account_repository",
    "get_account_service",
    "get_app_settings",
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
