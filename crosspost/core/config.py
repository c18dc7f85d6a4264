"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the OAuth orchestrator
and the publish orchestrator share one configuration surface. Each social
platform gets its own settings block read from a prefixed set of environment
variables (``FACEBOOK_CLIENT_ID``, ``LINKEDIN_SCOPES`` and so on).
"""

from functools import lru_cache
from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_csv(value: str | tuple[str, ...] | list[str]) -> tuple[str, ...]:
    if isinstance(value, tuple):
        return value
    if isinstance(value, list):
        return tuple(value)
    return tuple(item.strip() for item in value.split(",") if item.strip())


class PlatformOAuthSettings(BaseSettings):
    """OAuth endpoints, credentials and cache lifetimes for one provider."""

    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    token_host: str = ""
    token_path: str = ""
    authorize_host: Optional[str] = Field(
        None,
        description="Host serving the consent screen when it differs from token_host.",
    )
    authorize_path: str = ""
    revoke_path: str = ""
    api_base_url: str = ""
    scopes: Annotated[tuple[str, ...], NoDecode] = ()
    token_ttl: int = Field(3600, description="Cache TTL for access token records.")
    refresh_token_ttl: int = Field(
        7200, description="Cache TTL for refreshed token records."
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        """Support providing scopes as a comma-separated string."""
        return _split_csv(value)

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    @property
    def token_url(self) -> str:
        return f"{self.token_host}{self.token_path}"

    @property
    def authorize_url(self) -> str:
        return f"{self.authorize_host or self.token_host}{self.authorize_path}"

    @property
    def revoke_url(self) -> str:
        return f"{self.token_host}{self.revoke_path}"


class FacebookSettings(PlatformOAuthSettings):
    """Facebook Login for pages publishing."""

    token_host: str = "https://graph.facebook.com"
    token_path: str = "/v18.0/oauth/access_token"
    authorize_host: Optional[str] = "https://www.facebook.com"
    authorize_path: str = "/v18.0/dialog/oauth"
    revoke_path: str = "/v18.0/me/permissions"
    api_base_url: str = "https://graph.facebook.com/v18.0"
    scopes: Annotated[tuple[str, ...], NoDecode] = (
        "pages_manage_posts",
        "pages_manage_metadata",
        "pages_read_engagement",
        "pages_show_list",
        "pages_manage_engagement",
        "business_management",
    )

    model_config = SettingsConfigDict(
        env_prefix="FACEBOOK_", env_file=".env", extra="ignore"
    )


class InstagramSettings(PlatformOAuthSettings):
    """Instagram professional accounts through Facebook Login for Business."""

    token_host: str = "https://graph.facebook.com"
    token_path: str = "/v22.0/oauth/access_token"
    authorize_host: Optional[str] = "https://www.facebook.com"
    authorize_path: str = "/v22.0/dialog/oauth"
    revoke_path: str = "/v22.0/me/permissions"
    api_base_url: str = "https://graph.facebook.com/v22.0"
    scopes: Annotated[tuple[str, ...], NoDecode] = (
        "instagram_basic",
        "instagram_content_publish",
        "instagram_manage_comments",
        "instagram_manage_insights",
        "pages_show_list",
        "pages_read_engagement",
    )
    refresh_token_ttl: int = 60 * 60 * 24

    model_config = SettingsConfigDict(
        env_prefix="INSTAGRAM_", env_file=".env", extra="ignore"
    )


class LinkedInSettings(PlatformOAuthSettings):
    """LinkedIn member and organization sharing."""

    token_host: str = "https://www.linkedin.com"
    token_path: str = "/oauth/v2/accessToken"
    authorize_path: str = "/oauth/v2/authorization"
    revoke_path: str = "/oauth/v2/revoke"
    api_base_url: str = "https://api.linkedin.com"
    scopes: Annotated[tuple[str, ...], NoDecode] = (
        "openid",
        "profile",
        "email",
        "w_member_social",
        "r_organization_social",
        "w_organization_social",
    )

    model_config = SettingsConfigDict(
        env_prefix="LINKEDIN_", env_file=".env", extra="ignore"
    )


class TikTokSettings(PlatformOAuthSettings):
    """TikTok Login Kit and Content Posting API."""

    token_host: str = "https://open.tiktokapis.com"
    token_path: str = "/v2/oauth/token/"
    authorize_host: Optional[str] = "https://www.tiktok.com"
    authorize_path: str = "/v2/auth/authorize/"
    revoke_path: str = "/v2/oauth/revoke/"
    api_base_url: str = "https://open.tiktokapis.com/v2"
    scopes: Annotated[tuple[str, ...], NoDecode] = (
        "user.info.basic",
        "user.info.profile",
        "user.info.stats",
        "video.list",
        "video.publish",
        "video.upload",
    )

    model_config = SettingsConfigDict(
        env_prefix="TIKTOK_", env_file=".env", extra="ignore"
    )


class OAuthSettings(BaseSettings):
    """OAuth flow configuration shared by every provider."""

    state_ttl_seconds: int = Field(600, validation_alias="OAUTH_STATE_TTL")
    refresh_window_seconds: int = Field(
        300,
        validation_alias="OAUTH_REFRESH_WINDOW",
        description="Tokens expiring within this window are refreshed before use.",
    )
    provider_timeout_seconds: float = Field(
        30.0,
        validation_alias="PROVIDER_TIMEOUT_SECONDS",
        description="Upper bound for any single outbound provider call.",
    )

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


class SecuritySettings(BaseSettings):
    """Security-related configuration."""

    token_encryption_secret: Annotated[tuple[str, ...], NoDecode] = Field(
        (),
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Comma-separated secrets used to derive token encryption keys. "
            "The first secret encrypts; all of them decrypt."
        ),
    )

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )

    @field_validator("token_encryption_secret", mode="before")
    @classmethod
    def _split_secrets(
        cls, value: str | tuple[str, ...] | list[str]
    ) -> tuple[str, ...]:
        return _split_csv(value)


class CacheSettings(BaseSettings):
    """Primary cache used for tokens and OAuth state."""

    redis_url: Optional[str] = Field(
        None,
        validation_alias="REDIS_URL",
        description="When unset an in-process cache is used.",
    )
    key_prefix: str = Field("crosspost:", validation_alias="CACHE_KEY_PREFIX")

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


class StorageSettings(BaseSettings):
    """Durable storage for accounts, publish records and media."""

    database_path: str = Field("data/crosspost.db", validation_alias="DATABASE_PATH")
    media_backend: str = Field(
        "local",
        validation_alias="MEDIA_BACKEND",
        description="Either 'local' or 's3'.",
    )
    local_media_dir: str = Field("data/media", validation_alias="LOCAL_MEDIA_DIR")
    local_media_base_url: str = Field(
        "http://localhost:8000/media", validation_alias="LOCAL_MEDIA_BASE_URL"
    )
    max_upload_bytes: int = Field(50 * 1024 * 1024, validation_alias="MAX_UPLOAD_BYTES")

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


class AWSSettings(BaseSettings):
    """Settings for the S3 media bucket."""

    region_name: str = Field("us-east-1", validation_alias="AWS_REGION")
    s3_bucket: Optional[str] = Field(None, validation_alias="MEDIA_S3_BUCKET")
    s3_endpoint_url: Optional[str] = Field(
        None,
        validation_alias="MEDIA_S3_ENDPOINT_URL",
        description="Custom endpoint for S3-compatible stores such as MinIO.",
    )
    public_base_url: Optional[str] = Field(
        None,
        validation_alias="MEDIA_PUBLIC_BASE_URL",
        description="CDN base URL; defaults to the bucket's virtual-hosted URL.",
    )

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


class SchedulerSettings(BaseSettings):
    """Background publishing of scheduled posts and failed-target retries."""

    enabled: bool = Field(True, validation_alias="SCHEDULER_ENABLED")
    poll_interval_seconds: float = Field(60.0, validation_alias="SCHEDULER_POLL_INTERVAL")
    batch_size: int = Field(50, validation_alias="SCHEDULER_BATCH_SIZE")
    max_retries: int = Field(5, validation_alias="PUBLISH_MAX_RETRIES")
    retry_base_delay_seconds: float = Field(
        60.0,
        validation_alias="PUBLISH_RETRY_BASE_DELAY",
        description="First retry delay; doubled on every further attempt.",
    )
    retry_max_delay_seconds: float = Field(
        3600.0, validation_alias="PUBLISH_RETRY_MAX_DELAY"
    )

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[str] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    facebook: FacebookSettings = Field(default_factory=FacebookSettings)
    instagram: InstagramSettings = Field(default_factory=InstagramSettings)
    linkedin: LinkedInSettings = Field(default_factory=LinkedInSettings)
    tiktok: TikTokSettings = Field(default_factory=TikTokSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def platform_settings(self) -> dict[str, PlatformOAuthSettings]:
        """Return provider settings keyed by platform name."""
        return {
            "facebook": self.facebook,
            "instagram": self.instagram,
            "linkedin": self.linkedin,
            "tiktok": self.tiktok,
        }


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "AWSSettings",
    "CacheSettings",
    "FacebookSettings",
    "InstagramSettings",
    "LinkedInSettings",
    "OAuthSettings",
    "PlatformOAuthSettings",
    "SchedulerSettings",
    "SecuritySettings",
    "StorageSettings",
    "TikTokSettings",
    "get_settings",
]
