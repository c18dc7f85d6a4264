"""Token record cache with per-token-type lifetimes."""

from __future__ import annotations

from typing import Literal, Mapping, Optional

from crosspost.clients.cache import CacheBackend
from crosspost.core.config import PlatformOAuthSettings
from crosspost.models.oauth import TokenRecord

TokenType = Literal["access", "refresh"]

_FALLBACK_TTL = {"access": 3600, "refresh": 7200}


class TokenCacheService:
    """Stores normalized token records under deterministic keys.

    Keys have the form ``"{access|refresh}_token:{platform}:{identifier}"``.
    When no TTL is passed to :meth:`set`, the lifetime comes from the
    platform's ``token_ttl`` or ``refresh_token_ttl`` depending on the key's
    namespace. Backend errors are not caught here.
    """

    def __init__(
        self,
        backend: CacheBackend,
        platform_settings: Mapping[str, PlatformOAuthSettings],
    ) -> None:
        self._backend = backend
        self._platforms = platform_settings

    @staticmethod
    def key(token_type: TokenType, platform: str, identifier: str) -> str:
        return f"{token_type}_token:{platform}:{identifier}"

    async def get(self, key: str) -> Optional[TokenRecord]:
        payload = await self._backend.get(key)
        if payload is None:
            return None
        return TokenRecord.model_validate(payload)

    async def set(
        self, key: str, record: TokenRecord, ttl: Optional[int] = None
    ) -> None:
        if ttl is None:
            ttl = self.default_ttl(key)
        await self._backend.set(key, record.model_dump(mode="json"), ttl)

    async def delete(self, key: str) -> None:
        await self._backend.delete(key)

    def default_ttl(self, key: str) -> int:
        namespace, _, rest = key.partition(":")
        token_type = "refresh" if namespace == "refresh_token" else "access"
        platform = rest.partition(":")[0]
        settings = self._platforms.get(platform)
        if settings is None:
            return _FALLBACK_TTL[token_type]
        if token_type == "refresh":
            return settings.refresh_token_ttl
        return settings.token_ttl


__all__ = ["TokenCacheService", "TokenType"]
