"""
Single-use OAuth state records.

State is written to the primary cache and mirrored to a durable store so a
callback can still be verified if the cache was flushed or unavailable while
the user sat on the consent screen.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Any, Dict, Optional

from crosspost.clients.cache import CacheBackend
from crosspost.clients.sqlite_store import SQLiteStore
from crosspost.models.oauth import OAuthState

logger = logging.getLogger(__name__)

_DURABLE_PARTITION = "oauth_state"


class OAuthStateStore:
    """Create and consume anti-forgery state tokens.

    Either store may be down; an operation only fails when both are. When
    the cache cannot be reached the durable delete alone decides which
    consumer wins.
    """

    def __init__(
        self,
        cache: CacheBackend,
        durable_store: SQLiteStore,
        *,
        ttl_seconds: int = 600,
    ) -> None:
        self._cache = cache
        self._durable = durable_store
        self._ttl = ttl_seconds
        self._consume_lock = asyncio.Lock()

    @staticmethod
    def key(token: str) -> str:
        return f"oauth_state:{token}"

    async def create(self, platform: str, user_id: str) -> str:
        token = secrets.token_hex(32)
        state = OAuthState(token=token, platform=platform, user_id=user_id, ttl=self._ttl)
        payload = state.model_dump(mode="json")
        key = self.key(token)

        cache_error: Optional[Exception] = None
        try:
            await self._cache.set(key, payload, self._ttl)
        except Exception as exc:
            cache_error = exc
            logger.warning("OAuth state cache write failed: %s", exc)

        try:
            await asyncio.to_thread(
                self._durable.put_item,
                partition_key=_DURABLE_PARTITION,
                sort_key=key,
                item=payload,
                ttl_seconds=self._ttl,
            )
        except Exception as exc:
            if cache_error is not None:
                raise
            logger.warning("OAuth state durable write failed: %s", exc)
        return token

    async def _read(self, key: str) -> Optional[Dict[str, Any]]:
        cache_error: Optional[Exception] = None
        try:
            payload = await self._cache.get(key)
        except Exception as exc:
            cache_error = exc
            payload = None
            logger.warning("OAuth state cache read failed, using durable store: %s", exc)
        if payload is not None:
            return payload

        try:
            payload = await asyncio.to_thread(
                self._durable.get_item,
                partition_key=_DURABLE_PARTITION,
                sort_key=key,
            )
        except Exception:
            if cache_error is not None:
                raise
            logger.exception("OAuth state durable read failed")
            return None
        if payload is not None:
            logger.info("OAuth state recovered from durable store")
        return payload

    async def _remove(self, key: str) -> bool:
        durable_error: Optional[Exception] = None
        try:
            removed_durable = await asyncio.to_thread(
                self._durable.delete_item,
                partition_key=_DURABLE_PARTITION,
                sort_key=key,
            )
        except Exception as exc:
            durable_error = exc
            removed_durable = False
            logger.warning("OAuth state durable delete failed: %s", exc)

        try:
            removed_cached = await self._cache.delete(key)
        except Exception as exc:
            if durable_error is not None:
                raise
            removed_cached = False
            logger.warning("OAuth state cache delete failed: %s", exc)

        return bool(removed_durable or removed_cached)

    async def consume(self, token: str) -> Optional[OAuthState]:
        """Return the state bound to ``token`` at most once, or None."""
        if not token:
            return None
        key = self.key(token)

        async with self._consume_lock:
            payload = await self._read(key)
            if payload is None:
                return None
            removed = await self._remove(key)

        # Another worker consumed it between our read and our delete.
        if not removed:
            return None
        return OAuthState.model_validate(payload)


__all__ = ["OAuthStateStore"]
