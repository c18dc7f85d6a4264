"""
Primary cache backends for token records and OAuth state.

Redis is used when ``REDIS_URL`` is configured; otherwise an in-process
dictionary with expiry stands in for it during development and tests.
Values are JSON documents in both backends.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    async def set(
        self, key: str, value: Dict[str, Any], ttl: Optional[int] = None
    ) -> None: ...

    async def delete(self, key: str) -> bool: ...


class InMemoryCacheBackend:
    """Process-local cache with per-key expiry."""

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            payload, expires_at = entry
            if expires_at is not None and expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return json.loads(payload)

    async def set(
        self, key: str, value: Dict[str, Any], ttl: Optional[int] = None
    ) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        async with self._lock:
            self._entries[key] = (json.dumps(value, default=str), expires_at)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None


class RedisCacheBackend:
    """Redis-backed cache shared by every API worker."""

    def __init__(self, redis_url: str, *, key_prefix: str = "") -> None:
        self._client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5.0,
            socket_timeout=5.0,
        )
        self._prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        payload = await self._client.get(self._key(key))
        if payload is None:
            return None
        return json.loads(payload)

    async def set(
        self, key: str, value: Dict[str, Any], ttl: Optional[int] = None
    ) -> None:
        await self._client.set(
            self._key(key), json.dumps(value, default=str), ex=ttl or None
        )

    async def delete(self, key: str) -> bool:
        removed = await self._client.delete(self._key(key))
        return bool(removed)

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis connection closed")


__all__ = ["CacheBackend", "InMemoryCacheBackend", "RedisCacheBackend"]
