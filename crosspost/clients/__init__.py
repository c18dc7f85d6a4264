"""Expose constructed client wrappers."""

from .cache import CacheBackend, InMemoryCacheBackend, RedisCacheBackend
from .media_storage import LocalMediaStorage, MediaStorage, S3MediaStorage
from .sqlite_store import SQLiteStore

__all__ = [
    "CacheBackend",
    "InMemoryCacheBackend",
    "LocalMediaStorage",
    "MediaStorage",
    "RedisCacheBackend",
    "S3MediaStorage",
    "SQLiteStore",
]
