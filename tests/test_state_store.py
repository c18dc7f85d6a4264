try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import asyncio
from types import SimpleNamespace

import pytest

from crosspost.clients import sqlite_store as sqlite_store_module
from crosspost.clients.cache import InMemoryCacheBackend
from crosspost.clients.sqlite_store import SQLiteStore
from crosspost.services.state_store import OAuthStateStore


@pytest.fixture()
def store(tmp_path):
    cache = InMemoryCacheBackend()
    durable = SQLiteStore(str(tmp_path / "state.db"))
    return OAuthStateStore(cache, durable, ttl_seconds=600), cache


@pytest.mark.asyncio
async def test_state_is_consumed_exactly_once(store) -> None:
    states, _ = store
    token = await states.create("facebook", "user-1")

    assert len(token) == 64
    state = await states.consume(token)
    assert state is not None
    assert state.platform == "facebook"
    assert state.user_id == "user-1"

    assert await states.consume(token) is None


@pytest.mark.asyncio
async def test_unknown_state_is_rejected(store) -> None:
    states, _ = store
    assert await states.consume("abc") is None
    assert await states.consume("") is None


@pytest.mark.asyncio
async def test_durable_copy_survives_cache_loss(store) -> None:
    states, cache = store
    token = await states.create("linkedin", "user-2")
    await cache.delete(states.key(token))

    state = await states.consume(token)
    assert state is not None
    assert state.user_id == "user-2"
    assert await states.consume(token) is None


@pytest.mark.asyncio
async def test_expired_durable_state_is_missing(store, monkeypatch) -> None:
    states, cache = store
    token = await states.create("tiktok", "user-3")
    await cache.delete(states.key(token))

    future = sqlite_store_module.time.time() + 601
    monkeypatch.setattr(sqlite_store_module, "time", SimpleNamespace(time=lambda: future))

    assert await states.consume(token) is None


@pytest.mark.asyncio
async def test_concurrent_consumers_only_one_wins(store) -> None:
    states, _ = store
    token = await states.create("instagram", "user-4")

    results = await asyncio.gather(*(states.consume(token) for _ in range(5)))

    assert sum(1 for result in results if result is not None) == 1


class UnreachableCache:
    """Cache backend whose server is down."""

    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value, ttl=None):
        raise ConnectionError("redis down")

    async def delete(self, key):
        raise ConnectionError("redis down")


@pytest.mark.asyncio
async def test_state_survives_cache_outage_after_create(store) -> None:
    states, _ = store
    token = await states.create("linkedin", "user-5")
    states._cache = UnreachableCache()

    state = await states.consume(token)
    assert state is not None
    assert state.user_id == "user-5"
    assert await states.consume(token) is None


@pytest.mark.asyncio
async def test_state_round_trip_with_cache_down_throughout(tmp_path) -> None:
    states = OAuthStateStore(UnreachableCache(), SQLiteStore(str(tmp_path / "state.db")))

    token = await states.create("facebook", "user-6")
    results = await asyncio.gather(*(states.consume(token) for _ in range(3)))

    assert [result.user_id for result in results if result is not None] == ["user-6"]


class BrokenDurableStore:
    def put_item(self, **kwargs):
        raise OSError("disk full")

    def get_item(self, **kwargs):
        raise OSError("disk full")

    def delete_item(self, **kwargs):
        raise OSError("disk full")


@pytest.mark.asyncio
async def test_create_fails_only_when_both_stores_fail() -> None:
    states = OAuthStateStore(UnreachableCache(), BrokenDurableStore())

    with pytest.raises(OSError):
        await states.create("tiktok", "user-7")


@pytest.mark.asyncio
async def test_cache_alone_is_enough_when_durable_store_fails() -> None:
    states = OAuthStateStore(InMemoryCacheBackend(), BrokenDurableStore())

    token = await states.create("tiktok", "user-8")
    state = await states.consume(token)

    assert state is not None
    assert await states.consume(token) is None
