import math
from types import SimpleNamespace

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from equity_insights.core import timeseries_store
from equity_insights.core.config import Settings
from equity_insights.core.exceptions import StoreError
from equity_insights.core.timeseries_store import (
    InMemoryTimeSeriesStore,
    RedisTimeSeriesStore,
    make_timeseries_store,
)


@pytest.mark.asyncio
async def test_memory_swap_returns_previous_value():
    store = InMemoryTimeSeriesStore()

    assert await store.swap("marker", "2025-06-01", expire=60) is None
    assert await store.swap("marker", "2025-06-02", expire=60) == "2025-06-01"
    assert await store.get("marker") == "2025-06-02"


@pytest.mark.asyncio
async def test_memory_values_expire(monkeypatch):
    store = InMemoryTimeSeriesStore()
    clock = [1_000.0]
    monkeypatch.setattr(timeseries_store.time, "time", lambda: clock[0])

    await store.set("marker", "2025-06-01", expire=10)
    assert await store.get("marker") == "2025-06-01"

    clock[0] += 11
    assert await store.get("marker") is None
    assert await store.swap("marker", "2025-06-02") is None


@pytest.mark.asyncio
async def test_memory_sorted_set_range_and_delete():
    store = InMemoryTimeSeriesStore()
    assert await store.zadd("h", 30, "c") == 1
    assert await store.zadd("h", 10, "a") == 1
    assert await store.zadd("h", 20, "b") == 1
    assert await store.zadd("h", 20, "b") == 0

    assert await store.zrangebyscore("h", -math.inf, math.inf) == ["a", "b", "c"]
    assert await store.zrangebyscore("h", 15, math.inf) == ["b", "c"]

    assert await store.zremrangebyscore("h", 0, 20) == 2
    assert await store.zrangebyscore("h", 0, math.inf) == ["c"]
    assert await store.zremrangebyscore("missing", 0, 20) == 0


@pytest.mark.asyncio
async def test_memory_delete():
    store = InMemoryTimeSeriesStore()
    await store.set("k", "v")
    assert await store.delete("k") is True
    assert await store.delete("k") is False


def _redis_client(**overrides):
    calls = []

    def recorder(name, result=None):
        async def call(*args, **kwargs):
            calls.append((name, args, kwargs))
            return result
        return call

    client = SimpleNamespace(
        get=recorder("get", "2025-06-01"),
        set=recorder("set", "2025-05-31"),
        delete=recorder("delete", 1),
        zadd=recorder("zadd", 1),
        zrangebyscore=recorder("zrangebyscore", ["m"]),
        zremrangebyscore=recorder("zremrangebyscore", 2),
        aclose=recorder("aclose"),
    )
    for name, fn in overrides.items():
        setattr(client, name, fn)
    return client, calls


@pytest.mark.asyncio
async def test_redis_store_prefixes_keys_and_uses_set_get():
    client, calls = _redis_client()
    store = RedisTimeSeriesStore(client, prefix="test:")

    assert await store.swap("marker", "2025-06-01", expire=86400) == "2025-05-31"
    assert calls[-1] == ("set", ("test:marker", "2025-06-01"), {"ex": 86400, "get": True})

    await store.zadd("hist", 123.0, "member")
    assert calls[-1] == ("zadd", ("test:hist", {"member": 123.0}), {})

    assert await store.zrangebyscore("hist", 100, math.inf) == ["m"]
    assert calls[-1] == ("zrangebyscore", ("test:hist", 100, "+inf"), {})

    assert await store.delete("marker") is True


@pytest.mark.asyncio
async def test_redis_errors_become_store_errors():
    async def boom(*args, **kwargs):
        raise RedisConnectionError("connection refused")

    client, _ = _redis_client(get=boom, zadd=boom)
    store = RedisTimeSeriesStore(client)

    with pytest.raises(StoreError):
        await store.get("marker")
    with pytest.raises(StoreError):
        await store.zadd("hist", 1.0, "m")


def test_factory_defaults_to_memory():
    store = make_timeseries_store(Settings(REDIS_ENABLED=False))
    assert isinstance(store, InMemoryTimeSeriesStore)
    assert store.name == "memory"


def test_factory_builds_redis_store():
    store = make_timeseries_store(Settings(REDIS_ENABLED=True, REDIS_URL="redis://localhost:6379/1", REDIS_KEY_PREFIX="x:"))
    assert isinstance(store, RedisTimeSeriesStore)
    assert store.prefix == "x:"


def test_redis_url_is_validated():
    with pytest.raises(ValueError):
        Settings(REDIS_URL="http://localhost:6379")
