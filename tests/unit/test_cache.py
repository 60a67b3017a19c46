"""
Unit Tests - Dashboard Cache
"""
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from kpi_engine.serving.cache import CacheManager


class DictRedis:
    """Just enough of the redis client for CacheManager"""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    async def scan_iter(self, match=None):
        prefix = match.rstrip("*")
        for key in list(self.store):
            if key.startswith(prefix):
                yield key

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)
        return len(keys)


class DownRedis:
    async def get(self, key):
        raise RedisConnectionError("Connection refused")

    async def setex(self, key, ttl, value):
        raise RedisConnectionError("Connection refused")


class TestCacheManager:
    """Tests for the namespaced JSON cache"""

    @pytest.mark.asyncio
    async def test_get_or_set_computes_once(self):
        client = DictRedis()
        cache = CacheManager("dashboard", default_ttl=60, client=client)
        calls = []

        async def compute():
            calls.append(1)
            return {"totalRevenue": 4500.0}

        first = await cache.get_or_set("30d:day:10", compute)
        second = await cache.get_or_set("30d:day:10", compute)

        assert first == second == {"totalRevenue": 4500.0}
        assert len(calls) == 1
        assert client.ttls["dashboard:30d:day:10"] == 60

    @pytest.mark.asyncio
    async def test_cache_down_falls_through(self):
        cache = CacheManager("dashboard", client=DownRedis())

        async def compute():
            return {"ok": True}

        assert await cache.get("k") is None
        assert await cache.set("k", {"ok": True}) is False
        assert await cache.get_or_set("k", compute) == {"ok": True}

    @pytest.mark.asyncio
    async def test_no_client_is_a_miss(self):
        cache = CacheManager("dashboard")

        assert await cache.get("k") is None
        assert await cache.set("k", 1) is False
        assert await cache.invalidate_all() == 0

    @pytest.mark.asyncio
    async def test_invalidate_all_only_touches_namespace(self):
        client = DictRedis()
        client.store["other:k"] = "1"
        cache = CacheManager("dashboard", client=client)
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.invalidate_all() == 2
        assert list(client.store) == ["other:k"]
