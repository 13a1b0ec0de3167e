from types import SimpleNamespace

import pytest

from arsychat.services.session_store import InMemorySessionStore, RedisSessionStore, build_session_store


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class FakeRedis:
    """Minimal async Redis stand-in; expiry is not simulated."""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.closed = False

    async def set(self, key, value, ex=None, nx=False):
        if nx and key in self.data:
            return None
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def exists(self, key):
        return 1 if key in self.data else 0

    async def getdel(self, key):
        return self.data.pop(key, None)

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def aclose(self):
        self.closed = True


class TestInMemorySessionStore:
    @pytest.mark.asyncio
    async def test_activate_and_consume_once(self):
        store = InMemorySessionStore()
        await store.activate(999)

        assert await store.is_active(999) is True
        assert await store.consume(999) is True
        assert await store.consume(999) is False
        assert await store.is_active(999) is False

    @pytest.mark.asyncio
    async def test_sessions_are_per_chat(self):
        store = InMemorySessionStore()
        await store.activate(999)
        assert await store.is_active(42) is False
        assert await store.consume(42) is False
        assert await store.is_active(999) is True

    @pytest.mark.asyncio
    async def test_session_expires(self):
        clock = FakeClock()
        store = InMemorySessionStore(ttl_seconds=60, clock=clock)
        await store.activate(999)

        clock.now += 61

        assert await store.is_active(999) is False
        assert await store.consume(999) is False

    @pytest.mark.asyncio
    async def test_expired_session_is_not_consumed(self):
        clock = FakeClock()
        store = InMemorySessionStore(ttl_seconds=60, clock=clock)
        await store.activate(999)
        clock.now += 120
        assert await store.consume(999) is False

    @pytest.mark.asyncio
    async def test_cursor_roundtrip(self):
        store = InMemorySessionStore()
        assert await store.get_cursor("999:5") is None

        await store.set_cursor("999:5", 3)
        assert await store.get_cursor("999:5") == 3

        await store.clear_cursor("999:5")
        assert await store.get_cursor("999:5") is None

    @pytest.mark.asyncio
    async def test_claim_succeeds_once(self):
        store = InMemorySessionStore()

        assert await store.claim("999:5") is True
        assert await store.claim("999:5") is False
        assert await store.claim("999:6") is True

    @pytest.mark.asyncio
    async def test_claim_expires(self):
        clock = FakeClock()
        store = InMemorySessionStore(claim_ttl_seconds=600, clock=clock)
        await store.claim("999:5")

        clock.now += 601

        assert await store.claim("999:5") is True


class TestRedisSessionStore:
    @pytest.mark.asyncio
    async def test_activate_sets_ttl(self):
        redis = FakeRedis()
        store = RedisSessionStore(redis, ttl_seconds=120)

        await store.activate(999)

        assert redis.data == {"arsychat:broadcast_session:999": "1"}
        assert redis.expiry["arsychat:broadcast_session:999"] == 120
        assert await store.is_active(999) is True

    @pytest.mark.asyncio
    async def test_consume_once(self):
        store = RedisSessionStore(FakeRedis())
        await store.activate(999)

        assert await store.consume(999) is True
        assert await store.consume(999) is False
        assert await store.is_active(999) is False

    @pytest.mark.asyncio
    async def test_cursor(self):
        redis = FakeRedis()
        store = RedisSessionStore(redis)

        await store.set_cursor("999:5", 2)
        assert redis.data["arsychat:broadcast_cursor:999:5"] == "2"
        assert await store.get_cursor("999:5") == 2

        await store.clear_cursor("999:5")
        assert await store.get_cursor("999:5") is None

    @pytest.mark.asyncio
    async def test_malformed_cursor_reads_as_none(self):
        redis = FakeRedis()
        redis.data["arsychat:broadcast_cursor:999:5"] = "abc"
        assert await RedisSessionStore(redis).get_cursor("999:5") is None

    @pytest.mark.asyncio
    async def test_claim_uses_set_if_absent(self):
        redis = FakeRedis()
        store = RedisSessionStore(redis, cursor_ttl_seconds=300)

        assert await store.claim("999:5") is True
        assert await store.claim("999:5") is False
        assert redis.expiry["arsychat:broadcast_claim:999:5"] == 300
        assert await store.claim("999:6") is True

    @pytest.mark.asyncio
    async def test_aclose(self):
        redis = FakeRedis()
        await RedisSessionStore(redis).aclose()
        assert redis.closed is True


class TestBuildSessionStore:
    def test_in_memory_without_redis(self):
        store = build_session_store(SimpleNamespace(redis_url=None, broadcast_session_ttl_seconds=30))
        assert isinstance(store, InMemorySessionStore)
        assert store.ttl_seconds == 30

    def test_redis_when_configured(self):
        store = build_session_store(
            SimpleNamespace(redis_url="redis://localhost:6379/0", broadcast_session_ttl_seconds=30)
        )
        assert isinstance(store, RedisSessionStore)
        assert store.ttl_seconds == 30
