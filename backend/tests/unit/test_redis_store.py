"""Tests for the Redis store adapter: fallbacks, reconnection and pipelines."""

from redis.exceptions import ConnectionError as RedisConnectionError

from fakes import FakeRedis
from jobguard.store.redis_store import RedisStore


class TestBasicCommands:

    async def test_set_and_get(self, store):
        assert await store.set("k", "v") is True
        assert await store.get("k") == "v"

    async def test_set_with_ttl_expires(self, store, clock):
        await store.set("k", "v", ttl=10)
        clock.advance(9)
        assert await store.get("k") == "v"
        clock.advance(2)
        assert await store.get("k") is None

    async def test_incr_counts_from_zero(self, store):
        assert await store.incr("c") == 1
        assert await store.incr("c") == 2

    async def test_expire_nx_keeps_existing_ttl(self, store, fake_redis):
        await store.set("k", "v", ttl=10)
        assert await store.expire("k", 100, nx=True) is False
        assert fake_redis.ttl_of("k") == 10

        await store.set("n", "v")
        assert await store.expire("n", 100, nx=True) is True
        assert fake_redis.ttl_of("n") == 100

    async def test_delete_without_keys_is_noop(self, store):
        assert await store.delete() == 0

    async def test_mget_without_keys_is_noop(self, store):
        assert await store.mget([]) == []

    async def test_hash_roundtrip(self, store):
        await store.hset("h", "a", "1")
        await store.hset("h", mapping={"b": "2"})
        assert await store.hgetall("h") == {"a": "1", "b": "2"}
        assert await store.hlen("h") == 2
        assert await store.hdel("h", "a") == 1
        assert await store.hget("h", "a") is None

    async def test_sorted_set_range(self, store):
        await store.zadd("z", {"x": 1, "y": 5, "z": 10})
        assert await store.zrangebyscore("z", 2, 10) == ["y", "z"]
        assert await store.zremrangebyscore("z", 0, 5) == 2
        assert await store.zcard("z") == 1

    async def test_list_push_and_trim(self, store):
        await store.lpush("l", "a")
        await store.lpush("l", "b")
        await store.lpush("l", "c")
        await store.ltrim("l", 0, 1)
        assert await store.lrange("l", 0, -1) == ["c", "b"]


class TestPipeline:

    async def test_results_in_order(self, store):
        pipe = store.pipeline()
        pipe.incr("a").expire("a", 60)
        pipe.incr("b")
        assert len(pipe) == 3
        assert await pipe.execute() == [1, True, 1]

    async def test_empty_pipeline(self, store):
        assert await store.pipeline().execute() == []

    async def test_failed_batch_applies_nothing(self, store, fake_redis, monkeypatch):
        async def broken_expire(*args, **kwargs):
            raise RedisConnectionError("Connection reset by peer")

        monkeypatch.setattr(fake_redis, "expire", broken_expire)
        pipe = store.pipeline()
        pipe.incr("a").expire("a", 60)
        assert await pipe.execute() == []
        assert await fake_redis.get("a") is None

    async def test_unavailable_returns_empty(self, store, fake_redis):
        fake_redis.fail = True
        pipe = store.pipeline()
        pipe.incr("a")
        assert await pipe.execute() == []


class TestFailOpen:

    async def test_fallbacks_when_connection_lost(self, store, fake_redis):
        fake_redis.fail = True
        assert await store.get("k") is None
        assert await store.set("k", "v") is False
        assert await store.incr("k") == 0
        assert await store.expire("k", 10) is False
        assert await store.keys("*") == []
        assert await store.hgetall("h") == {}
        assert await store.hget("h", "f") is None
        assert await store.zrangebyscore("z", 0, 10) == []
        assert await store.lrange("l", 0, -1) == []
        assert await store.ping() is False
        assert store.is_available is False

    async def test_commands_skipped_until_retry_interval(self, fake_redis, clock):
        store = RedisStore(fake_redis, retry_interval=30, clock=clock)
        await store.connect()

        fake_redis.fail = True
        assert await store.incr("c") == 0

        fake_redis.fail = False
        assert await store.incr("c") == 0
        assert await fake_redis.get("c") is None

        clock.advance(31)
        assert await store.incr("c") == 1
        assert store.is_available is True

    async def test_command_error_keeps_connection(self, store):
        await store.set("k", "not-a-number")
        assert await store.incr("k") == 0
        assert store.is_available is True

    async def test_connect_failure(self, clock):
        fake = FakeRedis(clock)
        fake.fail = True
        store = RedisStore(fake, clock=clock)
        assert await store.connect() is False
        assert store.is_available is False

    async def test_unconfigured_store(self):
        store = RedisStore.from_url("")
        assert store.client is None
        assert await store.connect() is False
        assert await store.get("k") is None
        assert await store.health_check() == {"status": "disconnected", "connected": False}


class TestHealthCheck:

    async def test_connected(self, store):
        report = await store.health_check()
        assert report["status"] == "connected"
        assert report["connected"] is True
        assert "latency_ms" in report

    async def test_error(self, store, fake_redis):
        fake_redis.fail = True
        report = await store.health_check()
        assert report["status"] == "error"
        assert report["connected"] is False

    async def test_close(self, store, fake_redis):
        await store.close()
        assert fake_redis.closed is True
        assert store.is_available is False
