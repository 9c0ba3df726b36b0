"""
Redis-backed key-value store.

Wraps a redis.asyncio client so that every command goes through one guarded
path (`execute`): a per-command timeout, connection-loss detection and a
fallback value instead of an exception. While the connection is down commands
are skipped outright, with one command let through per retry interval
so the store recovers on its own once Redis is back.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from jobguard.store.base import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that mean "the server is unreachable", as opposed to a bad command.
_CONNECTION_ERRORS = (RedisConnectionError, RedisTimeoutError, asyncio.TimeoutError, OSError)


class RedisStore(KeyValueStore):
    """
    KeyValueStore on top of redis.asyncio.

    Usage:
        store = RedisStore.from_url("redis://localhost:6379/0")
        await store.connect()
        await store.incr("counter")
    """

    def __init__(
        self,
        client: Optional[aioredis.Redis],
        connect_timeout: float = 5.0,
        command_timeout: float = 10.0,
        retry_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.retry_interval = retry_interval
        self._clock = clock
        self._connected = False
        self._next_retry_at = 0.0

    @classmethod
    def from_url(
        cls,
        url: str,
        connect_timeout: float = 5.0,
        command_timeout: float = 10.0,
        retry_interval: float = 30.0,
    ) -> "RedisStore":
        if not url:
            logger.warning("REDIS_URL not configured, security state will not be persisted")
            return cls(None, connect_timeout, command_timeout, retry_interval)

        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=connect_timeout,
            socket_timeout=command_timeout,
            health_check_interval=30,
        )
        return cls(client, connect_timeout, command_timeout, retry_interval)

    # ─── Connection lifecycle ───

    @property
    def client(self) -> Optional[aioredis.Redis]:
        return self._client

    @property
    def is_available(self) -> bool:
        return self._connected and self._client is not None

    async def connect(self) -> bool:
        """Ping the server once and record whether it is reachable."""
        if self._client is None:
            return False
        try:
            await asyncio.wait_for(self._client.ping(), timeout=self.connect_timeout)
        except (RedisError, *_CONNECTION_ERRORS) as exc:
            logger.error(f"Failed to connect to Redis: {exc}")
            self._mark_unavailable()
            return False
        self._connected = True
        logger.info("Redis connection successful")
        return True

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
            logger.info("Redis connection closed gracefully")
        except (RedisError, OSError) as exc:
            logger.error(f"Error closing Redis connection: {exc}")
        finally:
            self._connected = False

    def _mark_unavailable(self) -> None:
        self._connected = False
        self._next_retry_at = self._clock() + self.retry_interval

    def _should_skip(self) -> bool:
        if self._client is None:
            return True
        if self._connected:
            return False
        now = self._clock()
        if now >= self._next_retry_at:
            # Let this command through as a reconnection attempt.
            self._next_retry_at = now + self.retry_interval
            return False
        return True

    async def execute(
        self,
        operation: Callable[[aioredis.Redis], Awaitable[T]],
        fallback: T,
        operation_name: str = "Redis operation",
    ) -> T:
        """
        Run `operation` against the client, returning `fallback` instead of
        raising when Redis is unavailable, times out or rejects the command.
        """
        if self._should_skip():
            logger.warning(f"{operation_name} skipped - Redis not available, using fallback")
            return fallback

        try:
            result = await asyncio.wait_for(operation(self._client), timeout=self.command_timeout)
        except _CONNECTION_ERRORS as exc:
            logger.warning(f"{operation_name} failed due to connection issue: {exc!r}")
            self._mark_unavailable()
            return fallback
        except RedisError as exc:
            logger.error(f"{operation_name} failed: {exc}")
            return fallback

        if not self._connected:
            logger.info("Redis connection restored")
            self._connected = True
        return result

    async def ping(self) -> bool:
        return await self.execute(lambda r: r.ping(), False, "PING")

    async def health_check(self) -> dict[str, Any]:
        if self._client is None:
            return {"status": "disconnected", "connected": False}
        start = time.perf_counter()
        try:
            await asyncio.wait_for(self._client.ping(), timeout=self.connect_timeout)
        except (RedisError, *_CONNECTION_ERRORS) as exc:
            return {"status": "error", "connected": False, "error": str(exc)}
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        self._connected = True
        return {"status": "connected", "connected": True, "latency_ms": latency_ms}

    # ─── Strings / counters ───

    async def get(self, key: str) -> Optional[str]:
        return await self.execute(lambda r: r.get(key), None, f"GET {key}")

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        if ttl:
            op = lambda r: r.set(key, value, ex=ttl)  # noqa: E731
        else:
            op = lambda r: r.set(key, value)  # noqa: E731
        return bool(await self.execute(op, False, f"SET {key}"))

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self.execute(lambda r: r.delete(*keys), 0, f"DEL {len(keys)} keys")

    async def incr(self, key: str) -> int:
        return await self.execute(lambda r: r.incr(key), 0, f"INCR {key}")

    async def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        return bool(
            await self.execute(lambda r: r.expire(key, seconds, nx=nx), False, f"EXPIRE {key}")
        )

    async def keys(self, pattern: str) -> list[str]:
        return await self.execute(lambda r: r.keys(pattern), [], f"KEYS {pattern}")

    async def mget(self, keys: list[str]) -> list[Optional[str]]:
        if not keys:
            return []
        return await self.execute(lambda r: r.mget(keys), [], f"MGET {len(keys)} keys")

    # ─── Hashes ───

    async def hset(
        self,
        key: str,
        field: Optional[str] = None,
        value: Optional[str] = None,
        mapping: Optional[Mapping[str, str]] = None,
    ) -> int:
        return await self.execute(
            lambda r: r.hset(key, field, value, mapping=dict(mapping) if mapping else None),
            0,
            f"HSET {key}",
        )

    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self.execute(lambda r: r.hget(key, field), None, f"HGET {key} {field}")

    async def hgetall(self, key: str) -> dict[str, str]:
        return await self.execute(lambda r: r.hgetall(key), {}, f"HGETALL {key}")

    async def hdel(self, key: str, *fields: str) -> int:
        return await self.execute(lambda r: r.hdel(key, *fields), 0, f"HDEL {key}")

    async def hlen(self, key: str) -> int:
        return await self.execute(lambda r: r.hlen(key), 0, f"HLEN {key}")

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        return await self.execute(
            lambda r: r.hincrby(key, field, amount), 0, f"HINCRBY {key} {field}"
        )

    # ─── Sorted sets ───

    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        return await self.execute(lambda r: r.zadd(key, dict(mapping)), 0, f"ZADD {key}")

    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> list[str]:
        return await self.execute(
            lambda r: r.zrangebyscore(key, min_score, max_score), [], f"ZRANGEBYSCORE {key}"
        )

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        return await self.execute(
            lambda r: r.zremrangebyscore(key, min_score, max_score), 0, f"ZREMRANGEBYSCORE {key}"
        )

    async def zcard(self, key: str) -> int:
        return await self.execute(lambda r: r.zcard(key), 0, f"ZCARD {key}")

    # ─── Lists ───

    async def lpush(self, key: str, *values: str) -> int:
        return await self.execute(lambda r: r.lpush(key, *values), 0, f"LPUSH {key}")

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        return await self.execute(lambda r: r.lrange(key, start, end), [], f"LRANGE {key}")

    async def ltrim(self, key: str, start: int, end: int) -> bool:
        return bool(await self.execute(lambda r: r.ltrim(key, start, end), False, f"LTRIM {key}"))

    # ─── Batching ───

    async def execute_pipeline(self, commands: list[tuple[str, tuple, dict]]) -> list[Any]:
        async def _run(r: aioredis.Redis) -> list[Any]:
            pipe = r.pipeline(transaction=True)
            for name, args, kwargs in commands:
                getattr(pipe, name)(*args, **kwargs)
            return await pipe.execute()

        return await self.execute(_run, [], f"PIPELINE {len(commands)} commands")
