"""
Abstract key-value store interface.

The security components keep all of their state (counters, block records,
metrics) in a shared key-value store rather than in process memory.
Every primitive has a documented fallback that a backend returns instead of
raising when the store is unreachable, so callers never need a try/except
around a store call.
"""

from __future__ import annotations

import abc
from typing import Any, Mapping, Optional


class StorePipeline:
    """
    Queues commands and sends them to the store as one atomic batch.

    Commands are recorded as (name, args, kwargs) and replayed by the owning
    store on execute(). Queue methods return the pipeline so calls can chain.
    """

    def __init__(self, store: "KeyValueStore"):
        self._store = store
        self._commands: list[tuple[str, tuple, dict]] = []

    def __len__(self) -> int:
        return len(self._commands)

    def _queue(self, name: str, *args: Any, **kwargs: Any) -> "StorePipeline":
        self._commands.append((name, args, kwargs))
        return self

    def incr(self, key: str) -> "StorePipeline":
        return self._queue("incr", key)

    def expire(self, key: str, seconds: int, nx: bool = False) -> "StorePipeline":
        if nx:
            return self._queue("expire", key, seconds, nx=True)
        return self._queue("expire", key, seconds)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> "StorePipeline":
        if ttl:
            return self._queue("set", key, value, ex=ttl)
        return self._queue("set", key, value)

    def delete(self, *keys: str) -> "StorePipeline":
        return self._queue("delete", *keys)

    def hset(self, key: str, field: str, value: str) -> "StorePipeline":
        return self._queue("hset", key, field, value)

    def hincrby(self, key: str, field: str, amount: int = 1) -> "StorePipeline":
        return self._queue("hincrby", key, field, amount)

    def zadd(self, key: str, mapping: Mapping[str, float]) -> "StorePipeline":
        return self._queue("zadd", key, dict(mapping))

    async def execute(self) -> list[Any]:
        """
        Send the queued commands.
        Returns one result per command, or [] when the store is unavailable.
        """
        commands, self._commands = self._commands, []
        if not commands:
            return []
        return await self._store.execute_pipeline(commands)


class KeyValueStore(abc.ABC):
    """
    All store backends implement this interface.
    Fallbacks are listed per method: they are what a backend returns when the
    underlying service is unreachable or a command times out.
    """

    @property
    @abc.abstractmethod
    def is_available(self) -> bool:
        """Whether commands are currently being sent to the backing service."""
        ...

    @abc.abstractmethod
    async def ping(self) -> bool:
        """Round-trip check. Fallback: False."""
        ...

    @abc.abstractmethod
    async def health_check(self) -> dict[str, Any]:
        """Connection status report with latency when connected."""
        ...

    @abc.abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...

    # ─── Strings / counters ───

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Fallback: None."""
        ...

    @abc.abstractmethod
    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set a value, with an expiry in seconds when ttl is given. Fallback: False."""
        ...

    @abc.abstractmethod
    async def delete(self, *keys: str) -> int:
        """Fallback: 0."""
        ...

    @abc.abstractmethod
    async def incr(self, key: str) -> int:
        """Fallback: 0."""
        ...

    @abc.abstractmethod
    async def expire(self, key: str, seconds: int, nx: bool = False) -> bool:
        """Set a TTL; with nx only when the key has none. Fallback: False."""
        ...

    @abc.abstractmethod
    async def keys(self, pattern: str) -> list[str]:
        """Fallback: []."""
        ...

    @abc.abstractmethod
    async def mget(self, keys: list[str]) -> list[Optional[str]]:
        """Fallback: []."""
        ...

    # ─── Hashes ───

    @abc.abstractmethod
    async def hset(
        self,
        key: str,
        field: Optional[str] = None,
        value: Optional[str] = None,
        mapping: Optional[Mapping[str, str]] = None,
    ) -> int:
        """Fallback: 0."""
        ...

    @abc.abstractmethod
    async def hget(self, key: str, field: str) -> Optional[str]:
        """Fallback: None."""
        ...

    @abc.abstractmethod
    async def hgetall(self, key: str) -> dict[str, str]:
        """Fallback: {}."""
        ...

    @abc.abstractmethod
    async def hdel(self, key: str, *fields: str) -> int:
        """Fallback: 0."""
        ...

    @abc.abstractmethod
    async def hlen(self, key: str) -> int:
        """Fallback: 0."""
        ...

    @abc.abstractmethod
    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        """Fallback: 0."""
        ...

    # ─── Sorted sets ───

    @abc.abstractmethod
    async def zadd(self, key: str, mapping: Mapping[str, float]) -> int:
        """Fallback: 0."""
        ...

    @abc.abstractmethod
    async def zrangebyscore(self, key: str, min_score: float, max_score: float) -> list[str]:
        """Fallback: []."""
        ...

    @abc.abstractmethod
    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        """Fallback: 0."""
        ...

    @abc.abstractmethod
    async def zcard(self, key: str) -> int:
        """Fallback: 0."""
        ...

    # ─── Lists ───

    @abc.abstractmethod
    async def lpush(self, key: str, *values: str) -> int:
        """Fallback: 0."""
        ...

    @abc.abstractmethod
    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        """Fallback: []."""
        ...

    @abc.abstractmethod
    async def ltrim(self, key: str, start: int, end: int) -> bool:
        """Fallback: False."""
        ...

    # ─── Batching ───

    def pipeline(self) -> StorePipeline:
        """Start a batch of commands sent atomically on execute()."""
        return StorePipeline(self)

    @abc.abstractmethod
    async def execute_pipeline(self, commands: list[tuple[str, tuple, dict]]) -> list[Any]:
        """Apply queued pipeline commands atomically. Fallback: []."""
        ...
