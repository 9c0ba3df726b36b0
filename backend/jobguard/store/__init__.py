"""
Store factory. Returns the configured key-value backend.
"""

from jobguard.config import Settings, get_settings
from jobguard.store.base import KeyValueStore, StorePipeline
from jobguard.store.redis_store import RedisStore


def get_store(settings: Settings | None = None) -> RedisStore:
    """Build the Redis store from settings. The caller awaits connect()."""
    settings = settings or get_settings()
    return RedisStore.from_url(
        settings.redis_url,
        connect_timeout=settings.redis_connect_timeout,
        command_timeout=settings.redis_command_timeout,
        retry_interval=settings.redis_retry_interval,
    )


__all__ = ["KeyValueStore", "StorePipeline", "RedisStore", "get_store"]
