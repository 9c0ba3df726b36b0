"""
Test fixtures shared across all test files.

Components run against the real RedisStore wrapping an in-memory client, with
a controllable clock shared by the store and the fake's key expiry.
"""

from __future__ import annotations

import pytest

from fakes import FakeClock, FakeRedis
from jobguard.config import SecurityConfig
from jobguard.security import SecurityServices, build_security_services
from jobguard.store.redis_store import RedisStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis(clock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture
async def store(fake_redis, clock) -> RedisStore:
    kv = RedisStore(fake_redis, clock=clock)
    await kv.connect()
    return kv


@pytest.fixture
def security_config() -> SecurityConfig:
    return SecurityConfig()


@pytest.fixture
def services(store, security_config, clock) -> SecurityServices:
    return build_security_services(store, security_config, clock)
