"""Tests for the per-endpoint rate-limit policy table."""

import logging

import pytest

from jobguard.models.schemas import RateLimitPolicy
from jobguard.security.policies import RateLimitPolicyTable, adjust_for_load


@pytest.fixture
def table():
    return RateLimitPolicyTable()


class TestEndpointLimits:

    @pytest.mark.parametrize("endpoint, window_ms, max_requests", [
        ("/auth/login", 60_000, 30),
        ("/auth/register", 300_000, 15),
        ("/auth/forgot-password", 3_600_000, 8),
        ("/graphql", 60_000, 1000),
        ("/upload", 60_000, 100),
        ("/api/jobs", 60_000, 2000),
        ("/api/users", 60_000, 1000),
        ("/api/admin", 60_000, 200),
        ("/health", 60_000, 2000),
    ])
    def test_known_endpoints(self, table, endpoint, window_ms, max_requests):
        policy = table.get_endpoint_limits(endpoint)
        assert policy.endpoint_pattern == endpoint
        assert policy.window_ms == window_ms
        assert policy.max_requests == max_requests

    def test_unknown_endpoint_gets_default(self, table):
        policy = table.get_endpoint_limits("/api/unknown")
        assert policy.window_ms == 60_000
        assert policy.max_requests == 800

    def test_exact_match_only(self, table):
        assert table.get_endpoint_limits("/auth/login/extra").max_requests == 800

    def test_custom_table(self):
        table = RateLimitPolicyTable({"/x": (1000, 5)}, default=(2000, 10))
        assert table.get_endpoint_limits("/x").max_requests == 5
        assert table.get_endpoint_limits("/y").window_ms == 2000


class TestLoadAdjustment:

    def test_high_load_shrinks(self, table):
        assert table.get_dynamic_limits("/graphql", 85).max_requests == 700

    def test_low_load_grows(self, table):
        assert table.get_dynamic_limits("/graphql", 10).max_requests == 1200

    @pytest.mark.parametrize("load", [30, 50, 80])
    def test_normal_load_unchanged(self, table, load):
        assert table.get_dynamic_limits("/graphql", load).max_requests == 1000

    def test_rounds_down(self):
        policy = RateLimitPolicy(endpoint_pattern="/x", window_ms=60_000, max_requests=15)
        assert adjust_for_load(policy, 90).max_requests == 10
        assert adjust_for_load(policy, 0).max_requests == 18

    def test_window_unchanged(self, table):
        adjusted = table.get_dynamic_limits("/auth/register", 95)
        assert adjusted.window_ms == 300_000

    def test_table_not_mutated(self, table):
        table.get_dynamic_limits("/graphql", 95)
        assert table.get_endpoint_limits("/graphql").max_requests == 1000


class TestReporting:

    def test_stats(self, table):
        stats = table.get_rate_limit_stats()
        assert stats["active_rules"] == 9
        assert stats["default_limit"]["max_requests"] == 800

    def test_low_remaining_logs_warning(self, table, caplog):
        caplog.set_level(logging.WARNING, logger="jobguard.security.policies")
        table.log_rate_limit("10.0.0.1", "/api/jobs", 100)
        assert caplog.records == []
        table.log_rate_limit("10.0.0.1", "/api/jobs", 5)
        assert "Remaining: 5" in caplog.records[0].getMessage()
