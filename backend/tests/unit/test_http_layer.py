"""Tests for the security middleware and the admin API, through the FastAPI app."""

from contextlib import contextmanager

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from fakes import FakeRedis
from jobguard.config import SecurityConfig, Settings
from jobguard.main import create_app
from jobguard.security import build_security_services
from jobguard.store.redis_store import RedisStore

ADMIN = {"X-Admin-Token": "secret", "X-Forwarded-For": "10.10.0.1"}


def _client_headers(ip: str, **extra: str) -> dict:
    return {"X-Forwarded-For": ip, **extra}


@pytest.fixture
def sync_store(clock):
    return RedisStore(FakeRedis(clock), clock=clock)


def _make_app(store, admin_token="secret", **security):
    settings = Settings(
        admin_token=admin_token,
        app_env="test",
        cors_origins="http://localhost:3000",
        security=SecurityConfig(**security),
    )
    app = create_app(settings, store)

    @app.post("/auth/login")
    async def login():
        raise HTTPException(status_code=401, detail="Invalid credentials")

    @app.post("/api/jobs")
    async def create_job(payload: dict):
        return payload

    return app


@contextmanager
def _running(app, store, clock):
    with TestClient(app) as test_client:
        # Rewire onto the fake clock so window boundaries are deterministic.
        app.state.security = build_security_services(store, app.state.settings.security, clock)
        yield test_client


@pytest.fixture
def client(sync_store, clock):
    with _running(_make_app(sync_store), sync_store, clock) as test_client:
        yield test_client


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["store"]["connected"] is True

    def test_health_not_screened(self, client):
        client.post("/api/security/block-ip/10.10.1.1", json={"reason": "test"}, headers=ADMIN)
        response = client.get("/api/health", headers=_client_headers("10.10.1.1"))
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers


class TestScreening:

    def test_normal_request_gets_quota_headers(self, client):
        response = client.post("/api/jobs", json={"title": "Engineer"}, headers=_client_headers("10.10.2.1"))
        assert response.status_code == 200
        assert response.json() == {"title": "Engineer"}
        assert response.headers["X-RateLimit-Limit"] == "500"
        assert response.headers["X-RateLimit-Remaining"] == "499"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_blocked_ip_rejected(self, client):
        client.post("/api/security/block-ip/10.10.2.2", json={"reason": "abuse"}, headers=ADMIN)
        response = client.post("/api/jobs", json={}, headers=_client_headers("10.10.2.2"))
        assert response.status_code == 403

    def test_malicious_range_blocked(self, client):
        response = client.post("/api/jobs", json={}, headers=_client_headers("203.0.113.7"))
        assert response.status_code == 403

        blocked = client.get("/api/security/blocked-ips", headers=ADMIN).json()
        record = next(b for b in blocked if b["ip"] == "203.0.113.7")
        assert record["is_temporary"] is True
        assert record["reason"] == "Known malicious IP pattern"

    def test_sql_injection_in_query(self, client):
        response = client.get(
            "/api/security/blocked-ips",
            params={"q": "1' OR '1'='1"},
            headers=_client_headers("10.10.2.3", **{"X-Admin-Token": "secret"}),
        )
        assert response.status_code == 400

        activity = client.get("/api/security/suspicious-activity", headers=ADMIN).json()
        assert activity[0]["ip"] == "10.10.2.3"
        assert activity[0]["activity"] == "SQL injection in URL"

    def test_injection_in_json_body(self, client):
        response = client.post(
            "/api/jobs", json={"email": {"$ne": None}}, headers=_client_headers("10.10.2.4")
        )
        assert response.status_code == 400

    def test_suspicious_user_agent_continues(self, client):
        response = client.post(
            "/api/jobs", json={}, headers=_client_headers("10.10.2.5", **{"User-Agent": "sqlmap/1.7"})
        )
        assert response.status_code == 200

        activity = client.get("/api/security/suspicious-activity", headers=ADMIN).json()
        assert [(a["ip"], a["attempts"]) for a in activity] == [("10.10.2.5", 1)]

    def test_failed_logins_lead_to_block(self, client):
        headers = _client_headers("10.10.2.6")
        for _ in range(5):
            assert client.post("/auth/login", headers=headers).status_code == 401
        assert client.post("/auth/login", headers=headers).status_code == 403

    def test_metrics_recorded(self, client):
        client.post("/api/jobs", json={}, headers=_client_headers("10.10.2.7"))
        slowest = client.get("/api/security/performance/slowest", headers=ADMIN).json()
        assert ("POST", "/api/jobs") in {(s["method"], s["endpoint"]) for s in slowest}

    def test_fail_open_when_store_down(self, client, sync_store):
        sync_store.client.fail = True
        response = client.post("/api/jobs", json={"title": "x"}, headers=_client_headers("10.10.2.8"))
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == "500"


class TestQuotas:

    def test_over_quota_returns_429(self, sync_store, clock):
        app = _make_app(sync_store, max_requests_per_minute=3)
        with _running(app, sync_store, clock) as client:
            headers = _client_headers("10.10.3.1")
            for _ in range(3):
                assert client.post("/api/jobs", json={}, headers=headers).status_code == 200
            response = client.post("/api/jobs", json={}, headers=headers)

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"

    def test_hourly_quota_retry_after_reaches_next_hour(self, sync_store, clock):
        app = _make_app(sync_store, max_requests_per_minute=100, max_requests_per_hour=2)
        with _running(app, sync_store, clock) as client:
            headers = _client_headers("10.10.3.3")
            for _ in range(2):
                assert client.post("/api/jobs", json={}, headers=headers).status_code == 200
            response = client.post("/api/jobs", json={}, headers=headers)

            assert response.status_code == 429
            retry_after = int(response.headers["Retry-After"])
            assert retry_after == (int(clock()) // 3600 + 1) * 3600 - int(clock())
            assert retry_after > 60

            clock.advance(retry_after)
            assert client.post("/api/jobs", json={}, headers=headers).status_code == 200

    def test_oversized_body_returns_413(self, sync_store, clock):
        app = _make_app(sync_store, max_request_bytes=16)
        with _running(app, sync_store, clock) as client:
            response = client.post(
                "/api/jobs", json={"description": "x" * 100}, headers=_client_headers("10.10.3.2")
            )
        assert response.status_code == 413


class TestAdminAPI:

    def test_missing_token(self, client):
        assert client.get("/api/security/stats").status_code == 401

    def test_wrong_token(self, client):
        response = client.get("/api/security/stats", headers={"X-Admin-Token": "nope"})
        assert response.status_code == 401

    def test_disabled_without_configured_token(self, sync_store, clock):
        with _running(_make_app(sync_store, admin_token=""), sync_store, clock) as client:
            response = client.get("/api/security/stats", headers={"X-Admin-Token": ""})
        assert response.status_code == 403

    def test_stats(self, client):
        body = client.get("/api/security/stats", headers=ADMIN).json()
        assert set(body) == {"blocking", "security", "system", "live"}
        assert body["blocking"]["total_blocked"] == 0

    def test_block_and_unblock(self, client):
        response = client.post(
            "/api/security/block-ip/10.10.4.1",
            json={"reason": "spam", "duration_minutes": 30},
            headers=ADMIN,
        )
        assert response.status_code == 200
        assert response.json()["is_temporary"] is True

        assert client.post("/api/security/unblock-ip/10.10.4.1", headers=ADMIN).status_code == 200
        assert client.post("/api/security/unblock-ip/10.10.4.1", headers=ADMIN).status_code == 404

    def test_block_invalid_ip(self, client):
        response = client.post("/api/security/block-ip/not-an-ip", json={"reason": "x"}, headers=ADMIN)
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["message"] == "Invalid IP address"
        assert detail["errors"][0]["field"] == "ip"

    def test_block_reason_sanitized(self, client):
        response = client.post(
            "/api/security/block-ip/10.10.4.3",
            json={"reason": "<script>alert(1)</script> Spam bot"},
            headers=ADMIN,
        )
        assert response.status_code == 200
        assert response.json()["reason"] == "Spam bot"

    def test_block_reason_of_only_markup_rejected(self, client):
        response = client.post(
            "/api/security/block-ip/10.10.4.4",
            json={"reason": "<script>alert(1)</script>"},
            headers=ADMIN,
        )
        assert response.status_code == 422

    def test_blocked_ips_paginated(self, client):
        for ip in ("10.10.4.5", "10.10.4.6", "10.10.4.7"):
            client.post(f"/api/security/block-ip/{ip}", json={"reason": "spam"}, headers=ADMIN)

        everything = client.get("/api/security/blocked-ips", headers=ADMIN).json()
        assert len(everything) == 3

        page = client.get("/api/security/blocked-ips", params={"page": 2, "limit": 2}, headers=ADMIN).json()
        assert page == everything[2:]

        clamped = client.get("/api/security/blocked-ips", params={"page": 0, "limit": 500}, headers=ADMIN).json()
        assert clamped == everything

    def test_block_rejects_non_positive_duration(self, client):
        response = client.post(
            "/api/security/block-ip/10.10.4.2",
            json={"reason": "x", "duration_minutes": 0},
            headers=ADMIN,
        )
        assert response.status_code == 422

    def test_import(self, client):
        response = client.post(
            "/api/security/import",
            json={"ips": ["10.10.5.1", "10.10.5.2", "10.10.5.1"], "reason": "Feed"},
            headers=ADMIN,
        )
        assert response.json() == {"imported": 2}

    def test_import_rejects_invalid_entries(self, client):
        response = client.post("/api/security/import", json={"ips": ["10.10.5.3", "bogus"]}, headers=ADMIN)
        assert response.status_code == 422

    def test_suspicious_ips_and_clear(self, client):
        services = client.app.state.security
        client.portal.call(services.ledger.add_to_suspicious_ips, "10.10.6.1", "scan")

        records = client.get("/api/security/suspicious-ips", headers=ADMIN).json()
        assert [r["ip"] for r in records] == ["10.10.6.1"]

        assert client.delete("/api/security/suspicious-ips/10.10.6.1", headers=ADMIN).status_code == 200
        assert client.delete("/api/security/suspicious-ips/10.10.6.1", headers=ADMIN).status_code == 404

    def test_rate_limits_with_load(self, client):
        body = client.get("/api/security/rate-limits", params={"load": 90}, headers=ADMIN).json()
        limits = {p["endpoint_pattern"]: p["max_requests"] for p in body["policies"]}
        assert limits["/graphql"] == 700
        assert limits["*"] == 560

    def test_request_metrics(self, client):
        client.post("/api/jobs", json={}, headers=_client_headers("10.10.7.1"))
        body = client.get("/api/security/request-metrics", headers=ADMIN).json()
        assert body["requests"]["current_minute"] >= 1

    def test_performance_report(self, client):
        body = client.get("/api/security/performance/report", headers=ADMIN).json()
        assert set(body) == {"system", "endpoints", "alerts"}

    def test_cleanup(self, client):
        body = client.post("/api/security/cleanup", headers=ADMIN).json()
        assert body == {"request_counters": 0, "expired_blocks": 0, "metrics": 0}
