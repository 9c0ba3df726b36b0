"""
Security screening middleware.

Runs every request through the Redis-backed security core:

  1. blocked IP                    → 403
  2. known-malicious address range → block + 403
  3. oversized body                → suspicious activity + 413
  4. scanner user agent            → suspicious activity (request continues)
  5. SQL injection in query        → suspicious activity + 400
  6. injection in JSON body        → suspicious activity + 400
  7. over per-minute/hour quota    → 429

After the response it records timing, feeds failed logins and upstream 429s
into the suspicious-activity counter and adds X-RateLimit-* headers.

Screening fails open: an unexpected error here is logged and the request is
let through.
"""

from __future__ import annotations

import json
import logging
import math
import time
from typing import Optional
from urllib.parse import unquote_plus

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from jobguard.security import SecurityServices
from jobguard.security.validation import contains_injection_attack, contains_sql_injection
from jobguard.utils.ip_utils import get_client_ip, is_known_malicious_ip, is_suspicious_user_agent

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/api/health"})
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


def _reject(status_code: int, error: str, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "error": error},
        headers=headers,
    )


class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Per-request screening keyed on the client IP.
    Expects the wired SecurityServices on app.state.security.
    """

    async def dispatch(self, request: Request, call_next):
        services: Optional[SecurityServices] = getattr(request.app.state, "security", None)
        if services is None or request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        peer = request.client.host if request.client else None
        client_ip = get_client_ip(request.headers, peer)
        logger.debug(
            f"{request.method} {request.url.path} from {client_ip} - "
            f"{request.headers.get('user-agent', 'unknown')}"
        )

        try:
            rejection = await self._screen(request, services, client_ip)
        except Exception as exc:
            logger.error(f"Security middleware error for IP {client_ip}: {exc}", exc_info=True)
            rejection = None
        if rejection is not None:
            return rejection

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        try:
            await self._after_response(request, response, services, client_ip, duration_ms)
        except Exception as exc:
            logger.error(f"Security post-processing error for IP {client_ip}: {exc}", exc_info=True)
        return response

    async def _screen(
        self,
        request: Request,
        services: SecurityServices,
        client_ip: str,
    ) -> Optional[Response]:
        cfg = services.config
        ledger = services.ledger

        if await services.registry.is_blocked(client_ip):
            logger.warning(f"Blocked request from IP: {client_ip}")
            return _reject(403, "Access denied", "Your IP address has been blocked")

        if is_known_malicious_ip(client_ip):
            await services.registry.block_ip(
                client_ip, "Known malicious IP pattern", cfg.malicious_ip_block_minutes
            )
            return _reject(403, "Access denied", "Suspicious IP address detected")

        content_length = request.headers.get("content-length", "0")
        if content_length.isdigit() and int(content_length) > cfg.max_request_bytes:
            logger.warning(f"Request too large from IP: {client_ip}, size: {content_length}")
            await ledger.track_suspicious_activity(client_ip, "Oversized request")
            return _reject(413, "Payload too large", "Request size exceeds maximum allowed limit")

        user_agent = request.headers.get("user-agent", "")
        if user_agent and is_suspicious_user_agent(user_agent):
            logger.warning(f"Suspicious user agent from IP: {client_ip} - {user_agent}")
            await ledger.track_suspicious_activity(client_ip, "Suspicious user agent")

        query = unquote_plus(request.url.query) if request.url.query else ""
        if query and contains_sql_injection(query):
            logger.warning(f"SQL injection attempt from IP: {client_ip} in URL: {request.url.path}?{query}")
            await ledger.track_suspicious_activity(client_ip, "SQL injection in URL")
            return _reject(400, "Bad request", "Invalid request parameters")

        if request.method in BODY_METHODS and "json" in request.headers.get("content-type", ""):
            body = await request.body()
            if body:
                try:
                    payload = json.loads(body)
                except (json.JSONDecodeError, UnicodeDecodeError):
                    payload = None
                if payload is not None and contains_injection_attack(payload):
                    logger.warning(f"Injection attack attempt from IP: {client_ip}")
                    await ledger.track_suspicious_activity(client_ip, "Injection attack in body")
                    return _reject(400, "Bad request", "Invalid request data")

        result = await services.tracker.track_request(client_ip)
        if result.is_ddos or result.is_blocked:
            retry_after = max(1, math.ceil((result.reset_time_ms - services.tracker.now_ms()) / 1000))
            logger.warning(
                f"Rate limit exceeded for IP {client_ip}: {result.request_count}/min"
                f"{' (DDoS threshold)' if result.is_ddos else ''}"
            )
            return _reject(
                429,
                "Too many requests",
                "Rate limit exceeded. Please slow down your requests.",
                headers={"Retry-After": str(retry_after)},
            )
        return None

    async def _after_response(
        self,
        request: Request,
        response: Response,
        services: SecurityServices,
        client_ip: str,
        duration_ms: float,
    ) -> None:
        path = request.url.path
        status_code = response.status_code
        logger.info(f"{request.method} {path} {status_code} - {duration_ms:.0f}ms - {client_ip}")

        await services.performance.record_metric(path, request.method, duration_ms, status_code)

        if "/auth/" in path and status_code == 401:
            await services.ledger.track_suspicious_activity(client_ip, "Failed authentication")
        if status_code == 429:
            await services.ledger.track_suspicious_activity(client_ip, "Rate limit exceeded")

        status = await services.tracker.should_rate_limit(client_ip)
        response.headers["X-RateLimit-Limit"] = str(services.config.max_requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(status.remaining_requests)
        response.headers["X-RateLimit-Reset"] = str(status.reset_time_ms // 1000)
        services.policies.log_rate_limit(client_ip, path, status.remaining_requests)
