"""
Per-endpoint rate-limit quotas.

Static table consulted by the HTTP layer, plus load-based scaling.
No state: nothing here touches Redis.

Limits:
  /auth/login            → 30 per minute
  /auth/register         → 15 per 5 minutes
  /auth/forgot-password  → 8 per hour
  /graphql               → 1000 per minute
  /upload                → 100 per minute
  /api/jobs              → 2000 per minute
  /api/users             → 1000 per minute
  /api/admin             → 200 per minute
  /health                → 2000 per minute
  anything else          → 800 per minute
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from jobguard.models.schemas import RateLimitPolicy

logger = logging.getLogger(__name__)

MINUTE_MS = 60_000

DEFAULT_POLICIES: dict[str, tuple[int, int]] = {
    # endpoint → (window_ms, max_requests)
    "/auth/login":           (MINUTE_MS, 30),
    "/auth/register":        (5 * MINUTE_MS, 15),
    "/auth/forgot-password": (60 * MINUTE_MS, 8),
    "/graphql":              (MINUTE_MS, 1000),
    "/upload":               (MINUTE_MS, 100),
    "/api/jobs":             (MINUTE_MS, 2000),
    "/api/users":            (MINUTE_MS, 1000),
    "/api/admin":            (MINUTE_MS, 200),
    "/health":               (MINUTE_MS, 2000),
}
DEFAULT_LIMIT: tuple[int, int] = (MINUTE_MS, 800)

HIGH_LOAD_PERCENT = 80
LOW_LOAD_PERCENT = 30
HIGH_LOAD_FACTOR = 0.7
LOW_LOAD_FACTOR = 1.2
LOW_REMAINING_WARNING = 5


def adjust_for_load(policy: RateLimitPolicy, server_load_percent: float) -> RateLimitPolicy:
    """Shrink the limit by 30% above 80% load, grow it by 20% below 30%."""
    if server_load_percent > HIGH_LOAD_PERCENT:
        factor = HIGH_LOAD_FACTOR
    elif server_load_percent < LOW_LOAD_PERCENT:
        factor = LOW_LOAD_FACTOR
    else:
        return policy
    return policy.model_copy(update={"max_requests": math.floor(policy.max_requests * factor)})


class RateLimitPolicyTable:
    """
    Endpoint → quota lookup.

    Usage:
        table = RateLimitPolicyTable()
        policy = table.get_endpoint_limits("/auth/login")
    """

    def __init__(
        self,
        policies: Optional[dict[str, tuple[int, int]]] = None,
        default: tuple[int, int] = DEFAULT_LIMIT,
    ):
        table = DEFAULT_POLICIES if policies is None else policies
        self._policies = {
            endpoint: RateLimitPolicy(endpoint_pattern=endpoint, window_ms=window, max_requests=limit)
            for endpoint, (window, limit) in table.items()
        }
        self._default = RateLimitPolicy(endpoint_pattern="*", window_ms=default[0], max_requests=default[1])

    @property
    def default_policy(self) -> RateLimitPolicy:
        return self._default

    def policies(self) -> list[RateLimitPolicy]:
        return list(self._policies.values())

    def get_endpoint_limits(self, endpoint: str) -> RateLimitPolicy:
        return self._policies.get(endpoint, self._default)

    def get_dynamic_limits(self, endpoint: str, server_load_percent: float) -> RateLimitPolicy:
        return adjust_for_load(self.get_endpoint_limits(endpoint), server_load_percent)

    def log_rate_limit(self, ip: str, endpoint: str, remaining: int) -> None:
        if remaining <= LOW_REMAINING_WARNING:
            logger.warning(f"Rate limit warning for IP {ip} on {endpoint}. Remaining: {remaining}")

    def get_rate_limit_stats(self) -> dict:
        return {
            "active_rules": len(self._policies),
            "default_limit": self._default.model_dump(),
            "production_optimized": True,
            "performance_mode": "high",
        }
