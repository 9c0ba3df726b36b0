"""
Per-client request counters over fixed minute and hour windows.

Each counter key embeds its window index (floor(now / window)), so a new
window starts from zero without anything being cleared, and every key carries
a TTL equal to its window so stale windows expire on their own.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from jobguard.config import SecurityConfig
from jobguard.models.enums import WindowKind
from jobguard.models.schemas import (
    RateLimitStatus,
    RequestMetrics,
    SecurityStats,
    SuspiciousIPSummary,
    TrackResult,
)
from jobguard.security import keys
from jobguard.security.base import StoreBackedService
from jobguard.security.suspicious import SuspiciousActivityLedger
from jobguard.store.base import KeyValueStore

logger = logging.getLogger(__name__)

TOP_SUSPICIOUS_LIMIT = 10


def _to_int(raw: Optional[object]) -> int:
    try:
        return int(raw) if raw is not None else 0
    except (TypeError, ValueError):
        return 0


class RequestTracker(StoreBackedService):

    def __init__(
        self,
        store: KeyValueStore,
        ledger: SuspiciousActivityLedger,
        config: Optional[SecurityConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(store, config, clock)
        self.ledger = ledger

    def _window_index(self, window: WindowKind, now_ms: int) -> int:
        return now_ms // window.duration_ms

    async def track_request(self, ip: str) -> TrackResult:
        """
        Count one request from `ip` and judge it against the quotas.
        Fails open: with the store down the result is "not blocked, count 0".
        """
        now = self.now_ms()
        minute_key = keys.request_counter_key(
            ip, WindowKind.MINUTE, self._window_index(WindowKind.MINUTE, now)
        )
        hour_key = keys.request_counter_key(
            ip, WindowKind.HOUR, self._window_index(WindowKind.HOUR, now)
        )

        pipe = self.store.pipeline()
        pipe.incr(minute_key).expire(minute_key, WindowKind.MINUTE.ttl_seconds)
        pipe.incr(hour_key).expire(hour_key, WindowKind.HOUR.ttl_seconds)
        results = await pipe.execute()
        if len(results) < 4:
            return TrackResult()

        minute_count = _to_int(results[0])
        hour_count = _to_int(results[2])

        cfg = self.config
        over_hour = hour_count > cfg.max_requests_per_hour
        is_blocked = minute_count > cfg.max_requests_per_minute or over_hour
        is_ddos = minute_count > cfg.ddos_requests_per_minute

        if is_blocked or is_ddos:
            await self.ledger.add_to_suspicious_ips(
                ip, f"High request rate: {minute_count}/min, {hour_count}/hour"
            )

        window = WindowKind.HOUR if over_hour else WindowKind.MINUTE
        return TrackResult(
            is_blocked=is_blocked,
            is_ddos=is_ddos,
            request_count=minute_count,
            reset_time_ms=(self._window_index(window, now) + 1) * window.duration_ms,
        )

    async def should_rate_limit(self, ip: str) -> RateLimitStatus:
        """Read-only check of the current minute window, for quota headers."""
        now = self.now_ms()
        window = self._window_index(WindowKind.MINUTE, now)
        count = _to_int(await self.store.get(keys.request_counter_key(ip, WindowKind.MINUTE, window)))

        limit = self.config.max_requests_per_minute
        return RateLimitStatus(
            should_limit=count >= limit,
            remaining_requests=max(0, limit - count),
            reset_time_ms=(window + 1) * WindowKind.MINUTE.duration_ms,
        )

    async def get_security_stats(self) -> SecurityStats:
        request_keys = await self.store.keys(f"{keys.REQUEST_TRACKING_KEY}:*")
        total_requests = 0
        if request_keys:
            total_requests = sum(_to_int(c) for c in await self.store.mget(request_keys))

        records = await self.ledger.get_all_suspicious_ips()
        summaries = sorted(
            (SuspiciousIPSummary(ip=r.ip, count=r.count, severity=r.severity) for r in records),
            key=lambda s: s.count,
            reverse=True,
        )
        return SecurityStats(
            total_requests=total_requests,
            suspicious_ips=len(records),
            blocked_attempts=sum(
                1 for s in summaries if s.count > self.config.high_severity_incident_count
            ),
            top_suspicious_ips=summaries[:TOP_SUSPICIOUS_LIMIT],
        )

    async def get_request_metrics(self) -> RequestMetrics:
        now = self.now_ms()
        minute_keys = await self.store.keys(
            keys.request_counter_pattern(WindowKind.MINUTE, self._window_index(WindowKind.MINUTE, now))
        )
        hour_keys = await self.store.keys(
            keys.request_counter_pattern(WindowKind.HOUR, self._window_index(WindowKind.HOUR, now))
        )

        current_minute = sum(_to_int(c) for c in await self.store.mget(minute_keys)) if minute_keys else 0
        current_hour = sum(_to_int(c) for c in await self.store.mget(hour_keys)) if hour_keys else 0
        return RequestMetrics(
            current_minute=current_minute,
            current_hour=current_hour,
            active_ips=len(minute_keys),
        )

    async def cleanup(self) -> int:
        """Drop minute counters left from an hour ago. TTLs handle the rest."""
        hour_ago_window = self._window_index(WindowKind.MINUTE, self.now_ms() - 3_600_000)
        old_keys = await self.store.keys(keys.request_counter_pattern(WindowKind.MINUTE, hour_ago_window))
        if not old_keys:
            return 0
        removed = await self.store.delete(*old_keys)
        logger.info(f"Cleaned up {removed} old request tracking records")
        return removed
