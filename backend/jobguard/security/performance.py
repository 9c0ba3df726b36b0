"""
Request performance metrics.

Every metric is stored as its own JSON key with a 24h TTL and indexed in a
sorted set scored by timestamp (ms). Reads pull a time range from the index
and dereference the payloads; the index is trimmed explicitly on each write,
since index entries would otherwise outlive the payloads they point to.
"""

from __future__ import annotations

import logging
import math
import uuid
from collections import defaultdict
from typing import Optional

import psutil

from jobguard.models.enums import AlertSeverity
from jobguard.models.schemas import (
    EndpointStat,
    MemoryUsage,
    PerformanceAlert,
    PerformanceMetric,
    RequestCountStats,
    ResponseTimeStats,
    SystemMetrics,
)
from jobguard.security import keys
from jobguard.security.base import StoreBackedService, parse_record

logger = logging.getLogger(__name__)

_PROCESS = psutil.Process()

DEFAULT_ALERT_LIMIT = 50


def percentile(sorted_values: list[float], fraction: float) -> float:
    """Nearest-rank percentile by index floor(n * fraction) into an ascending list."""
    if not sorted_values:
        return 0.0
    index = min(math.floor(len(sorted_values) * fraction), len(sorted_values) - 1)
    return sorted_values[index]


class PerformanceRecorder(StoreBackedService):

    async def record_metric(
        self,
        endpoint: str,
        method: str,
        response_time: float,
        status_code: int,
    ) -> None:
        cfg = self.config
        now_ms = self.now_ms()
        metric = PerformanceMetric(
            endpoint=endpoint,
            method=method.upper(),
            response_time=response_time,
            timestamp=self.now(),
            status_code=status_code,
            memory_usage=_PROCESS.memory_info().rss,
        )

        metric_key = keys.metric_key(now_ms, uuid.uuid4().hex[:12])
        await self.store.set(metric_key, metric.model_dump_json(), ttl=cfg.metrics_retention_seconds)
        await self.store.zadd(keys.METRICS_INDEX_KEY, {metric_key: now_ms})
        await self.store.zremrangebyscore(
            keys.METRICS_INDEX_KEY, 0, now_ms - cfg.metrics_retention_seconds * 1000
        )

        # One alert per request: the very-slow tier replaces the slow one.
        if response_time > cfg.very_slow_request_ms:
            message = f"Very slow request: {metric.method} {endpoint} - {response_time:.0f}ms"
            logger.error(message)
            await self.add_performance_alert("very_slow_request", message, AlertSeverity.HIGH)
        elif response_time > cfg.slow_request_ms:
            message = f"Slow request detected: {metric.method} {endpoint} - {response_time:.0f}ms"
            logger.warning(message)
            await self.add_performance_alert("slow_request", message, AlertSeverity.MEDIUM)

        await self._update_system_stats(metric)

    async def _update_system_stats(self, metric: PerformanceMetric) -> None:
        stats_key = keys.system_stats_key()
        pipe = self.store.pipeline()
        pipe.hincrby(stats_key, "total_requests", 1)
        pipe.hincrby(stats_key, "successful_requests" if metric.is_success else "failed_requests", 1)
        pipe.expire(stats_key, self.config.system_stats_ttl_seconds)
        await pipe.execute()

    async def _load_metrics(self, since_ms: int, until_ms: int) -> list[PerformanceMetric]:
        metric_keys = await self.store.zrangebyscore(keys.METRICS_INDEX_KEY, since_ms, until_ms)
        if not metric_keys:
            return []
        metrics = []
        for key, raw in zip(metric_keys, await self.store.mget(metric_keys)):
            metric = parse_record(PerformanceMetric, raw, key)
            if metric is not None:
                metrics.append(metric)
        return metrics

    async def get_system_metrics(self) -> SystemMetrics:
        now_ms = self.now_ms()
        recent = await self._load_metrics(now_ms - self.config.metrics_window_seconds * 1000, now_ms)

        response_times = sorted(m.response_time for m in recent)
        average = sum(response_times) / len(response_times) if response_times else 0.0
        successful = sum(1 for m in recent if m.is_success)

        memory = _PROCESS.memory_info().rss
        return SystemMetrics(
            cpu_usage=_PROCESS.cpu_percent(interval=None),
            memory_usage=MemoryUsage(
                used=memory,
                total=psutil.virtual_memory().total,
                percentage=round(_PROCESS.memory_percent(), 2),
            ),
            response_time=ResponseTimeStats(
                average=average,
                p95=percentile(response_times, 0.95),
                p99=percentile(response_times, 0.99),
            ),
            request_count=RequestCountStats(
                total=len(recent),
                successful=successful,
                failed=len(recent) - successful,
            ),
        )

    async def get_endpoint_stats(self, endpoint: Optional[str] = None) -> list[EndpointStat]:
        now_ms = self.now_ms()
        metrics = await self._load_metrics(now_ms - self.config.metrics_retention_seconds * 1000, now_ms)

        grouped: dict[tuple[str, str], list[PerformanceMetric]] = defaultdict(list)
        for metric in metrics:
            if endpoint is None or metric.endpoint == endpoint:
                grouped[(metric.method, metric.endpoint)].append(metric)

        stats = []
        for (method, path), group in grouped.items():
            errors = sum(1 for m in group if m.status_code >= 400)
            stats.append(
                EndpointStat(
                    endpoint=path,
                    method=method,
                    average_response_time=round(sum(m.response_time for m in group) / len(group), 2),
                    request_count=len(group),
                    error_rate=round(errors / len(group) * 100, 2),
                )
            )
        return stats

    async def get_slowest_endpoints(self, limit: int = 20) -> list[EndpointStat]:
        stats = await self.get_endpoint_stats()
        return sorted(stats, key=lambda s: s.average_response_time, reverse=True)[:limit]

    async def get_live_stats(self) -> dict[str, int]:
        """Rolling one-hour request counters."""
        raw = await self.store.hgetall(keys.system_stats_key())
        return {
            field: int(raw.get(field) or 0)
            for field in ("total_requests", "successful_requests", "failed_requests")
        }

    async def clear_old_metrics(self) -> int:
        cutoff = self.now_ms() - self.config.metrics_retention_seconds * 1000
        removed = await self.store.zremrangebyscore(keys.METRICS_INDEX_KEY, 0, cutoff)
        if removed > 0:
            logger.info(f"Cleared {removed} old performance metrics")
        return removed

    # ─── Alerts ───

    async def add_performance_alert(
        self,
        alert_type: str,
        message: str,
        severity: AlertSeverity = AlertSeverity.MEDIUM,
    ) -> None:
        alert = PerformanceAlert(type=alert_type, message=message, timestamp=self.now(), severity=severity)
        key = keys.alerts_key()
        await self.store.lpush(key, alert.model_dump_json())
        await self.store.ltrim(key, 0, self.config.max_alerts - 1)
        await self.store.expire(key, self.config.alerts_ttl_seconds)

    async def get_performance_alerts(self, limit: int = DEFAULT_ALERT_LIMIT) -> list[PerformanceAlert]:
        key = keys.alerts_key()
        alerts = []
        for raw in await self.store.lrange(key, 0, limit - 1):
            alert = parse_record(PerformanceAlert, raw, key)
            if alert is not None:
                alerts.append(alert)
        return alerts
