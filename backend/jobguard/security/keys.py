"""
Redis key layout for the security subsystem.

All components build keys through these helpers so that the reporting
queries (KEYS scans) and the writers always agree on the namespace.
"""

from __future__ import annotations

from jobguard.models.enums import WindowKind

REQUEST_TRACKING_KEY = "security:request_tracking"
SUSPICIOUS_IPS_KEY = "security:suspicious_ips"
SUSPICIOUS_ACTIVITY_KEY = "security:suspicious_activity"
BLOCKED_IPS_KEY = "security:blocked_ips"

METRICS_KEY = "performance:metrics"
METRICS_INDEX_KEY = "performance:metrics_sorted"
SYSTEM_STATS_KEY = "performance:system_stats"

DETAILS_SUFFIX = ":details"


def request_counter_key(ip: str, window: WindowKind, window_index: int) -> str:
    return f"{REQUEST_TRACKING_KEY}:{ip}:{window.value}:{window_index}"


def request_counter_pattern(window: WindowKind, window_index: int) -> str:
    """Counters of every client for one window."""
    return f"{REQUEST_TRACKING_KEY}:*:{window.value}:{window_index}"


def suspicious_record_key(ip: str) -> str:
    return f"{SUSPICIOUS_IPS_KEY}:{ip}"


def attempt_counter_key(ip: str) -> str:
    return f"{SUSPICIOUS_ACTIVITY_KEY}:{ip}"


def attempt_details_key(ip: str) -> str:
    return f"{attempt_counter_key(ip)}{DETAILS_SUFFIX}"


def is_attempt_counter_key(key: str) -> bool:
    return key.startswith(f"{SUSPICIOUS_ACTIVITY_KEY}:") and not key.endswith(DETAILS_SUFFIX)


def ip_from_key(key: str, namespace: str) -> str:
    return key[len(namespace) + 1:]


def metric_key(timestamp_ms: int, suffix: str) -> str:
    return f"{METRICS_KEY}:{timestamp_ms}:{suffix}"


def system_stats_key() -> str:
    return f"{SYSTEM_STATS_KEY}:current"


def alerts_key() -> str:
    return f"{SYSTEM_STATS_KEY}:alerts"
