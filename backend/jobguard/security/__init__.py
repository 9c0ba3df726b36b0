"""
Security core: request tracking, suspicious-activity ledger, IP blocking,
performance metrics and rate-limit policies, all backed by the key-value store.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from jobguard.config import SecurityConfig
from jobguard.security.ip_blocking import IPBlockRegistry
from jobguard.security.performance import PerformanceRecorder
from jobguard.security.policies import RateLimitPolicyTable
from jobguard.security.request_tracker import RequestTracker
from jobguard.security.suspicious import SuspiciousActivityLedger
from jobguard.store.base import KeyValueStore


@dataclass
class SecurityServices:
    """The wired set of components shared by the middleware and the admin API."""
    store: KeyValueStore
    config: SecurityConfig
    registry: IPBlockRegistry
    ledger: SuspiciousActivityLedger
    tracker: RequestTracker
    performance: PerformanceRecorder
    policies: RateLimitPolicyTable


def build_security_services(
    store: KeyValueStore,
    config: Optional[SecurityConfig] = None,
    clock: Callable[[], float] = time.time,
) -> SecurityServices:
    config = config or SecurityConfig()
    registry = IPBlockRegistry(store, config, clock)
    ledger = SuspiciousActivityLedger(store, registry, config, clock)
    return SecurityServices(
        store=store,
        config=config,
        registry=registry,
        ledger=ledger,
        tracker=RequestTracker(store, ledger, config, clock),
        performance=PerformanceRecorder(store, config, clock),
        policies=RateLimitPolicyTable(),
    )


__all__ = [
    "IPBlockRegistry",
    "PerformanceRecorder",
    "RateLimitPolicyTable",
    "RequestTracker",
    "SecurityServices",
    "SuspiciousActivityLedger",
    "build_security_services",
]
