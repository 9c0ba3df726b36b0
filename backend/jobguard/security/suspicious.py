"""
Suspicious-activity ledger.

Two independent ways of recording that a client misbehaved:

- Attempt counter (`track_suspicious_activity`): a plain counter whose TTL is
  set once (EXPIRE NX, batched with the INCR), so the suspicion window is
  capped at one hour from the first event. Reaching the threshold escalates
  to a temporary block and resets the counter.
- Suspicious record (`add_to_suspicious_ips`): a JSON record of reasons,
  first/last seen and severity, re-written with a fresh 24h TTL on every
  incident. It never blocks on its own.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from jobguard.config import SecurityConfig
from jobguard.models.enums import SuspicionSeverity
from jobguard.models.schemas import SuspiciousRecord
from jobguard.security import keys
from jobguard.security.base import StoreBackedService, parse_record
from jobguard.security.ip_blocking import IPBlockRegistry
from jobguard.store.base import KeyValueStore

logger = logging.getLogger(__name__)


class SuspiciousActivityLedger(StoreBackedService):

    def __init__(
        self,
        store: KeyValueStore,
        registry: IPBlockRegistry,
        config: Optional[SecurityConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(store, config, clock)
        self.registry = registry

    # ─── Attempt counter (auto-block path) ───

    async def track_suspicious_activity(self, ip: str, activity: str) -> None:
        counter_key = keys.attempt_counter_key(ip)
        details_key = keys.attempt_details_key(ip)
        ttl = self.config.suspicious_attempt_ttl_seconds

        # NX keeps the window anchored at the first incident that got a TTL.
        pipe = self.store.pipeline()
        pipe.incr(counter_key).expire(counter_key, ttl, nx=True)
        pipe.hset(details_key, "lastAttempt", str(self.now_ms()))
        pipe.hset(details_key, "activity", activity)
        pipe.expire(details_key, ttl)
        results = await pipe.execute()
        if not results:
            return
        attempts = int(results[0])

        logger.warning(f"Suspicious activity from IP {ip}: {activity}. Attempts: {attempts}")

        if attempts >= self.config.suspicious_attempt_threshold:
            await self.registry.block_ip(
                ip,
                f"Multiple suspicious activities: {activity}",
                self.config.auto_block_minutes,
            )
            await self.store.delete(counter_key, details_key, keys.suspicious_record_key(ip))

    async def get_attempts(self, ip: str) -> int:
        raw = await self.store.get(keys.attempt_counter_key(ip))
        try:
            return int(raw) if raw else 0
        except ValueError:
            return 0

    # ─── Suspicious records ───

    async def add_to_suspicious_ips(self, ip: str, reason: str) -> Optional[SuspiciousRecord]:
        """Append an incident to the client's record. Last writer wins under races."""
        key = keys.suspicious_record_key(ip)
        now = self.now_ms()

        existing = parse_record(SuspiciousRecord, await self.store.get(key), key)
        if existing is None:
            record = SuspiciousRecord(ip=ip, reasons=[reason], first_seen=now, last_seen=now)
        else:
            count = existing.count + 1
            severity = (
                SuspicionSeverity.HIGH
                if count > self.config.high_severity_incident_count
                else SuspicionSeverity.MEDIUM
            )
            record = existing.model_copy(
                update={
                    "reasons": [*existing.reasons, reason],
                    "last_seen": now,
                    "count": count,
                    "severity": severity,
                }
            )

        stored = await self.store.set(
            key, record.model_dump_json(), ttl=self.config.suspicious_record_ttl_seconds
        )
        if not stored:
            return None

        logger.warning(
            f"Suspicious IP {ip} tracked. Reason: {reason}. Total incidents: {record.count}"
        )
        return record

    async def get_suspicious_ip_info(self, ip: str) -> Optional[SuspiciousRecord]:
        key = keys.suspicious_record_key(ip)
        return parse_record(SuspiciousRecord, await self.store.get(key), key)

    async def get_all_suspicious_ips(self) -> list[SuspiciousRecord]:
        record_keys = await self.store.keys(f"{keys.SUSPICIOUS_IPS_KEY}:*")
        if not record_keys:
            return []

        records = []
        for key, raw in zip(record_keys, await self.store.mget(record_keys)):
            record = parse_record(SuspiciousRecord, raw, key)
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.last_seen, reverse=True)

    async def clear_suspicious_ip(self, ip: str) -> bool:
        if await self.store.delete(keys.suspicious_record_key(ip)) > 0:
            logger.info(f"Cleared suspicious IP data for {ip}")
            return True
        return False
