"""
IP block registry.

Block records live in a single Redis hash (field = client IP, value = JSON
BlockRecord). Hash fields carry no TTL of their own, so temporary blocks are
expired lazily: whenever a read observes a block past its expires_at, the
record is deleted and treated as absent.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from jobguard.models.schemas import BlockRecord, BlockStats, SuspiciousActivity
from jobguard.security import keys
from jobguard.security.base import StoreBackedService, parse_record

logger = logging.getLogger(__name__)


class IPBlockRegistry(StoreBackedService):
    """Authoritative block / unblock decisions for client IPs."""

    async def block_ip(self, ip: str, reason: str, duration_minutes: Optional[int] = None) -> None:
        """Block `ip`. Without a duration the block is permanent."""
        now = self.now()
        expires_at = now + timedelta(minutes=duration_minutes) if duration_minutes is not None else None
        record = BlockRecord(
            ip=ip,
            reason=reason,
            blocked_at=now,
            expires_at=expires_at,
            is_temporary=expires_at is not None,
        )
        await self.store.hset(keys.BLOCKED_IPS_KEY, ip, record.model_dump_json())

        duration = f"{duration_minutes} minutes" if duration_minutes is not None else "permanent"
        logger.warning(f"IP {ip} blocked. Reason: {reason}. Duration: {duration}")

    async def unblock_ip(self, ip: str) -> bool:
        """Remove a block. Returns whether one existed."""
        removed = await self.store.hdel(keys.BLOCKED_IPS_KEY, ip)
        if removed > 0:
            logger.info(f"IP {ip} has been unblocked")
            return True
        return False

    async def get_block(self, ip: str) -> Optional[BlockRecord]:
        """The active block for `ip`, expiring it on the way if it has lapsed."""
        raw = await self.store.hget(keys.BLOCKED_IPS_KEY, ip)
        record = parse_record(BlockRecord, raw, f"{keys.BLOCKED_IPS_KEY}[{ip}]")
        if record is None:
            return None
        if record.is_expired(self.now()):
            logger.info(f"Temporary block for IP {ip} expired at {record.expires_at.isoformat()}")
            await self.unblock_ip(ip)
            return None
        return record

    async def is_blocked(self, ip: str) -> bool:
        return await self.get_block(ip) is not None

    async def _active_blocks(self) -> tuple[list[BlockRecord], int]:
        """All live block records, plus how many expired ones were removed."""
        raw_blocks = await self.store.hgetall(keys.BLOCKED_IPS_KEY)
        now = self.now()
        active: list[BlockRecord] = []
        expired: list[str] = []
        for ip, raw in raw_blocks.items():
            record = parse_record(BlockRecord, raw, f"{keys.BLOCKED_IPS_KEY}[{ip}]")
            if record is None:
                continue
            if record.is_expired(now):
                expired.append(ip)
            else:
                active.append(record)

        removed = 0
        if expired:
            removed = await self.store.hdel(keys.BLOCKED_IPS_KEY, *expired)
            logger.info(f"Removed {removed} expired temporary blocks")
        return active, removed

    async def get_blocked_ips(self) -> list[BlockRecord]:
        active, _ = await self._active_blocks()
        return sorted(active, key=lambda b: b.blocked_at, reverse=True)

    async def get_suspicious_activity(self) -> list[SuspiciousActivity]:
        """Report of clients on the attempt-counter (auto-block) path."""
        counter_keys = [
            k for k in await self.store.keys(f"{keys.SUSPICIOUS_ACTIVITY_KEY}:*")
            if keys.is_attempt_counter_key(k)
        ]

        activities: list[SuspiciousActivity] = []
        for key in counter_keys:
            ip = keys.ip_from_key(key, keys.SUSPICIOUS_ACTIVITY_KEY)
            attempts = await self.store.get(key)
            details = await self.store.hgetall(keys.attempt_details_key(ip))
            if not attempts or not details.get("lastAttempt"):
                continue
            try:
                activities.append(
                    SuspiciousActivity(
                        ip=ip,
                        attempts=int(attempts),
                        last_attempt=int(details["lastAttempt"]) / 1000,
                        activity=details.get("activity"),
                    )
                )
            except ValueError:
                logger.warning(f"Ignoring malformed suspicious activity entry at {key}")
        return sorted(activities, key=lambda a: a.attempts, reverse=True)

    async def get_stats(self) -> BlockStats:
        active, _ = await self._active_blocks()
        temporary = sum(1 for b in active if b.is_temporary)
        suspicious_keys = await self.store.keys(f"{keys.SUSPICIOUS_ACTIVITY_KEY}:*")
        return BlockStats(
            total_blocked=len(active),
            temporary_blocks=temporary,
            permanent_blocks=len(active) - temporary,
            suspicious_ips=sum(1 for k in suspicious_keys if keys.is_attempt_counter_key(k)),
        )

    async def import_malicious_ip_list(self, ips: list[str], reason: str = "Known malicious IP") -> int:
        """Permanently block every IP in one pipelined write. Returns how many were written."""
        unique_ips = list(dict.fromkeys(ip.strip() for ip in ips if ip and ip.strip()))
        if not unique_ips:
            return 0

        now = self.now()
        pipe = self.store.pipeline()
        for ip in unique_ips:
            record = BlockRecord(ip=ip, reason=reason, blocked_at=now, is_temporary=False)
            pipe.hset(keys.BLOCKED_IPS_KEY, ip, record.model_dump_json())

        results = await pipe.execute()
        if not results:
            logger.warning(f"Blocklist import of {len(unique_ips)} IPs was not persisted")
            return 0
        logger.info(f"Imported {len(unique_ips)} malicious IPs to blocklist")
        return len(unique_ips)

    async def cleanup(self) -> int:
        """Sweep lapsed temporary blocks. Returns the number removed."""
        _, removed = await self._active_blocks()
        return removed
