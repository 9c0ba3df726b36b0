"""
Security admin API.

GET    /api/security/stats                → Block stats + system metrics
GET    /api/security/blocked-ips          → Active blocks (newest first, ?page=&limit=)
GET    /api/security/suspicious-activity  → Attempt-counter report
GET    /api/security/suspicious-ips       → Suspicious records (?page=&limit=)
DELETE /api/security/suspicious-ips/{ip}  → Drop a suspicious record
GET    /api/security/request-metrics      → Current request counters
GET    /api/security/performance/report   → System metrics, endpoint stats, alerts
GET    /api/security/performance/slowest  → Slowest endpoints
GET    /api/security/rate-limits          → Policy table (?load= for dynamic limits)
POST   /api/security/block-ip/{ip}        → Block an IP
POST   /api/security/unblock-ip/{ip}      → Unblock an IP
POST   /api/security/import               → Bulk permanent block
POST   /api/security/cleanup              → Sweep expired state

Every route requires the X-Admin-Token header. Free-text reasons are stripped
of script payloads before they are stored.
"""

from __future__ import annotations

import logging
from typing import Optional, TypeVar

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from jobguard.dependencies import AdminGuard, Services
from jobguard.errors import InputValidationError
from jobguard.models.schemas import (
    BlockRecord,
    EndpointStat,
    SuspiciousActivity,
    SuspiciousRecord,
)
from jobguard.security.validation import sanitize_input, validate_pagination
from jobguard.utils.ip_utils import is_valid_ip, normalize_ip

router = APIRouter(prefix="/api/security", tags=["security"], dependencies=[AdminGuard])
logger = logging.getLogger(__name__)

T = TypeVar("T")


def _clean_reason(value: str) -> str:
    cleaned = sanitize_input(value)
    if not cleaned:
        raise ValueError("Reason is empty once markup is removed")
    return cleaned


class BlockIPRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
    duration_minutes: Optional[int] = Field(default=None, gt=0)

    @field_validator("reason")
    @classmethod
    def sanitize_reason(cls, v: str) -> str:
        return _clean_reason(v)


class ImportBlocklistRequest(BaseModel):
    ips: list[str] = Field(min_length=1, max_length=100_000)
    reason: str = "Known malicious IP"

    @field_validator("ips")
    @classmethod
    def validate_ips(cls, v: list[str]) -> list[str]:
        invalid = [ip for ip in v if not is_valid_ip(ip)]
        if invalid:
            raise ValueError(f"Invalid IP address(es): {', '.join(invalid[:10])}")
        return [normalize_ip(ip) for ip in v]

    @field_validator("reason")
    @classmethod
    def sanitize_reason(cls, v: str) -> str:
        return _clean_reason(v)


def _checked_ip(ip: str) -> str:
    if not is_valid_ip(ip):
        raise InputValidationError(
            "Invalid IP address", [{"field": "ip", "message": f"{ip} is not an IPv4 or IPv6 address"}]
        )
    return normalize_ip(ip)


def _paginate(items: list[T], page: Optional[int], limit: Optional[int]) -> list[T]:
    """Whole list unless page or limit is given; then a clamped slice."""
    if page is None and limit is None:
        return items
    page, limit = validate_pagination(page, limit)
    start = (page - 1) * limit
    return items[start:start + limit]


@router.get("/stats")
async def security_stats(services: Services) -> dict:
    return {
        "blocking": await services.registry.get_stats(),
        "security": await services.tracker.get_security_stats(),
        "system": await services.performance.get_system_metrics(),
        "live": await services.performance.get_live_stats(),
    }


@router.get("/blocked-ips", response_model=list[BlockRecord])
async def blocked_ips(services: Services, page: Optional[int] = None, limit: Optional[int] = None):
    return _paginate(await services.registry.get_blocked_ips(), page, limit)


@router.get("/suspicious-activity", response_model=list[SuspiciousActivity])
async def suspicious_activity(services: Services):
    return await services.registry.get_suspicious_activity()


@router.get("/suspicious-ips", response_model=list[SuspiciousRecord])
async def suspicious_ips(services: Services, page: Optional[int] = None, limit: Optional[int] = None):
    return _paginate(await services.ledger.get_all_suspicious_ips(), page, limit)


@router.delete("/suspicious-ips/{ip}")
async def clear_suspicious_ip(ip: str, services: Services) -> dict:
    ip = _checked_ip(ip)
    if not await services.ledger.clear_suspicious_ip(ip):
        raise HTTPException(status_code=404, detail=f"No suspicious record for {ip}")
    return {"ip": ip, "cleared": True}


@router.get("/request-metrics")
async def request_metrics(services: Services) -> dict:
    return {
        "requests": await services.tracker.get_request_metrics(),
        "security": await services.tracker.get_security_stats(),
    }


@router.get("/performance/report")
async def performance_report(
    services: Services,
    alerts: int = Query(default=20, ge=1, le=100),
) -> dict:
    return {
        "system": await services.performance.get_system_metrics(),
        "endpoints": await services.performance.get_endpoint_stats(),
        "alerts": await services.performance.get_performance_alerts(alerts),
    }


@router.get("/performance/slowest", response_model=list[EndpointStat])
async def slowest_endpoints(services: Services, limit: int = Query(default=20, ge=1, le=100)):
    return await services.performance.get_slowest_endpoints(limit)


@router.get("/rate-limits")
async def rate_limits(
    services: Services,
    load: Optional[float] = Query(default=None, ge=0, le=100),
) -> dict:
    table = services.policies
    policies = table.policies() + [table.default_policy]
    if load is not None:
        policies = [table.get_dynamic_limits(p.endpoint_pattern, load) for p in table.policies()]
        policies.append(table.get_dynamic_limits("*", load))
    return {
        "stats": table.get_rate_limit_stats(),
        "server_load": load,
        "policies": [p.model_dump() for p in policies],
    }


@router.post("/block-ip/{ip}", response_model=BlockRecord)
async def block_ip(ip: str, body: BlockIPRequest, services: Services):
    ip = _checked_ip(ip)
    await services.registry.block_ip(ip, body.reason, body.duration_minutes)
    record = await services.registry.get_block(ip)
    if record is None:
        raise HTTPException(status_code=503, detail="Block could not be persisted")
    return record


@router.post("/unblock-ip/{ip}")
async def unblock_ip(ip: str, services: Services) -> dict:
    ip = _checked_ip(ip)
    if not await services.registry.unblock_ip(ip):
        raise HTTPException(status_code=404, detail=f"IP {ip} is not blocked")
    return {"ip": ip, "unblocked": True}


@router.post("/import")
async def import_blocklist(body: ImportBlocklistRequest, services: Services) -> dict:
    imported = await services.registry.import_malicious_ip_list(body.ips, body.reason)
    logger.info(f"Admin blocklist import: {imported} IPs")
    return {"imported": imported}


@router.post("/cleanup")
async def cleanup(services: Services) -> dict:
    return {
        "request_counters": await services.tracker.cleanup(),
        "expired_blocks": await services.registry.cleanup(),
        "metrics": await services.performance.clear_old_metrics(),
    }
