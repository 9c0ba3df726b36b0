"""
Pydantic schemas: the data contract for the security subsystem.

Three categories:
1. Stored records (serialized to JSON in Redis)
2. Decisions returned to the HTTP middleware
3. Admin/reporting aggregates
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from jobguard.models.enums import AlertSeverity, SuspicionSeverity


# ═════════════════════════════════════════════════
# 1. STORED RECORDS
# ═════════════════════════════════════════════════

class BlockRecord(BaseModel):
    """A block on a client identifier. Temporary blocks carry an expiry."""
    ip: str
    reason: str
    blocked_at: datetime
    expires_at: Optional[datetime] = None
    is_temporary: bool = False

    @model_validator(mode="after")
    def _temporary_iff_expiry(self) -> "BlockRecord":
        if self.is_temporary != (self.expires_at is not None):
            raise ValueError("is_temporary must be set exactly when expires_at is present")
        return self

    def is_expired(self, now: datetime) -> bool:
        return self.is_temporary and self.expires_at is not None and now > self.expires_at


class SuspiciousRecord(BaseModel):
    """Accumulated suspicious incidents for one client (timestamps in epoch ms)."""
    ip: str
    reasons: list[str] = []
    first_seen: int
    last_seen: int
    count: int = 1
    severity: SuspicionSeverity = SuspicionSeverity.MEDIUM


class PerformanceMetric(BaseModel):
    endpoint: str
    method: str
    response_time: float              # ms
    timestamp: datetime
    status_code: int
    memory_usage: int = 0             # bytes (process RSS)

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 400


class PerformanceAlert(BaseModel):
    type: str
    message: str
    timestamp: datetime
    severity: AlertSeverity = AlertSeverity.MEDIUM


# ═════════════════════════════════════════════════
# 2. DECISIONS
# ═════════════════════════════════════════════════

class TrackResult(BaseModel):
    is_blocked: bool = False
    is_ddos: bool = False
    request_count: int = 0
    reset_time_ms: int = 0           # end of the hour window if the hourly quota tripped, else the minute window


class RateLimitStatus(BaseModel):
    should_limit: bool = False
    remaining_requests: int
    reset_time_ms: int                # epoch ms when the current minute window ends


class RateLimitPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    endpoint_pattern: str
    window_ms: int = Field(gt=0)
    max_requests: int = Field(ge=0)


# ═════════════════════════════════════════════════
# 3. AGGREGATES
# ═════════════════════════════════════════════════

class SuspiciousActivity(BaseModel):
    """Attempt-counter view of a client (the auto-block path)."""
    ip: str
    attempts: int
    last_attempt: datetime
    activity: Optional[str] = None


class BlockStats(BaseModel):
    total_blocked: int = 0
    temporary_blocks: int = 0
    permanent_blocks: int = 0
    suspicious_ips: int = 0


class SuspiciousIPSummary(BaseModel):
    ip: str
    count: int
    severity: SuspicionSeverity


class SecurityStats(BaseModel):
    total_requests: int = 0
    suspicious_ips: int = 0
    blocked_attempts: int = 0
    top_suspicious_ips: list[SuspiciousIPSummary] = []


class RequestMetrics(BaseModel):
    current_minute: int = 0
    current_hour: int = 0
    active_ips: int = 0


class MemoryUsage(BaseModel):
    used: int = 0
    total: int = 0
    percentage: float = 0.0


class ResponseTimeStats(BaseModel):
    average: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


class RequestCountStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0


class SystemMetrics(BaseModel):
    cpu_usage: float = 0.0
    memory_usage: MemoryUsage = Field(default_factory=MemoryUsage)
    response_time: ResponseTimeStats = Field(default_factory=ResponseTimeStats)
    request_count: RequestCountStats = Field(default_factory=RequestCountStats)


class EndpointStat(BaseModel):
    endpoint: str
    method: str
    average_response_time: float
    request_count: int
    error_rate: float                 # percent of responses with status >= 400
