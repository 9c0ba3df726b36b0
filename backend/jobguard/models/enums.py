"""
Shared enums, the single source of truth for classification values.

These are used by the Pydantic records persisted in Redis and by API responses.
"""

import enum


class SuspicionSeverity(str, enum.Enum):
    """Severity of an accumulated suspicious-IP record."""
    MEDIUM = "medium"
    HIGH = "high"                     # more than N recorded incidents


class AlertSeverity(str, enum.Enum):
    """Performance alert severity."""
    LOW = "low"
    MEDIUM = "medium"                 # slow request
    HIGH = "high"                     # very slow request


class WindowKind(str, enum.Enum):
    """Request-counter window sizes."""
    MINUTE = "minute"
    HOUR = "hour"

    @property
    def duration_ms(self) -> int:
        return 60_000 if self is WindowKind.MINUTE else 3_600_000

    @property
    def ttl_seconds(self) -> int:
        return self.duration_ms // 1000
