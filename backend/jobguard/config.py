"""
Application configuration.

Loads from environment variables / .env file.
Security thresholds live in a nested SecurityConfig that is handed to every
security component at construction time, so a deployment (or a test) can tune
them without touching module globals.

Nested fields are overridden with a double underscore, e.g.
SECURITY__MAX_REQUESTS_PER_MINUTE=800.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env relative to backend/, independent of the process CWD.
_BACKEND_DIR = Path(__file__).resolve().parent.parent
_ENV_FILE = str(_BACKEND_DIR / ".env")

# OS env vars still take priority over the file.
load_dotenv(_ENV_FILE, override=False)


class SecurityConfig(BaseModel):
    """Thresholds, windows and TTLs for the rate-limiting subsystem."""

    # ── Request tracking ──
    max_requests_per_minute: int = Field(default=500, gt=0)
    max_requests_per_hour: int = Field(default=5000, gt=0)
    ddos_requests_per_minute: int = Field(default=1000, gt=0)

    # ── Suspicious activity ──
    suspicious_attempt_threshold: int = Field(default=5, gt=0)
    suspicious_attempt_ttl_seconds: int = 3600
    auto_block_minutes: int = 60
    suspicious_record_ttl_seconds: int = 24 * 60 * 60
    high_severity_incident_count: int = 5

    # ── Performance metrics ──
    slow_request_ms: float = 1000
    very_slow_request_ms: float = 5000
    metrics_retention_seconds: int = 24 * 60 * 60
    metrics_window_seconds: int = 5 * 60
    system_stats_ttl_seconds: int = 3600
    max_alerts: int = 100
    alerts_ttl_seconds: int = 7 * 24 * 60 * 60

    # ── Middleware ──
    max_request_bytes: int = 50 * 1024 * 1024
    malicious_ip_block_minutes: int = 1440


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",  # silently ignore unknown env vars
    )

    # ── Redis ──
    redis_url: str = "redis://localhost:6379/0"  # empty string disables the store
    redis_connect_timeout: float = 5.0
    redis_command_timeout: float = 10.0
    redis_retry_interval: float = 30.0

    # ── App ──
    app_env: str = "development"
    cors_origins: str = "http://localhost:3000,http://localhost:5173"
    log_level: str = "INFO"
    admin_token: str = ""  # empty disables the admin API

    security: SecurityConfig = SecurityConfig()

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()
