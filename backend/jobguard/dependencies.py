"""
FastAPI dependency injection.

Endpoints declare what they need via Depends() and FastAPI wires it up.
"""

from __future__ import annotations

import secrets
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request

from jobguard.config import Settings, get_settings
from jobguard.security import SecurityServices


def get_security_services(request: Request) -> SecurityServices:
    services = getattr(request.app.state, "security", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Security services are not initialised")
    return services


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def require_admin(
    request: Request,
    x_admin_token: Annotated[Optional[str], Header()] = None,
) -> None:
    """403 when the admin API is disabled (no token configured), 401 on a bad token."""
    settings = get_app_settings(request)
    if not settings.admin_token:
        raise HTTPException(status_code=403, detail="Admin API is disabled")
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.admin_token):
        raise HTTPException(status_code=401, detail="Invalid admin token")


# Type aliases for clean endpoint signatures
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Services = Annotated[SecurityServices, Depends(get_security_services)]
AdminGuard = Depends(require_admin)
