"""
FastAPI application factory.

Configures CORS, security middleware, lifespan events, and mounts the API router.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from jobguard.api.router import api_router
from jobguard.config import Settings, get_settings
from jobguard.errors import InputValidationError
from jobguard.middleware.security import SecurityMiddleware
from jobguard.security import build_security_services
from jobguard.store import RedisStore, get_store
from jobguard.store.base import KeyValueStore

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds defensive HTTP security headers to every response."""

    def __init__(self, app, hsts: bool = False):
        super().__init__(app)
        self.hsts = hsts

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if self.hsts:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def create_app(settings: Optional[Settings] = None, store: Optional[KeyValueStore] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        kv_store = store or get_store(settings)
        if isinstance(kv_store, RedisStore):
            await kv_store.connect()

        app.state.settings = settings
        app.state.security = build_security_services(kv_store, settings.security)

        logger.info("Job marketplace security service starting")
        logger.info(f"Environment: {settings.app_env}")
        logger.info(
            f"Request limits: {settings.security.max_requests_per_minute}/min, "
            f"{settings.security.max_requests_per_hour}/hour"
        )
        if not settings.admin_token:
            logger.info("Admin API disabled (set ADMIN_TOKEN to enable)")
        yield
        logger.info("Shutting down")
        await kv_store.close()

    app = FastAPI(
        title="JobGuard",
        version="1.0.0",
        description="Rate limiting, abuse detection and IP blocking for the job marketplace API",
        lifespan=lifespan,
        # Disable auto-generated docs in production to avoid leaking schema
        docs_url="/api/docs" if settings.is_development else None,
        redoc_url=None,
    )

    app.add_middleware(SecurityMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, hsts=not settings.is_development)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization", "X-Admin-Token", "X-Request-ID"],
    )

    @app.exception_handler(InputValidationError)
    async def input_validation_handler(request: Request, exc: InputValidationError) -> JSONResponse:
        logger.warning(f"Rejected input on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=400, content={"detail": exc.to_dict()})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Catch-all for unhandled exceptions.
        In development: returns exception type + message for easier debugging.
        In production: returns a generic 500 with no internal details.
        """
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: "
            f"{type(exc).__name__}: {exc}",
            exc_info=True,
        )
        if settings.is_development:
            return JSONResponse(status_code=500, content={"detail": f"{type(exc).__name__}: {exc}"})
        return JSONResponse(
            status_code=500,
            content={"detail": "An internal server error occurred. Please try again later."},
        )

    app.include_router(api_router)
    return app


app = create_app()
