"""
Top-level API router: aggregates all endpoint modules.
"""

from fastapi import APIRouter

from jobguard.api.health import router as health_router
from jobguard.api.security import router as security_router

api_router = APIRouter()

api_router.include_router(health_router)
api_router.include_router(security_router)
