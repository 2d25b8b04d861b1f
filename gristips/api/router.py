"""Main API router."""

from fastapi import APIRouter

from gristips.api.admin import router as admin_router
from gristips.api.auth import router as auth_router
from gristips.api.health import router as health_router

api_router = APIRouter(prefix="/api")

api_router.include_router(auth_router, prefix="/auth", tags=["auth"])
api_router.include_router(admin_router, prefix="/admin", tags=["admin"])
api_router.include_router(health_router, prefix="/health", tags=["monitoring"])
