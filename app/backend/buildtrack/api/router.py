"""Top-level API router."""

from fastapi import APIRouter

from buildtrack.api.routes.analytics import router as analytics_router
from buildtrack.api.routes.health import router as health_router
from buildtrack.api.routes.progress import router as progress_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(progress_router)
api_router.include_router(analytics_router)
