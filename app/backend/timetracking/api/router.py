"""Top-level API router."""

from fastapi import APIRouter

from timetracking.api.routes.health import router as health_router
from timetracking.api.routes.maintenance import router as maintenance_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(maintenance_router)
