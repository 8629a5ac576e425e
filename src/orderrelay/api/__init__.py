"""HTTP route aggregation for the fan-out server."""

from fastapi import APIRouter

from orderrelay.api.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
