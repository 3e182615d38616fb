"""API routes package."""

from fastapi import APIRouter

from app.api.routes import comparisons, premium

# Main API router
api_router = APIRouter(prefix="/api/v1")

api_router.include_router(comparisons.router)
api_router.include_router(premium.router)
