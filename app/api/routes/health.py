"""
Liveness and readiness checks.

Mounted at the application root, outside the versioned API prefix.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.api.deps import AppSettings
from app.core.logging import get_logger
from app.infrastructure.db.session import get_session_factory
from app.infrastructure.providers import describe_vision_source, get_ocr_source, get_vision_source

logger = get_logger(__name__)

VERSION = "1.0.0"

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str = VERSION


class ReadinessResponse(BaseModel):
    """Dependencies checked before traffic is routed to this instance."""

    status: str
    database_connected: bool
    vision_provider: str
    vision_configured: bool
    ocr_configured: bool
    premium_available: bool


async def _database_reachable() -> bool:
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("readiness_database_unavailable", error=str(e))
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def ready(settings: AppSettings):
    """
    Ready when the database answers and the vision provider has
    credentials. Precision OCR is optional; without it the premium tier
    is reported as unavailable.
    """
    vision = describe_vision_source(get_vision_source(settings))
    ocr_configured = get_ocr_source(settings) is not None
    database_connected = await _database_reachable()
    is_ready = database_connected and vision["configured"]

    report = ReadinessResponse(
        status="ready" if is_ready else "not_ready",
        database_connected=database_connected,
        vision_provider=vision["provider"],
        vision_configured=vision["configured"],
        ocr_configured=ocr_configured,
        premium_available=settings.premium_enabled and ocr_configured,
    )

    if is_ready:
        return report
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=report.model_dump())
