"""
Application factory and process entry point.

Wires the versioned API, the health checks, request correlation and
the startup/shutdown sequence (tables, image directory, engine).
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from app.api import api_router
from app.api.routes import health
from app.core.config import Settings, get_settings
from app.core.logging import get_logger, set_correlation_id, setup_logging
from app.infrastructure.db.session import close_db, init_db

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create tables and the image directory; dispose the engine on exit."""
    settings = get_settings()

    try:
        await init_db()
        Path(settings.image_storage_path).mkdir(parents=True, exist_ok=True)
    except (SQLAlchemyError, OSError) as e:
        logger.error("startup_failed", error=str(e))
        raise

    logger.info(
        "application_started",
        version=health.VERSION,
        vision_provider=settings.vision_provider,
        ocr_provider=settings.ocr_provider,
        premium_available=settings.premium_enabled,
        image_storage=settings.image_storage_path,
    )

    try:
        yield
    finally:
        await close_db()
        logger.info("application_stopped")


def _allowed_origins(settings: Settings) -> list[str]:
    return ["*"] if settings.debug else ["http://localhost:3000"]


def create_app() -> FastAPI:
    """Build the FastAPI application from current settings."""
    settings = get_settings()

    app = FastAPI(
        title="Vehicle Plate Cross-Check",
        description="Korean license-plate extraction with cross-source reconciliation",
        version=health.VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID", "Content-Disposition"],
    )

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next):
        cid = set_correlation_id(request.headers.get("X-Correlation-ID"))
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response

    app.include_router(health.router)
    app.include_router(api_router)

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn using the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=None,
    )
