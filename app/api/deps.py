"""
FastAPI dependencies for dependency injection.

Provides database sessions, use case instances, and the
premium-tier resolution for route handlers.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.comparison_pipeline import PlateComparisonUseCase
from app.application.export_service import CsvExporter
from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.core.security import check_rate_limit, decode_access_token
from app.domain.models import ModelTier
from app.infrastructure.db.repository import ComparisonRecordRepository
from app.infrastructure.db.session import get_session
from app.infrastructure.storage.storage import ImageStorage

logger = get_logger(__name__)

premium_bearer = HTTPBearer(auto_error=False)

# Type aliases for cleaner route signatures
Session = Annotated[AsyncSession, Depends(get_session)]
AppSettings = Annotated[Settings, Depends(get_settings)]
RateLimited = Annotated[None, Depends(check_rate_limit)]


async def resolve_model_tier(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(premium_bearer)],
) -> ModelTier:
    """
    Resolve the provider tier of a request.

    No bearer token means the standard tier. A token that is present but
    invalid or expired is rejected rather than silently downgraded.

    Raises:
        HTTPException: 401 if the token is invalid.
    """
    if credentials is None:
        return ModelTier.STANDARD

    token = decode_access_token(credentials.credentials)
    if token is None or not token.is_premium:
        logger.warning("premium_token_rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired premium token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return ModelTier.PREMIUM


async def get_comparison_use_case(settings: AppSettings) -> PlateComparisonUseCase:
    """
    Dependency to get the plate comparison use case.

    Args:
        settings: Application settings.

    Returns:
        PlateComparisonUseCase: Use case wired to the configured providers.
    """
    return PlateComparisonUseCase(
        settings=settings,
        storage=ImageStorage(settings.image_storage_path),
    )


async def get_record_repository(session: Session) -> ComparisonRecordRepository:
    """Dependency to get the comparison record repository."""
    return ComparisonRecordRepository(session)


def get_exporter() -> CsvExporter:
    return CsvExporter()


# Type aliases for use case dependencies
Tier = Annotated[ModelTier, Depends(resolve_model_tier)]
ComparisonUseCase = Annotated[PlateComparisonUseCase, Depends(get_comparison_use_case)]
RecordRepository = Annotated[ComparisonRecordRepository, Depends(get_record_repository)]
Exporter = Annotated[CsvExporter, Depends(get_exporter)]
