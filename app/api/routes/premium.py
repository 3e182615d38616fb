"""
Premium tier API routes.

Exchanges the premium password for a bearer token that enables the
precision-OCR cross-check on comparison requests.
"""

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import AppSettings, RateLimited, Tier
from app.core.logging import get_logger
from app.core.security import create_premium_token, verify_premium_password
from app.domain.models import ModelTier

logger = get_logger(__name__)

router = APIRouter(prefix="/premium", tags=["premium"])


class PremiumUnlockRequest(BaseModel):
    """Request body for unlocking the premium tier."""

    password: str = Field(min_length=1, max_length=256)


class PremiumTokenResponse(BaseModel):
    """Issued premium token."""

    model_config = ConfigDict(protected_namespaces=())

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Token lifetime in seconds")
    model_tier: ModelTier = ModelTier.PREMIUM


class PremiumStatusResponse(BaseModel):
    """Tier resolved for the current request."""

    model_config = ConfigDict(protected_namespaces=())

    model_tier: ModelTier
    premium_available: bool


@router.post(
    "/unlock",
    response_model=PremiumTokenResponse,
    summary="Unlock premium tier",
    responses={
        401: {"description": "Wrong password"},
        503: {"description": "Premium tier not configured"},
    },
)
async def unlock_premium(
    request: PremiumUnlockRequest,
    settings: AppSettings,
    _: RateLimited,
) -> PremiumTokenResponse:
    """Issue a premium token for a correct password."""
    if not settings.premium_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Premium tier is not configured",
        )

    if not verify_premium_password(request.password):
        logger.warning("premium_unlock_failed", reason="invalid_password")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid premium password",
        )

    logger.info("premium_unlocked")

    return PremiumTokenResponse(
        access_token=create_premium_token(),
        expires_in=settings.access_token_expire_minutes * 60,
    )


@router.get(
    "/status",
    response_model=PremiumStatusResponse,
    summary="Current tier",
)
async def premium_status(settings: AppSettings, model_tier: Tier) -> PremiumStatusResponse:
    return PremiumStatusResponse(
        model_tier=model_tier,
        premium_available=settings.premium_enabled,
    )
