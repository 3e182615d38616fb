"""Core configuration and utilities package."""

from app.core.config import Settings, get_settings
from app.core.logging import get_logger, set_correlation_id, setup_logging
from app.core.security import (
    TokenData,
    check_rate_limit,
    create_access_token,
    create_premium_token,
    decode_access_token,
    verify_premium_password,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "get_logger",
    "set_correlation_id",
    "setup_logging",
    # Security
    "TokenData",
    "check_rate_limit",
    "create_access_token",
    "create_premium_token",
    "decode_access_token",
    "verify_premium_password",
]
