"""
Premium tier gate and per-client request throttling.

Unlocking the premium tier exchanges a shared password for a short-lived
signed token; requests carrying that token get the precision-OCR
cross-check.
"""

import secrets
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

PREMIUM_TIER = "premium"
PREMIUM_SUBJECT = "premium-session"


@dataclass(frozen=True)
class TokenData:
    """Validated claims of a tier token."""

    subject: str
    tier: str
    exp: datetime

    @property
    def is_premium(self) -> bool:
        return self.tier == PREMIUM_TIER


def verify_premium_password(password: str) -> bool:
    """
    Compare the unlock password without leaking timing.

    Always False while the premium tier is disabled, whatever is sent.
    """
    settings = get_settings()
    if not settings.premium_enabled:
        return False
    return secrets.compare_digest(password.encode(), settings.premium_password.encode())


def create_access_token(claims: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """
    Sign a token carrying the given claims.

    Args:
        claims: Token claims; "sub" is expected.
        expires_delta: Lifetime; defaults to the configured expiry.

    Returns:
        str: Compact JWS string.
    """
    settings = get_settings()
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)

    payload = {**claims, "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def create_premium_token(expires_delta: timedelta | None = None) -> str:
    return create_access_token({"sub": PREMIUM_SUBJECT, "tier": PREMIUM_TIER}, expires_delta)


def decode_access_token(token: str) -> TokenData | None:
    """
    Validate signature and expiry of a tier token.

    Returns:
        TokenData: The claims, or None for any invalid, expired or
            incomplete token.
    """
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        logger.debug("token_rejected", error=str(e))
        return None

    if not claims.get("sub") or claims.get("exp") is None:
        return None

    return TokenData(
        subject=claims["sub"],
        tier=str(claims.get("tier") or ""),
        exp=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    )


@dataclass
class RateLimiter:
    """
    Sliding-window request limiter keyed by client address.

    Each key keeps the timestamps of its accepted requests; entries
    older than the window are dropped before every check.

    Attributes:
        requests_per_window: Accepted requests per key per window.
        window_seconds: Window length in seconds.
    """

    requests_per_window: int
    window_seconds: int
    _windows: dict[str, deque[float]] = field(default_factory=dict)

    def _window(self, key: str, now: float) -> deque[float]:
        window = self._windows.setdefault(key, deque())
        while window and now - window[0] >= self.window_seconds:
            window.popleft()
        return window

    def is_allowed(self, key: str) -> bool:
        """Record a request for the key; False if the window is full."""
        now = time.monotonic()
        window = self._window(key, now)
        if len(window) >= self.requests_per_window:
            return False
        window.append(now)
        return True

    def get_remaining(self, key: str) -> int:
        window = self._window(key, time.monotonic())
        return max(0, self.requests_per_window - len(window))

    def retry_after(self, key: str) -> int:
        """Seconds until the oldest request of the key leaves the window."""
        now = time.monotonic()
        window = self._window(key, now)
        if not window:
            return 0
        return max(1, int(self.window_seconds - (now - window[0])) + 1)

    def reset(self) -> None:
        self._windows.clear()


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Process-wide limiter built from settings on first use."""
    global _rate_limiter
    if _rate_limiter is None:
        settings = get_settings()
        _rate_limiter = RateLimiter(
            requests_per_window=settings.rate_limit_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    return _rate_limiter


async def check_rate_limit(request: Request) -> None:
    """
    Route dependency rejecting clients over their request budget.

    Raises:
        HTTPException: 429 with a Retry-After header.
    """
    limiter = get_rate_limiter()
    client = request.client.host if request.client else "unknown"

    if limiter.is_allowed(client):
        return

    logger.warning("rate_limit_exceeded", client_ip=client, path=request.url.path)
    raise HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Rate limit exceeded. Please try again later.",
        headers={
            "Retry-After": str(limiter.retry_after(client)),
            "X-RateLimit-Remaining": "0",
        },
    )
