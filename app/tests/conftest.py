"""
Pytest configuration and fixtures.

Provides shared fixtures for testing including:
- In-memory database sessions
- Mock recognition sources
- Async API client
"""

import os
import tempfile

# Settings are read at import time by app.main
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("VISION_PROVIDER", "mock")
os.environ.setdefault("OCR_PROVIDER", "mock")
os.environ.setdefault("PREMIUM_PASSWORD", "open-sesame")
os.environ.setdefault("RATE_LIMIT_REQUESTS", "1000")
os.environ.setdefault("IMAGE_STORAGE_PATH", tempfile.mkdtemp(prefix="plate-images-"))

from typing import AsyncIterator, Callable

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from app.domain.models import (
    OutcomeStatus,
    RawVisionResult,
    RecognitionOutcome,
    SourceId,
    VisionAnalysis,
)
from app.infrastructure.db.session import create_session_factory, create_test_engine, init_db
from app.infrastructure.providers import MockOcrSource, MockVisionSource
from app.infrastructure.storage.storage import ImageStorage

# Smallest JPEG header; providers never decode the bytes
SAMPLE_JPEG = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00\xff\xd9"


@pytest.fixture
async def db_engine() -> AsyncIterator[AsyncEngine]:
    """Create an in-memory database with all tables."""
    engine = create_test_engine()
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Create a test database session."""
    async with create_session_factory(db_engine)() as session:
        yield session


@pytest.fixture
def sample_image_bytes() -> bytes:
    return SAMPLE_JPEG


@pytest.fixture
def make_analysis() -> Callable[..., VisionAnalysis]:
    """Factory for vision analyses from (status, plate) pairs."""

    def _make(
        plate_focus: tuple[str, str | None] | None = ("SUCCESS", "12가3456"),
        damage_focus: tuple[str, str | None] | None = ("SUCCESS", "12가3456"),
    ) -> VisionAnalysis:
        return VisionAnalysis(
            plate_focus=RawVisionResult(*plate_focus) if plate_focus else None,
            damage_focus=RawVisionResult(*damage_focus) if damage_focus else None,
        )

    return _make


@pytest.fixture
def make_outcome() -> Callable[..., RecognitionOutcome]:
    """Factory for recognition outcomes."""

    def _make(
        source_id: SourceId,
        plate: str | None = None,
        status: OutcomeStatus = OutcomeStatus.SUCCESS,
    ) -> RecognitionOutcome:
        return RecognitionOutcome(source_id=source_id, status=status, plate=plate)

    return _make


@pytest.fixture
def mock_vision_source() -> MockVisionSource:
    return MockVisionSource()


@pytest.fixture
def mock_ocr_source() -> MockOcrSource:
    return MockOcrSource()


@pytest.fixture
def image_storage(tmp_path) -> ImageStorage:
    return ImageStorage(tmp_path / "images")


@pytest.fixture
async def api_client(
    db_engine: AsyncEngine,
    mock_vision_source: MockVisionSource,
    mock_ocr_source: MockOcrSource,
    image_storage: ImageStorage,
) -> AsyncIterator[AsyncClient]:
    """
    Async client against the app with test database and mock sources.

    Tests can reconfigure mock_vision_source / mock_ocr_source before
    sending requests.
    """
    from app.api.deps import get_comparison_use_case
    from app.application.comparison_pipeline import PlateComparisonUseCase
    from app.core.config import get_settings
    from app.core.security import get_rate_limiter
    from app.infrastructure.db.session import close_db, get_session
    from app.main import app

    session_factory = create_session_factory(db_engine)

    async def override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_use_case() -> PlateComparisonUseCase:
        return PlateComparisonUseCase(
            settings=get_settings(),
            vision_source=mock_vision_source,
            ocr_source=mock_ocr_source,
            storage=image_storage,
        )

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_comparison_use_case] = override_get_use_case
    get_rate_limiter().reset()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    await close_db()


@pytest.fixture
async def premium_headers(api_client: AsyncClient) -> dict[str, str]:
    """Authorization header unlocking the premium tier."""
    response = await api_client.post(
        "/api/v1/premium/unlock",
        json={"password": os.environ["PREMIUM_PASSWORD"]},
    )
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}
