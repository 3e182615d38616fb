"""Infrastructure layer package."""

from app.infrastructure.db import (
    ComparisonRecordRepository,
    close_db,
    get_session,
    init_db,
)
from app.infrastructure.providers import (
    OcrSource,
    OcrSourceError,
    RecognitionSourceError,
    VisionSource,
    VisionSourceError,
    get_ocr_source,
    get_vision_source,
)
from app.infrastructure.storage import ImageStorage

__all__ = [
    # Database
    "get_session",
    "init_db",
    "close_db",
    "ComparisonRecordRepository",
    # Providers
    "VisionSource",
    "OcrSource",
    "RecognitionSourceError",
    "VisionSourceError",
    "OcrSourceError",
    "get_vision_source",
    "get_ocr_source",
    # Storage
    "ImageStorage",
]
