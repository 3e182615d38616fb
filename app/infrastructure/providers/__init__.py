"""Upstream recognition providers - vision models and precision OCR."""

from app.infrastructure.providers.base import (
    OcrSourceError,
    RecognitionSourceError,
    VisionSourceError,
)
from app.infrastructure.providers.ocr import (
    MockOcrSource,
    NaverClovaOcrSource,
    OcrSource,
    get_ocr_source,
)
from app.infrastructure.providers.vision import (
    AzureOpenAIVisionSource,
    GeminiVisionSource,
    MockVisionSource,
    VisionSource,
    describe_vision_source,
    get_vision_source,
    parse_vision_response,
)

__all__ = [
    "AzureOpenAIVisionSource",
    "GeminiVisionSource",
    "MockOcrSource",
    "MockVisionSource",
    "NaverClovaOcrSource",
    "OcrSource",
    "OcrSourceError",
    "RecognitionSourceError",
    "VisionSource",
    "VisionSourceError",
    "describe_vision_source",
    "get_ocr_source",
    "get_vision_source",
    "parse_vision_response",
]
