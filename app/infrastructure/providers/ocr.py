"""
Precision OCR source implementations using strategy pattern.

The precision source returns every recognized text fragment joined
into one blob; plate extraction happens in the domain adapter.
"""

import time
import uuid
from abc import ABC, abstractmethod

import httpx

from app.core.config import Settings
from app.core.logging import get_logger
from app.infrastructure.providers.base import HttpProvider, OcrSourceError

logger = get_logger(__name__)

# Image format names accepted by the Clova OCR V2 API
_CLOVA_FORMATS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/tiff": "tiff",
    "application/pdf": "pdf",
}


class OcrSource(ABC):
    """
    Abstract base class for precision OCR sources.

    Implementations must provide the recognize method.
    """

    name: str = "ocr"

    @abstractmethod
    async def recognize(self, image_b64: str, mime_type: str = "image/jpeg") -> str:
        """
        Recognize all text in an image.

        Args:
            image_b64: Base64-encoded image data.
            mime_type: MIME type of the image.

        Returns:
            str: Recognized text fragments joined with single spaces.

        Raises:
            OcrSourceError: If the call fails.
        """
        pass


class NaverClovaOcrSource(HttpProvider, OcrSource):
    """
    Precision OCR backed by the Naver Clova general OCR API.

    Example:
        source = NaverClovaOcrSource(invoke_url, secret)
        text = await source.recognize(image_b64)
    """

    name = "naver"
    provider_name = "Naver Clova OCR"
    error_class = OcrSourceError

    def __init__(
        self,
        invoke_url: str,
        secret: str,
        proxy_url: str = "",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize Clova source.

        Args:
            invoke_url: API Gateway invoke URL of the OCR domain.
            secret: X-OCR-SECRET value.
            proxy_url: Optional prefix prepended to the invoke URL.
            timeout: Per-call timeout in seconds.
            client: Optional shared HTTP client.
        """
        super().__init__(timeout=timeout, client=client)
        self.invoke_url = invoke_url
        self.secret = secret
        self.proxy_url = proxy_url.rstrip("/")

    @property
    def url(self) -> str:
        """Effective request URL, proxied when a prefix is configured."""
        if not self.proxy_url:
            return self.invoke_url
        return f"{self.proxy_url}/{self.invoke_url.lstrip('/')}"

    async def recognize(self, image_b64: str, mime_type: str = "image/jpeg") -> str:
        """Send one image and join every inferText field."""
        request_id = f"batch-{uuid.uuid4().hex[:12]}"
        payload = {
            "images": [
                {
                    "format": _CLOVA_FORMATS.get(mime_type, "jpg"),
                    "name": "batch_proc_vehicle",
                    "data": image_b64,
                }
            ],
            "requestId": request_id,
            "timestamp": int(time.time() * 1000),
            "version": "V2",
        }

        logger.debug("clova_ocr_request", request_id=request_id)

        response = await self._post_json(
            self.url,
            payload,
            headers={"X-OCR-SECRET": self.secret},
        )

        if not response.is_success:
            logger.error("clova_ocr_http_error", status_code=response.status_code)
            raise OcrSourceError(f"Naver Clova OCR error ({response.status_code})")

        data = self._decode(response)
        text = self.join_fields(data)

        logger.debug("clova_ocr_response", request_id=request_id, text_length=len(text))
        return text

    @staticmethod
    def join_fields(data: object) -> str:
        """Join inferText of the first image's fields, in reading order."""
        if not isinstance(data, dict):
            return ""
        images = data.get("images")
        if not isinstance(images, list) or not images or not isinstance(images[0], dict):
            return ""
        fields = images[0].get("fields")
        if not isinstance(fields, list):
            return ""
        return " ".join(
            str(f["inferText"])
            for f in fields
            if isinstance(f, dict) and f.get("inferText")
        )


class MockOcrSource(OcrSource):
    """
    Mock OCR source for testing.

    Returns configurable text, or raises a configured error.
    """

    name = "mock"

    def __init__(
        self,
        mock_text: str = "12가 3456",
        error: Exception | None = None,
    ):
        """
        Initialize mock OCR.

        Args:
            mock_text: Text to return from recognition.
            error: Exception to raise instead of answering.
        """
        self.mock_text = mock_text
        self.error = error
        self.calls = 0

    async def recognize(self, image_b64: str, mime_type: str = "image/jpeg") -> str:
        """Return mock text."""
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.mock_text


def get_ocr_source(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> OcrSource | None:
    """
    Factory function to get the configured precision OCR source.

    Args:
        settings: Application settings.
        client: Optional shared HTTP client.

    Returns:
        OcrSource: Configured source, or None when OCR is disabled or
            its credentials are missing.
    """
    provider = settings.ocr_provider

    if provider == "none":
        return None
    if provider == "mock":
        return MockOcrSource()

    if not settings.naver_ocr_url or not settings.naver_ocr_secret:
        logger.warning("ocr_credentials_missing", provider=provider)
        return None

    return NaverClovaOcrSource(
        invoke_url=settings.naver_ocr_url,
        secret=settings.naver_ocr_secret,
        proxy_url=settings.ocr_proxy_url,
        timeout=settings.upstream_timeout_seconds,
        client=client,
    )
