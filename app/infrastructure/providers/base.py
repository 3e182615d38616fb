"""
Shared plumbing for upstream recognition providers.

Provides the error hierarchy and the HTTP helper every provider
client uses. Providers raise; the pipeline converts errors into
FAILED outcomes.
"""

from typing import Any

import httpx

from app.core.logging import get_logger

logger = get_logger(__name__)


class RecognitionSourceError(Exception):
    """Raised when an upstream recognition call fails."""

    pass


class VisionSourceError(RecognitionSourceError):
    """Raised when the vision-model call fails or returns garbage."""

    pass


class OcrSourceError(RecognitionSourceError):
    """Raised when the precision-OCR call fails."""

    pass


class HttpProvider:
    """
    Base for providers that talk JSON over HTTP.

    An injected AsyncClient is reused across calls (and owned by the
    caller); without one, each call opens a short-lived client.
    """

    error_class: type[RecognitionSourceError] = RecognitionSourceError
    provider_name: str = "upstream"

    def __init__(
        self,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize provider.

        Args:
            timeout: Per-call timeout in seconds.
            client: Optional shared HTTP client.
        """
        self._timeout = timeout
        self._client = client

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        POST a JSON payload, translating transport errors.

        Raises:
            RecognitionSourceError: On timeout or connection failure.
        """
        try:
            if self._client is not None:
                return await self._client.post(url, json=payload, headers=headers, params=params)
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                return await client.post(url, json=payload, headers=headers, params=params)
        except httpx.TimeoutException as e:
            logger.error("upstream_timeout", provider=self.provider_name, url=url)
            raise self.error_class(f"{self.provider_name} request timed out") from e
        except httpx.HTTPError as e:
            logger.error("upstream_transport_error", provider=self.provider_name, error=str(e))
            raise self.error_class(f"{self.provider_name} request failed: {e}") from e

    def _decode(self, response: httpx.Response) -> Any:
        """
        Decode a JSON response body.

        Raises:
            RecognitionSourceError: If the body is not JSON.
        """
        try:
            return response.json()
        except ValueError as e:
            raise self.error_class(
                f"{self.provider_name} returned a non-JSON body ({response.status_code})"
            ) from e

    @staticmethod
    def _error_detail(response: httpx.Response) -> str | None:
        """Best-effort extraction of a provider error message."""
        try:
            body = response.json()
        except ValueError:
            return None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                return error.get("message")
            if isinstance(error, str):
                return error
        return None
