"""
Vision-model recognition sources using strategy pattern.

Each source sends one image to a multimodal model that evaluates both
prompt sets (plate-focus and damage-focus) and answers with a single
JSON object. Azure OpenAI and Google Gemini are supported; a mock
source serves development and tests.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Callable

import httpx

from app.core.config import Settings
from app.core.logging import get_logger
from app.domain.models import RawVisionResult, VisionAnalysis
from app.infrastructure.providers.base import HttpProvider, VisionSourceError
from app.infrastructure.providers.prompts import USER_INSTRUCTION, build_system_prompt

logger = get_logger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_vision_response(content: str | None) -> VisionAnalysis:
    """
    Parse the model's JSON answer into a VisionAnalysis.

    A half that is missing or malformed becomes None; the adapter turns
    it into a FAILED outcome for that prompt set only.

    Args:
        content: Message content returned by the model.

    Returns:
        VisionAnalysis: Both prompt-set results.

    Raises:
        VisionSourceError: If the content is not a JSON object.
    """
    text = _CODE_FENCE.sub("", (content or "").strip())
    try:
        payload = json.loads(text or "{}")
    except json.JSONDecodeError as e:
        raise VisionSourceError(f"Vision model returned invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise VisionSourceError("Vision model response is not a JSON object")

    halves: dict[str, RawVisionResult | None] = {}
    for key in ("analysisA", "analysisB"):
        try:
            halves[key] = RawVisionResult.from_payload(payload.get(key))
        except ValueError as e:
            logger.warning("vision_result_malformed", criteria_set=key, error=str(e))
            halves[key] = None

    return VisionAnalysis(plate_focus=halves["analysisA"], damage_focus=halves["analysisB"])


class VisionSource(ABC):
    """
    Abstract base class for vision-model sources.

    Implementations must provide the analyze method.
    Use the strategy pattern to swap providers via configuration.
    """

    name: str = "vision"

    @abstractmethod
    async def analyze(self, image_b64: str, mime_type: str = "image/jpeg") -> VisionAnalysis:
        """
        Evaluate both prompt sets on one image.

        Args:
            image_b64: Base64-encoded image data.
            mime_type: MIME type of the image.

        Returns:
            VisionAnalysis: Plate-focus and damage-focus results.

        Raises:
            VisionSourceError: If the call fails.
        """
        pass


class AzureOpenAIVisionSource(HttpProvider, VisionSource):
    """
    Vision source backed by an Azure OpenAI chat-completions deployment.

    Example:
        source = AzureOpenAIVisionSource(settings)
        analysis = await source.analyze(image_b64)
    """

    name = "azure"
    provider_name = "Azure OpenAI"
    error_class = VisionSourceError

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        """
        Initialize Azure source.

        Args:
            settings: Provider credentials, deployment and prompt overrides.
            client: Optional shared HTTP client.
        """
        super().__init__(timeout=settings.upstream_timeout_seconds, client=client)
        self.endpoint = settings.azure_openai_endpoint
        self.api_key = settings.azure_openai_api_key
        self.deployment = settings.azure_openai_deployment
        self.api_version = settings.azure_openai_api_version
        self.max_tokens = settings.vision_max_tokens
        self.temperature = settings.vision_temperature
        self.system_prompt = build_system_prompt(
            settings.plate_focus_prompt,
            settings.damage_focus_prompt,
        )

    @property
    def url(self) -> str:
        """Chat-completions URL of the configured deployment."""
        return f"{self.endpoint}/openai/deployments/{self.deployment}/chat/completions"

    async def analyze(self, image_b64: str, mime_type: str = "image/jpeg") -> VisionAnalysis:
        """Call the deployment with the combined system prompt."""
        if not self.api_key or len(self.api_key) < 10:
            raise VisionSourceError("Azure OpenAI API key is not configured")
        if not self.endpoint:
            raise VisionSourceError("Azure OpenAI endpoint is not configured")

        payload = {
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_INSTRUCTION},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{mime_type};base64,{image_b64}"},
                        },
                    ],
                },
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "top_p": 0.95,
            "response_format": {"type": "json_object"},
        }

        logger.debug("azure_vision_request", deployment=self.deployment)

        response = await self._post_json(
            self.url,
            payload,
            headers={"api-key": self.api_key},
            params={"api-version": self.api_version},
        )
        self._raise_for_status(response)

        data = self._decode(response)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise VisionSourceError("Azure OpenAI response has no message content") from e

        return parse_vision_response(content)

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map HTTP error codes to readable errors."""
        if response.is_success:
            return

        code = response.status_code
        logger.error("azure_vision_http_error", status_code=code)

        if code == 401:
            raise VisionSourceError("Azure OpenAI API key is invalid")
        if code == 404:
            raise VisionSourceError(
                f"Azure OpenAI deployment '{self.deployment}' was not found"
            )
        if code == 429:
            raise VisionSourceError("Azure OpenAI rate limit exceeded")
        raise VisionSourceError(
            self._error_detail(response) or f"Azure OpenAI error ({code})"
        )


class GeminiVisionSource(HttpProvider, VisionSource):
    """
    Vision source backed by the Google Gemini generateContent API.

    Example:
        source = GeminiVisionSource(settings)
        analysis = await source.analyze(image_b64, "image/png")
    """

    name = "gemini"
    provider_name = "Gemini"
    error_class = VisionSourceError

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        """
        Initialize Gemini source.

        Args:
            settings: Provider credentials, model and prompt overrides.
            client: Optional shared HTTP client.
        """
        super().__init__(timeout=settings.upstream_timeout_seconds, client=client)
        self.api_key = settings.gemini_api_key
        self.model = settings.gemini_model
        self.max_tokens = settings.vision_max_tokens
        self.temperature = settings.vision_temperature
        self.system_prompt = build_system_prompt(
            settings.plate_focus_prompt,
            settings.damage_focus_prompt,
        )

    @property
    def url(self) -> str:
        """generateContent URL of the configured model."""
        return f"{self.BASE_URL}/{self.model}:generateContent"

    async def analyze(self, image_b64: str, mime_type: str = "image/jpeg") -> VisionAnalysis:
        """Call generateContent with inline image data."""
        if not self.api_key:
            raise VisionSourceError("Gemini API key is not configured")

        payload = {
            "systemInstruction": {"parts": [{"text": self.system_prompt}]},
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"inlineData": {"mimeType": mime_type, "data": image_b64}},
                        {"text": USER_INSTRUCTION},
                    ],
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }

        logger.debug("gemini_vision_request", model=self.model)

        response = await self._post_json(
            self.url,
            payload,
            headers={"x-goog-api-key": self.api_key},
        )

        if not response.is_success:
            logger.error("gemini_vision_http_error", status_code=response.status_code)
            raise VisionSourceError(
                self._error_detail(response) or f"Gemini error ({response.status_code})"
            )

        data = self._decode(response)
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise VisionSourceError("Gemini response has no candidate content") from e

        return parse_vision_response("".join(part.get("text", "") for part in parts))


class MockVisionSource(VisionSource):
    """
    Mock vision source for testing.

    Returns a configurable analysis, or raises a configured error.
    """

    name = "mock"

    def __init__(
        self,
        analysis: VisionAnalysis | Callable[[str], VisionAnalysis] | None = None,
        error: Exception | None = None,
    ):
        """
        Initialize mock source.

        Args:
            analysis: Fixed analysis, or a callable receiving the image data.
            error: Exception to raise instead of answering.
        """
        self.analysis = analysis or VisionAnalysis(
            plate_focus=RawVisionResult(status="SUCCESS", plate="12가3456", message="성공"),
            damage_focus=RawVisionResult(status="SUCCESS", plate="12가3456", message="정상 차량입니다."),
        )
        self.error = error
        self.calls = 0

    async def analyze(self, image_b64: str, mime_type: str = "image/jpeg") -> VisionAnalysis:
        """Return mock analysis."""
        self.calls += 1
        if self.error is not None:
            raise self.error
        if callable(self.analysis):
            return self.analysis(image_b64)
        return self.analysis


def get_vision_source(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
) -> VisionSource:
    """
    Factory function to get the configured vision source.

    Args:
        settings: Application settings.
        client: Optional shared HTTP client.

    Returns:
        VisionSource: Configured source instance.
    """
    provider = settings.vision_provider

    if provider == "mock":
        return MockVisionSource()
    if provider == "gemini":
        return GeminiVisionSource(settings, client=client)
    if provider == "azure":
        return AzureOpenAIVisionSource(settings, client=client)

    logger.warning("unknown_vision_provider", provider=provider, using="azure")
    return AzureOpenAIVisionSource(settings, client=client)


def describe_vision_source(source: VisionSource) -> dict[str, Any]:
    """Summary of a source for readiness checks."""
    configured = True
    if isinstance(source, AzureOpenAIVisionSource):
        configured = bool(source.api_key and source.endpoint)
    elif isinstance(source, GeminiVisionSource):
        configured = bool(source.api_key)
    return {"provider": source.name, "configured": configured}
