"""
Integration tests for upstream provider clients.

HTTP traffic is served by httpx.MockTransport, so request shape and
error mapping are checked without network access.
"""

import json

import httpx
import pytest

from app.core.config import Settings
from app.domain.models import VisionAnalysis
from app.infrastructure.providers import (
    AzureOpenAIVisionSource,
    GeminiVisionSource,
    MockOcrSource,
    MockVisionSource,
    NaverClovaOcrSource,
    OcrSourceError,
    VisionSourceError,
    describe_vision_source,
    get_ocr_source,
    get_vision_source,
    parse_vision_response,
)

ANSWER = {
    "analysisA": {"status": "SUCCESS", "plate": "12가3456", "message": "성공"},
    "analysisB": {"status": "ISSUE", "plate": "12가 3456", "message": "차량 파손 여부가 확인됩니다."},
}


def _settings(**overrides) -> Settings:
    values = {
        "secret_key": "x" * 32,
        "azure_openai_endpoint": "https://plates.openai.azure.com/",
        "azure_openai_api_key": "azure-key-0123456789",
        "azure_openai_deployment": "gpt-4o",
        "gemini_api_key": "gemini-key",
    }
    values.update(overrides)
    return Settings(**values)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _azure_reply(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestParseVisionResponse:
    """Tests for parse_vision_response."""

    def test_both_halves(self):
        analysis = parse_vision_response(json.dumps(ANSWER))

        assert analysis.plate_focus.status == "SUCCESS"
        assert analysis.damage_focus.plate == "12가 3456"

    def test_code_fence_stripped(self):
        analysis = parse_vision_response(f"```json\n{json.dumps(ANSWER)}\n```")
        assert analysis.plate_focus.plate == "12가3456"

    def test_malformed_half_becomes_none(self):
        analysis = parse_vision_response(json.dumps({"analysisA": ANSWER["analysisA"], "analysisB": "oops"}))

        assert analysis.plate_focus is not None
        assert analysis.damage_focus is None

    def test_invalid_json(self):
        with pytest.raises(VisionSourceError, match="invalid JSON"):
            parse_vision_response("I cannot help with that")

    def test_non_object(self):
        with pytest.raises(VisionSourceError):
            parse_vision_response("[1, 2]")


class TestAzureOpenAIVisionSource:
    """Tests for the Azure OpenAI client."""

    @pytest.mark.asyncio
    async def test_request_shape_and_parse(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json=_azure_reply(json.dumps(ANSWER)))

        async with _client(handler) as client:
            source = AzureOpenAIVisionSource(_settings(), client=client)
            analysis = await source.analyze("aW1hZ2U=", "image/png")

        request = seen["request"]
        assert request.url.path == "/openai/deployments/gpt-4o/chat/completions"
        assert request.url.params["api-version"] == "2025-01-01-preview"
        assert request.headers["api-key"] == "azure-key-0123456789"

        body = json.loads(request.content)
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0]["role"] == "system"
        image_part = body["messages"][1]["content"][1]
        assert image_part["image_url"]["url"] == "data:image/png;base64,aW1hZ2U="

        assert isinstance(analysis, VisionAnalysis)
        assert analysis.damage_focus.status == "ISSUE"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,message",
        [
            (401, "API key is invalid"),
            (404, "deployment 'gpt-4o' was not found"),
            (429, "rate limit exceeded"),
        ],
    )
    async def test_http_errors(self, status_code, message):
        async with _client(lambda request: httpx.Response(status_code, json={})) as client:
            source = AzureOpenAIVisionSource(_settings(), client=client)
            with pytest.raises(VisionSourceError, match=message):
                await source.analyze("aW1hZ2U=")

    @pytest.mark.asyncio
    async def test_server_error_detail(self):
        reply = {"error": {"message": "content filtered"}}
        async with _client(lambda request: httpx.Response(400, json=reply)) as client:
            source = AzureOpenAIVisionSource(_settings(), client=client)
            with pytest.raises(VisionSourceError, match="content filtered"):
                await source.analyze("aW1hZ2U=")

    @pytest.mark.asyncio
    async def test_missing_key_makes_no_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with _client(handler) as client:
            source = AzureOpenAIVisionSource(_settings(azure_openai_api_key="short"), client=client)
            with pytest.raises(VisionSourceError, match="not configured"):
                await source.analyze("aW1hZ2U=")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler) as client:
            source = AzureOpenAIVisionSource(_settings(), client=client)
            with pytest.raises(VisionSourceError, match="timed out"):
                await source.analyze("aW1hZ2U=")

    @pytest.mark.asyncio
    async def test_missing_content(self):
        async with _client(lambda request: httpx.Response(200, json={"choices": []})) as client:
            source = AzureOpenAIVisionSource(_settings(), client=client)
            with pytest.raises(VisionSourceError, match="no message content"):
                await source.analyze("aW1hZ2U=")


class TestGeminiVisionSource:
    """Tests for the Gemini client."""

    @pytest.mark.asyncio
    async def test_request_shape_and_parse(self):
        seen = {}
        text = json.dumps(ANSWER)

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            parts = [{"text": text[:20]}, {"text": text[20:]}]
            return httpx.Response(200, json={"candidates": [{"content": {"parts": parts}}]})

        async with _client(handler) as client:
            source = GeminiVisionSource(_settings(), client=client)
            analysis = await source.analyze("aW1hZ2U=")

        request = seen["request"]
        assert request.url.path.endswith("/gemini-2.0-flash:generateContent")
        assert request.headers["x-goog-api-key"] == "gemini-key"
        body = json.loads(request.content)
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert body["contents"][0]["parts"][0]["inlineData"]["data"] == "aW1hZ2U="

        assert analysis.plate_focus.plate == "12가3456"

    @pytest.mark.asyncio
    async def test_http_error(self):
        reply = {"error": {"message": "API key not valid"}}
        async with _client(lambda request: httpx.Response(400, json=reply)) as client:
            source = GeminiVisionSource(_settings(), client=client)
            with pytest.raises(VisionSourceError, match="API key not valid"):
                await source.analyze("aW1hZ2U=")


class TestNaverClovaOcrSource:
    """Tests for the Clova OCR client."""

    @pytest.mark.asyncio
    async def test_request_shape_and_joined_text(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            fields = [{"inferText": "서울"}, {"inferText": "12가"}, {"inferText": "3456"}]
            return httpx.Response(200, json={"images": [{"fields": fields}]})

        async with _client(handler) as client:
            source = NaverClovaOcrSource(
                invoke_url="https://ocr.example.com/general",
                secret="clova-secret",
                proxy_url="https://proxy.example.com/",
                client=client,
            )
            text = await source.recognize("aW1hZ2U=", "image/png")

        request = seen["request"]
        assert request.url.host == "proxy.example.com"
        assert request.url.path.endswith("ocr.example.com/general")
        assert request.headers["X-OCR-SECRET"] == "clova-secret"
        body = json.loads(request.content)
        assert body["version"] == "V2"
        assert body["images"][0]["format"] == "png"
        assert body["requestId"].startswith("batch-")

        assert text == "서울 12가 3456"

    @pytest.mark.asyncio
    async def test_http_error(self):
        async with _client(lambda request: httpx.Response(500, text="down")) as client:
            source = NaverClovaOcrSource("https://ocr.example.com/general", "secret", client=client)
            with pytest.raises(OcrSourceError, match=r"\(500\)"):
                await source.recognize("aW1hZ2U=")

    def test_url_without_proxy(self):
        source = NaverClovaOcrSource("https://ocr.example.com/general", "secret")
        assert source.url == "https://ocr.example.com/general"

    def test_join_fields_tolerates_missing_data(self):
        assert NaverClovaOcrSource.join_fields({}) == ""
        assert NaverClovaOcrSource.join_fields({"images": [{"fields": [{"inferText": ""}]}]}) == ""

    @pytest.mark.parametrize(
        "data",
        [
            {"images": {"fields": []}},
            {"images": [{"fields": {"inferText": "12가3456"}}]},
            {"images": "none"},
            [],
        ],
    )
    def test_join_fields_unexpected_shapes(self, data):
        assert NaverClovaOcrSource.join_fields(data) == ""

    @pytest.mark.asyncio
    async def test_object_images_yield_empty_text(self):
        reply = {"images": {"fields": [{"inferText": "12가3456"}]}}
        async with _client(lambda request: httpx.Response(200, json=reply)) as client:
            source = NaverClovaOcrSource("https://ocr.example.com/general", "secret", client=client)
            assert await source.recognize("aW1hZ2U=") == ""


class TestFactories:
    """Tests for provider factory functions."""

    def test_vision_factory(self):
        assert isinstance(get_vision_source(_settings(vision_provider="mock")), MockVisionSource)
        assert isinstance(get_vision_source(_settings(vision_provider="gemini")), GeminiVisionSource)
        assert isinstance(get_vision_source(_settings(vision_provider="azure")), AzureOpenAIVisionSource)

    def test_describe_unconfigured_azure(self):
        source = get_vision_source(_settings(vision_provider="azure", azure_openai_api_key=""))
        assert describe_vision_source(source) == {"provider": "azure", "configured": False}

    def test_ocr_factory(self):
        assert get_ocr_source(_settings(ocr_provider="none")) is None
        assert isinstance(get_ocr_source(_settings(ocr_provider="mock")), MockOcrSource)

    def test_ocr_factory_without_credentials(self):
        assert get_ocr_source(_settings(ocr_provider="naver", naver_ocr_url="", naver_ocr_secret="")) is None

    def test_ocr_factory_naver(self):
        source = get_ocr_source(
            _settings(
                ocr_provider="naver",
                naver_ocr_url="https://ocr.example.com/general",
                naver_ocr_secret="secret",
                ocr_proxy_url="",
            )
        )
        assert isinstance(source, NaverClovaOcrSource)
