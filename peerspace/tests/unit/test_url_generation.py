"""
Tests for the prompt-to-URL adapters.

HTTP traffic is served by httpx.MockTransport, so no request leaves the
process.
"""

import json
from unittest.mock import patch

import httpx
import pytest

from peerspace.config.models import UrlGenerationConfig
from peerspace.exceptions import AdapterFailureError, ConfigurationError
from peerspace.services.url_generation import (
    DisabledUrlAdapter,
    GeminiClient,
    GeminiUrlAdapter,
    KeywordSearchUrlAdapter,
    build_url_adapter,
    extract_first_url,
)


def _gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}, "finishReason": "STOP"}]}


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def gemini_config() -> UrlGenerationConfig:
    return UrlGenerationConfig(provider="gemini", api_key="test-key", model="gemini-test")


@pytest.fixture
def search_config() -> UrlGenerationConfig:
    return UrlGenerationConfig(
        provider="gemini_search",
        api_key="test-key",
        model="gemini-test",
        search_api_key="search-key",
        search_engine_id="engine-id",
    )


@pytest.fixture
def no_api_key_env(monkeypatch):
    for name in ("URL_GENERATION_API_KEY", "GEMINI_API_KEY", "API_KEY"):
        monkeypatch.delenv(name, raising=False)


class TestExtractFirstUrl:
    """URL extraction from model replies."""

    def test_plain_url(self):
        assert extract_first_url("https://www.youtube.com/watch?v=abc") == "https://www.youtube.com/watch?v=abc"

    def test_url_inside_prose(self):
        reply = "You might enjoy this tour: https://maps.google.com/?q=Eiffel+Tower. Have fun!"

        assert extract_first_url(reply) == "https://maps.google.com/?q=Eiffel+Tower"

    def test_markdown_link(self):
        assert extract_first_url("[video](https://example.com/v)") == "https://example.com/v"

    def test_first_of_several(self):
        assert extract_first_url("http://a.example/x then https://b.example/y") == "http://a.example/x"

    @pytest.mark.parametrize("text", [None, "", "No link for you", "ftp://files.example/x"])
    def test_no_url(self, text):
        assert extract_first_url(text) is None


class TestGeminiClient:
    """Single generateContent calls."""

    @pytest.mark.asyncio
    async def test_request_shape(self, gemini_config):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_gemini_reply("hello"))

        async with _client(handler) as http_client:
            client = GeminiClient(gemini_config, http_client)
            text = await client.generate_text("prompt text")

        assert text == "hello"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path.endswith("/models/gemini-test:generateContent")
        assert request.headers["x-goog-api-key"] == "test-key"
        assert "test-key" not in str(request.url)
        body = json.loads(request.content)
        assert body["contents"][0]["parts"][0]["text"] == "prompt text"
        assert body["generationConfig"] == {"maxOutputTokens": 200, "temperature": 0.95, "topP": 0.1, "topK": 16}

    @pytest.mark.asyncio
    async def test_joins_multiple_parts(self, gemini_config):
        reply = {"candidates": [{"content": {"parts": [{"text": "a "}, {"text": "b"}]}}]}

        async with _client(lambda request: httpx.Response(200, json=reply)) as http_client:
            text = await GeminiClient(gemini_config, http_client).generate_text("p")

        assert text == "a b"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(429, json={"error": {"message": "quota"}}),
            httpx.Response(500, text="oops"),
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"candidates": []}),
            httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}),
            httpx.Response(200, json=_gemini_reply("   ")),
        ],
    )
    async def test_failures_raise_adapter_failure(self, gemini_config, response):
        async with _client(lambda request: response) as http_client:
            client = GeminiClient(gemini_config, http_client)
            with pytest.raises(AdapterFailureError) as exc_info:
                await client.generate_text("p")

        assert exc_info.value.details["adapter"] == "gemini"

    @pytest.mark.asyncio
    async def test_transport_error_raises_adapter_failure(self, gemini_config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as http_client:
            with pytest.raises(AdapterFailureError):
                await GeminiClient(gemini_config, http_client).generate_text("p")

    def test_missing_api_key(self, no_api_key_env):
        with pytest.raises(ConfigurationError):
            GeminiClient(UrlGenerationConfig(provider="gemini"))

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, gemini_config):
        http_client = _client(lambda request: httpx.Response(200, json=_gemini_reply("x")))
        client = GeminiClient(gemini_config, http_client)

        await client.aclose()

        assert not http_client.is_closed
        await http_client.aclose()


class TestGeminiUrlAdapter:
    """Two-step interest then URL generation."""

    @pytest.mark.asyncio
    async def test_two_step_generation(self, gemini_config):
        prompts: list[str] = []
        replies = iter(
            [
                "The user is interested in Paris landmarks.",
                "Sure! Here is a video: https://www.youtube.com/watch?v=paris123.",
            ]
        )

        def handler(request: httpx.Request) -> httpx.Response:
            prompts.append(json.loads(request.content)["contents"][0]["parts"][0]["text"])
            return httpx.Response(200, json=_gemini_reply(next(replies)))

        async with _client(handler) as http_client:
            adapter = GeminiUrlAdapter(gemini_config, http_client)
            url = await adapter.generate_url("Let's go to Paris")

        assert url == "https://www.youtube.com/watch?v=paris123"
        assert len(prompts) == 2
        assert "Let's go to Paris" in prompts[0]
        assert "The user is interested in Paris landmarks." in prompts[1]

    @pytest.mark.asyncio
    async def test_reply_without_url(self, gemini_config):
        async with _client(lambda request: httpx.Response(200, json=_gemini_reply("No idea."))) as http_client:
            url = await GeminiUrlAdapter(gemini_config, http_client).generate_url("hmm")

        assert url is None

    @pytest.mark.asyncio
    async def test_failure_propagates(self, gemini_config):
        async with _client(lambda request: httpx.Response(503)) as http_client:
            with pytest.raises(AdapterFailureError):
                await GeminiUrlAdapter(gemini_config, http_client).generate_url("hmm")


class TestKeywordSearchUrlAdapter:
    """Keyword extraction followed by a search lookup."""

    @pytest.mark.asyncio
    async def test_returns_first_search_hit(self, search_config):
        searches: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json=_gemini_reply('"eiffel tower tour"\n'))
            searches.append(request)
            return httpx.Response(200, json={"items": [{"link": "https://www.toureiffel.paris/"}, {"link": "x"}]})

        async with _client(handler) as http_client:
            url = await KeywordSearchUrlAdapter(search_config, http_client).generate_url("Let's go to Paris")

        assert url == "https://www.toureiffel.paris/"
        params = searches[0].url.params
        assert params["q"] == "eiffel tower tour"
        assert params["cx"] == "engine-id"
        assert params["key"] == "search-key"
        assert params["num"] == "1"

    @pytest.mark.asyncio
    async def test_no_results(self, search_config):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json=_gemini_reply("obscure thing"))
            return httpx.Response(200, json={"searchInformation": {"totalResults": "0"}})

        async with _client(handler) as http_client:
            assert await KeywordSearchUrlAdapter(search_config, http_client).generate_url("?") is None

    @pytest.mark.asyncio
    async def test_search_error_raises_adapter_failure(self, search_config):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(200, json=_gemini_reply("paris"))
            return httpx.Response(403, json={"error": {"message": "forbidden"}})

        async with _client(handler) as http_client:
            with pytest.raises(AdapterFailureError) as exc_info:
                await KeywordSearchUrlAdapter(search_config, http_client).generate_url("Paris")

        assert exc_info.value.details["adapter"] == "gemini_search"

    def test_requires_search_credentials(self, gemini_config):
        with pytest.raises(ConfigurationError):
            KeywordSearchUrlAdapter(gemini_config)


class TestBuildUrlAdapter:
    """Provider selection."""

    @pytest.mark.asyncio
    async def test_disabled_provider(self):
        adapter = build_url_adapter(UrlGenerationConfig(provider="disabled"))

        assert isinstance(adapter, DisabledUrlAdapter)
        assert await adapter.generate_url("anything") is None
        await adapter.aclose()

    @pytest.mark.asyncio
    async def test_gemini_provider(self, gemini_config):
        adapter = build_url_adapter(gemini_config)

        assert isinstance(adapter, GeminiUrlAdapter)
        await adapter.aclose()

    @pytest.mark.asyncio
    async def test_search_provider(self, search_config):
        adapter = build_url_adapter(search_config)

        assert isinstance(adapter, KeywordSearchUrlAdapter)
        await adapter.aclose()

    def test_gemini_without_key_is_configuration_error(self, no_api_key_env):
        with pytest.raises(ConfigurationError):
            build_url_adapter(UrlGenerationConfig(provider="gemini"))


def test_keyword_search_without_api_key_creates_no_client(no_api_key_env):
    config = UrlGenerationConfig(
        provider="gemini_search", search_api_key="search-key", search_engine_id="engine-id"
    )

    with patch("peerspace.services.url_generation.httpx.AsyncClient") as client_class:
        with pytest.raises(ConfigurationError) as exc_info:
            KeywordSearchUrlAdapter(config)

    client_class.assert_not_called()
    assert exc_info.value.details["config_key"] == "URL_GENERATION_API_KEY"
