"""
Prompt-to-URL adapters.

An adapter turns free dialogue text into a URL the speaker might want to
visit, or None. The realtime layer only depends on PromptToUrlAdapter; which
implementation is used is decided by configuration in build_url_adapter().

Two real implementations are provided:
- GeminiUrlAdapter asks a Gemini model to summarize the interest behind the
  dialogue and then to produce a related video or Google Maps URL.
- KeywordSearchUrlAdapter asks the model for search keywords and returns the
  first hit of the Google Custom Search JSON API.
"""

import re
from abc import ABC, abstractmethod
from typing import Any

import httpx

from ..config.models import UrlGenerationConfig
from ..exceptions import AdapterFailureError, ConfigurationError
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

INTEREST_PROMPT = (
    "Based on the following dialogue:\n{dialogue}\n"
    "Please summarize what kind of website topic/real world location/video topic "
    "the user might be interested in, in one sentence."
)

URL_PROMPT = (
    "Please search on the internet. You are a URL generator. Based on the following user interest:\n{interest}\n"
    "Please generate a related video or Google Maps location URL that the user might be interested in visiting."
)

KEYWORD_PROMPT = (
    "Based on the following dialogue:\n{dialogue}\n"
    "Reply with a short web search query (at most six words) for the website, real world location "
    "or video the user might be interested in. Reply with the query only."
)

_URL_PATTERN = re.compile(r"https?://[^\s<>\"'`)\]]+")
_TRAILING_PUNCTUATION = ".,;:!?"


def extract_first_url(text: str | None) -> str | None:
    """Return the first http(s) URL in text, without trailing punctuation."""
    if not text:
        return None
    match = _URL_PATTERN.search(text)
    if match is None:
        return None
    return match.group(0).rstrip(_TRAILING_PUNCTUATION) or None


class PromptToUrlAdapter(ABC):
    """Interface of every prompt-to-URL implementation."""

    name = "abstract"

    @abstractmethod
    async def generate_url(self, prompt: str) -> str | None:
        """
        Suggest a URL for the dialogue in prompt.

        Returns:
            The URL, or None when nothing usable was produced

        Raises:
            AdapterFailureError: If the external service call failed
        """

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
        return None


class DisabledUrlAdapter(PromptToUrlAdapter):
    """Adapter used when no provider is configured; never suggests anything."""

    name = "disabled"

    async def generate_url(self, prompt: str) -> str | None:
        logger.debug("URL generation disabled, returning no URL", prompt_length=len(prompt))
        return None


class GeminiClient:
    """
    Minimal client for the Gemini ``generateContent`` REST endpoint.

    The API key travels in the ``x-goog-api-key`` header so it never shows up
    in logged URLs.
    """

    def __init__(self, config: UrlGenerationConfig, http_client: httpx.AsyncClient | None = None) -> None:
        if not config.api_key:
            raise ConfigurationError("Gemini API key is not configured", config_key="URL_GENERATION_API_KEY")
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.request_timeout)

    @property
    def endpoint(self) -> str:
        return f"{self._config.api_base.rstrip('/')}/models/{self._config.model}:generateContent"

    def _build_request_body(self, prompt: str) -> dict[str, Any]:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": self._config.max_output_tokens,
                "temperature": self._config.temperature,
                "topP": self._config.top_p,
                "topK": self._config.top_k,
            },
        }

    async def generate_text(self, prompt: str) -> str:
        """
        Run one prompt through the model and return the reply text.

        Raises:
            AdapterFailureError: On transport errors, error statuses or replies without text
        """
        try:
            response = await self._http.post(
                self.endpoint,
                json=self._build_request_body(prompt),
                headers={"x-goog-api-key": self._config.api_key or ""},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise AdapterFailureError(
                f"Gemini request failed with status {e.response.status_code}",
                adapter="gemini",
                details={"status_code": e.response.status_code, "model": self._config.model},
            ) from e
        except httpx.HTTPError as e:
            raise AdapterFailureError(
                f"Gemini request failed: {e}", adapter="gemini", details={"model": self._config.model}
            ) from e
        except ValueError as e:
            raise AdapterFailureError("Gemini returned invalid JSON", adapter="gemini") from e

        try:
            parts = payload["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise AdapterFailureError(
                "Gemini response has no candidate text",
                adapter="gemini",
                details={"finish_reason": _finish_reason(payload)},
            ) from e

        if not text.strip():
            raise AdapterFailureError("Gemini returned an empty reply", adapter="gemini")
        return text.strip()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


def _finish_reason(payload: Any) -> str | None:
    try:
        return payload["candidates"][0].get("finishReason")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


class GeminiUrlAdapter(PromptToUrlAdapter):
    """Two-step Gemini adapter: summarize the interest, then ask for a URL."""

    name = "gemini"

    def __init__(self, config: UrlGenerationConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self._client = GeminiClient(config, http_client)

    async def generate_url(self, prompt: str) -> str | None:
        interest = await self._client.generate_text(INTEREST_PROMPT.format(dialogue=prompt))
        logger.debug("Interest summarized", interest=interest)

        reply = await self._client.generate_text(URL_PROMPT.format(interest=interest))
        url = extract_first_url(reply)
        if url is None:
            logger.info("Model reply contained no URL", reply_length=len(reply))
        else:
            logger.info("Generated URL", url=url)
        return url

    async def aclose(self) -> None:
        await self._client.aclose()


class KeywordSearchUrlAdapter(PromptToUrlAdapter):
    """Keyword extraction through Gemini followed by a Custom Search lookup."""

    name = "gemini_search"

    def __init__(self, config: UrlGenerationConfig, http_client: httpx.AsyncClient | None = None) -> None:
        if not config.search_api_key or not config.search_engine_id:
            raise ConfigurationError(
                "Custom Search API key and engine id are required for the gemini_search provider",
                config_key="URL_GENERATION_SEARCH_API_KEY",
            )
        if not config.api_key:
            raise ConfigurationError("Gemini API key is not configured", config_key="URL_GENERATION_API_KEY")
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.request_timeout)
        self._client = GeminiClient(config, self._http)

    async def _search(self, query: str) -> str | None:
        try:
            response = await self._http.get(
                self._config.search_url,
                params={
                    "key": self._config.search_api_key,
                    "cx": self._config.search_engine_id,
                    "q": query,
                    "num": 1,
                },
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise AdapterFailureError(
                f"Search request failed with status {e.response.status_code}",
                adapter="gemini_search",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            # str(e) may contain the request URL and with it the search key
            raise AdapterFailureError(
                f"Search request failed: {type(e).__name__}", adapter="gemini_search"
            ) from e
        except ValueError as e:
            raise AdapterFailureError("Search returned invalid JSON", adapter="gemini_search") from e

        items = payload.get("items") if isinstance(payload, dict) else None
        if not items:
            return None
        link = items[0].get("link") if isinstance(items[0], dict) else None
        return link if isinstance(link, str) and link else None

    async def generate_url(self, prompt: str) -> str | None:
        keywords = await self._client.generate_text(KEYWORD_PROMPT.format(dialogue=prompt))
        lines = keywords.strip().strip('"').splitlines()
        query = lines[0].strip() if lines else ""
        if not query:
            logger.info("Model reply contained no search keywords")
            return None
        logger.debug("Search keywords extracted", query=query)

        url = await self._search(query)
        if url is None:
            logger.info("Search returned no results", query=query)
        else:
            logger.info("Generated URL", url=url, query=query)
        return url

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


def build_url_adapter(
    config: UrlGenerationConfig, http_client: httpx.AsyncClient | None = None
) -> PromptToUrlAdapter:
    """
    Create the adapter selected by ``config.provider``.

    Raises:
        ConfigurationError: If the provider needs credentials that are missing
    """
    if config.provider == "gemini":
        adapter: PromptToUrlAdapter = GeminiUrlAdapter(config, http_client)
    elif config.provider == "gemini_search":
        adapter = KeywordSearchUrlAdapter(config, http_client)
    else:
        adapter = DisabledUrlAdapter()

    logger.info("URL generation adapter configured", provider=adapter.name, model=config.model)
    return adapter
