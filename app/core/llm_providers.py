"""LLM provider abstraction for text generation (Gemini, OpenAI)."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.errors import ConfigurationError, ModelError
from app.core.settings import Settings

logger = logging.getLogger(__name__)

# Retry settings for rate limits
MAX_RETRIES = 3
INITIAL_DELAY = 2.0  # seconds
MAX_DELAY = 30.0  # seconds

# Per-call timeout for generation requests
DEFAULT_TIMEOUT = 60.0


@dataclass(frozen=True)
class ChatModelInfo:
    """Information about a chat/completion model."""

    model_id: str
    cost_per_1m_input: float  # USD per 1M input tokens
    cost_per_1m_output: float  # USD per 1M output tokens
    max_context: int  # Max context window tokens
    description: str


GEMINI_MODELS: dict[str, ChatModelInfo] = {
    "gemini-2.0-flash": ChatModelInfo(
        model_id="gemini-2.0-flash",
        cost_per_1m_input=0.10,
        cost_per_1m_output=0.40,
        max_context=1048576,
        description="Fast, inexpensive default for short marketing copy.",
    ),
    "gemini-2.0-flash-lite": ChatModelInfo(
        model_id="gemini-2.0-flash-lite",
        cost_per_1m_input=0.075,
        cost_per_1m_output=0.30,
        max_context=1048576,
        description="Cheapest option, fine for social captions.",
    ),
    "gemini-2.5-flash": ChatModelInfo(
        model_id="gemini-2.5-flash",
        cost_per_1m_input=0.30,
        cost_per_1m_output=2.50,
        max_context=1048576,
        description="Better writing quality at moderate cost.",
    ),
    "gemini-2.5-pro": ChatModelInfo(
        model_id="gemini-2.5-pro",
        cost_per_1m_input=1.25,
        cost_per_1m_output=10.00,
        max_context=1048576,
        description="Highest quality, slowest and most expensive.",
    ),
}

OPENAI_CHAT_MODELS: dict[str, ChatModelInfo] = {
    "gpt-4.1-nano": ChatModelInfo(
        model_id="gpt-4.1-nano",
        cost_per_1m_input=0.10,
        cost_per_1m_output=0.40,
        max_context=1047576,
        description="Fastest and cheapest GPT-4.1 model.",
    ),
    "gpt-4.1-mini": ChatModelInfo(
        model_id="gpt-4.1-mini",
        cost_per_1m_input=0.40,
        cost_per_1m_output=1.60,
        max_context=1047576,
        description="Good balance of quality and cost.",
    ),
    "gpt-4o-mini": ChatModelInfo(
        model_id="gpt-4o-mini",
        cost_per_1m_input=0.15,
        cost_per_1m_output=0.60,
        max_context=128000,
        description="Inexpensive alternative for simple tasks.",
    ),
    "gpt-4o": ChatModelInfo(
        model_id="gpt-4o",
        cost_per_1m_input=2.50,
        cost_per_1m_output=10.00,
        max_context=128000,
        description="High quality for demanding rewrites.",
    ),
}

DEFAULT_GEMINI_MODEL = "gemini-2.0-flash"
DEFAULT_OPENAI_MODEL = "gpt-4.1-mini"

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_API_BASE = "https://api.openai.com/v1"


@dataclass
class ChatResponse:
    """Response from a generation call."""

    content: str
    model: str
    tokens_input: int
    tokens_output: int
    finish_reason: str
    latency_ms: int


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(self, model_info: ChatModelInfo, api_key: str, timeout: float = DEFAULT_TIMEOUT):
        self._model_info = model_info
        self._api_key = api_key
        self._timeout = timeout

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""
        ...

    @property
    def model_id(self) -> str:
        return self._model_info.model_id

    @property
    def cost_per_1m_input(self) -> float:
        return self._model_info.cost_per_1m_input

    @property
    def cost_per_1m_output(self) -> float:
        return self._model_info.cost_per_1m_output

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content' keys.
            temperature: Sampling temperature.
            max_tokens: Max tokens to generate (None = model default).

        Returns:
            ChatResponse with content and usage info.

        Raises:
            ModelError: If the API call fails.
        """
        ...

    async def generate(
        self,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Generate text from a prompt sent as a single user turn."""
        return await self.chat(
            [{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def estimate_cost(self, tokens_input: int, tokens_output: int) -> float:
        """Estimate cost in USD for given token counts."""
        input_cost = (tokens_input / 1_000_000) * self.cost_per_1m_input
        output_cost = (tokens_output / 1_000_000) * self.cost_per_1m_output
        return input_cost + output_cost

    def _status_error(self, response: httpx.Response) -> ModelError:
        """Map a non-retried error status to a ModelError."""
        if response.status_code in (401, 403):
            return ModelError(f"{self.name} API key is invalid or lacks access.", provider=self.name)
        if response.status_code == 404:
            return ModelError(f"Model '{self.model_id}' is not available.", provider=self.name)
        return ModelError(
            f"{self.name} API error: {response.status_code} - {response.text}",
            provider=self.name,
        )

    def _is_quota_exhausted(self, response: httpx.Response) -> bool:
        return "quota" in response.text.lower()

    async def _post_json(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
    ) -> tuple[dict[str, Any], int]:
        """POST with backoff on rate limits.

        Returns:
            Parsed JSON body and latency in milliseconds.
        """
        async with httpx.AsyncClient(timeout=httpx.Timeout(self._timeout)) as client:
            delay = INITIAL_DELAY

            for attempt in range(MAX_RETRIES):
                start_time = time.monotonic()
                try:
                    response = await client.post(url, headers=headers, json=body)
                except httpx.TimeoutException as e:
                    raise ModelError(
                        f"{self.name} request timed out after {self._timeout:g}s.",
                        provider=self.name,
                        retriable=True,
                    ) from e
                except httpx.TransportError as e:
                    raise ModelError(
                        f"{self.name} connection error: {e}",
                        provider=self.name,
                        retriable=True,
                    ) from e

                if response.is_success:
                    latency_ms = int((time.monotonic() - start_time) * 1000)
                    try:
                        data = response.json()
                    except ValueError as e:
                        raise ModelError(
                            f"{self.name} returned an unreadable response.",
                            provider=self.name,
                        ) from e
                    if not isinstance(data, dict):
                        raise ModelError(
                            f"{self.name} returned an unreadable response.",
                            provider=self.name,
                        )
                    return data, latency_ms

                if response.status_code != 429:
                    raise self._status_error(response)

                if self._is_quota_exhausted(response):
                    raise ModelError(
                        f"{self.name} quota exhausted. Check the billing settings of your API key.",
                        provider=self.name,
                    )

                logger.warning(
                    f"Rate limit hit, attempt {attempt + 1}/{MAX_RETRIES}. "
                    f"Waiting {delay:.1f}s..."
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, MAX_DELAY)

        raise ModelError(
            f"{self.name} rate limit not cleared after {MAX_RETRIES} attempts.",
            provider=self.name,
            retriable=True,
        )


class GeminiProvider(LLMProvider):
    """Google Gemini provider using the generateContent REST API."""

    @property
    def name(self) -> str:
        return "Gemini"

    def _is_quota_exhausted(self, response: httpx.Response) -> bool:
        # Gemini reports both rate limits and quota as RESOURCE_EXHAUSTED
        return "exceeded your current quota" in response.text.lower()

    def _status_error(self, response: httpx.Response) -> ModelError:
        if response.status_code == 400 and "API_KEY_INVALID" in response.text:
            return ModelError("Gemini API key is invalid.", provider=self.name)
        return super()._status_error(response)

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Send a generateContent request."""
        contents = []
        system_parts = []
        for message in messages:
            if message["role"] == "system":
                system_parts.append({"text": message["content"]})
                continue
            role = "model" if message["role"] == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": message["content"]}]})

        generation_config: dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            generation_config["maxOutputTokens"] = max_tokens

        request_body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_parts:
            request_body["systemInstruction"] = {"parts": system_parts}

        data, latency_ms = await self._post_json(
            f"{GEMINI_API_BASE}/models/{self.model_id}:generateContent",
            headers={
                "x-goog-api-key": self._api_key,
                "Content-Type": "application/json",
            },
            body=request_body,
        )

        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason", "unknown")
            logger.warning(f"Gemini returned no candidates (block reason: {block_reason})")
            content = ""
            finish_reason = f"blocked:{block_reason}"
        else:
            candidate = candidates[0]
            parts = (candidate.get("content") or {}).get("parts") or []
            content = "".join(part.get("text", "") for part in parts)
            finish_reason = candidate.get("finishReason", "")

        usage = data.get("usageMetadata") or {}
        return ChatResponse(
            content=content,
            model=data.get("modelVersion", self.model_id),
            tokens_input=usage.get("promptTokenCount", 0),
            tokens_output=usage.get("candidatesTokenCount", 0),
            finish_reason=finish_reason,
            latency_ms=latency_ms,
        )


class OpenAIChatProvider(LLMProvider):
    """OpenAI Chat/Completion provider using the API."""

    @property
    def name(self) -> str:
        return "OpenAI"

    async def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> ChatResponse:
        """Send a chat completion request."""
        request_body: dict[str, Any] = {
            "model": self.model_id,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            request_body["max_tokens"] = max_tokens

        data, latency_ms = await self._post_json(
            f"{OPENAI_API_BASE}/chat/completions",
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            body=request_body,
        )

        try:
            choice = data["choices"][0]
            content = choice["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise ModelError("OpenAI response had no completion choices.", provider=self.name) from e

        usage = data.get("usage") or {}
        return ChatResponse(
            content=content,
            model=data.get("model", self.model_id),
            tokens_input=usage.get("prompt_tokens", 0),
            tokens_output=usage.get("completion_tokens", 0),
            finish_reason=choice.get("finish_reason", ""),
            latency_ms=latency_ms,
        )


@dataclass(frozen=True)
class ProviderEntry:
    """Registry entry tying a provider to its models and credentials."""

    label: str
    provider_cls: type[LLMProvider]
    models: dict[str, ChatModelInfo]
    default_model: str
    key_attr: str
    key_env: str


PROVIDERS: dict[str, ProviderEntry] = {
    "gemini": ProviderEntry(
        label="Gemini",
        provider_cls=GeminiProvider,
        models=GEMINI_MODELS,
        default_model=DEFAULT_GEMINI_MODEL,
        key_attr="gemini_api_key",
        key_env="GEMINI_API_KEY",
    ),
    "openai": ProviderEntry(
        label="OpenAI",
        provider_cls=OpenAIChatProvider,
        models=OPENAI_CHAT_MODELS,
        default_model=DEFAULT_OPENAI_MODEL,
        key_attr="openai_api_key",
        key_env="OPENAI_API_KEY",
    ),
}


def get_chat_provider(settings: Settings | None = None) -> LLMProvider:
    """Factory function to get the configured LLM provider.

    Provider comes from LLM_PROVIDER, model from LLM_MODEL (else the
    provider default). Models missing from the price table are accepted
    with zero cost.

    Raises:
        ConfigurationError: If the provider is unknown or the API key is
            missing.
    """
    settings = settings or Settings.from_env()

    if settings.llm_provider not in PROVIDERS:
        raise ConfigurationError(
            f"Unknown LLM provider: {settings.llm_provider}. Available: {', '.join(PROVIDERS)}"
        )
    entry = PROVIDERS[settings.llm_provider]

    model = settings.llm_model or entry.default_model
    model_info = entry.models.get(model)
    if model_info is None:
        # Unlisted models still work, they just can't be priced
        logger.warning(f"Unknown {settings.llm_provider} model {model}, cost estimates will be zero")
        model_info = ChatModelInfo(
            model_id=model,
            cost_per_1m_input=0.0,
            cost_per_1m_output=0.0,
            max_context=0,
            description="Unlisted model",
        )

    api_key = getattr(settings, entry.key_attr)
    if not api_key:
        raise ConfigurationError(
            f"{entry.label} API key is missing. Add {entry.key_env} to your environment."
        )

    return entry.provider_cls(model_info=model_info, api_key=api_key, timeout=settings.llm_timeout)
