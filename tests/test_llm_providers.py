"""Tests for llm_providers.py"""

from dataclasses import replace
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.core.errors import ConfigurationError, ModelError
from app.core.llm_providers import (
    DEFAULT_GEMINI_MODEL,
    GEMINI_API_BASE,
    GEMINI_MODELS,
    MAX_RETRIES,
    OPENAI_API_BASE,
    OPENAI_CHAT_MODELS,
    GeminiProvider,
    OpenAIChatProvider,
    get_chat_provider,
)
from app.core.settings import Settings

GEMINI_URL = f"{GEMINI_API_BASE}/models/{DEFAULT_GEMINI_MODEL}:generateContent"
OPENAI_URL = f"{OPENAI_API_BASE}/chat/completions"

GEMINI_OK = {
    "candidates": [
        {
            "content": {"role": "model", "parts": [{"text": "<p>Hello "}, {"text": "world</p>"}]},
            "finishReason": "STOP",
        }
    ],
    "usageMetadata": {"promptTokenCount": 120, "candidatesTokenCount": 30},
    "modelVersion": "gemini-2.0-flash-001",
}


def make_settings(**overrides) -> Settings:
    base = Settings(
        app_env="test",
        log_level="INFO",
        llm_provider="gemini",
        llm_model=None,
        gemini_api_key="gemini-key",
        openai_api_key="",
        llm_timeout=10.0,
        fetch_timeout=5.0,
        supabase_url="",
        supabase_service_role_key="",
        db_path="",
    )
    return replace(base, **overrides)


@pytest.fixture
def gemini():
    return GeminiProvider(GEMINI_MODELS[DEFAULT_GEMINI_MODEL], api_key="gemini-key")


@pytest.fixture
def openai():
    return OpenAIChatProvider(OPENAI_CHAT_MODELS["gpt-4.1-mini"], api_key="openai-key")


class TestGetChatProvider:
    def test_default_is_gemini(self):
        provider = get_chat_provider(make_settings())
        assert isinstance(provider, GeminiProvider)
        assert provider.model_id == DEFAULT_GEMINI_MODEL

    def test_openai_with_model(self):
        provider = get_chat_provider(
            make_settings(llm_provider="openai", llm_model="gpt-4o-mini", openai_api_key="k")
        )
        assert isinstance(provider, OpenAIChatProvider)
        assert provider.model_id == "gpt-4o-mini"

    def test_missing_key(self):
        with pytest.raises(ConfigurationError) as exc_info:
            get_chat_provider(make_settings(gemini_api_key=""))
        assert "GEMINI_API_KEY" in exc_info.value.message
        assert exc_info.value.status_code == 500

    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError, match="Unknown LLM provider"):
            get_chat_provider(make_settings(llm_provider="llama"))

    def test_unlisted_model_accepted_without_pricing(self):
        provider = get_chat_provider(make_settings(llm_model="gemini-1.5-pro"))

        assert isinstance(provider, GeminiProvider)
        assert provider.model_id == "gemini-1.5-pro"
        assert provider.estimate_cost(1_000_000, 1_000_000) == 0.0


class TestSettingsModel:
    def test_provider_model_env_used_without_llm_model(self, monkeypatch):
        monkeypatch.delenv("LLM_MODEL", raising=False)
        monkeypatch.delenv("LLM_PROVIDER", raising=False)
        monkeypatch.setenv("GEMINI_MODEL", "gemini-1.5-pro")

        assert Settings.from_env().llm_model == "gemini-1.5-pro"

    def test_llm_model_wins(self, monkeypatch):
        monkeypatch.setenv("LLM_MODEL", "gemini-2.5-pro")
        monkeypatch.setenv("GEMINI_MODEL", "gemini-1.5-pro")
        monkeypatch.delenv("LLM_PROVIDER", raising=False)

        assert Settings.from_env().llm_model == "gemini-2.5-pro"


class TestEstimateCost:
    def test_estimate(self, gemini):
        # 1M in at 0.10 + 1M out at 0.40
        assert gemini.estimate_cost(1_000_000, 1_000_000) == pytest.approx(0.50)


@pytest.mark.asyncio
class TestGeminiProvider:
    async def test_generate_parses_response(self, gemini):
        mock_post = AsyncMock(return_value=httpx.Response(200, json=GEMINI_OK))
        with patch("httpx.AsyncClient.post", mock_post):
            response = await gemini.generate("Write a newsletter", temperature=0.7, max_tokens=1200)

        assert response.content == "<p>Hello world</p>"
        assert response.model == "gemini-2.0-flash-001"
        assert response.tokens_input == 120
        assert response.tokens_output == 30
        assert response.finish_reason == "STOP"

        assert mock_post.call_args.args[0] == GEMINI_URL
        assert mock_post.call_args.kwargs["headers"]["x-goog-api-key"] == "gemini-key"
        body = mock_post.call_args.kwargs["json"]
        assert body["contents"] == [{"role": "user", "parts": [{"text": "Write a newsletter"}]}]
        assert body["generationConfig"] == {"temperature": 0.7, "maxOutputTokens": 1200}

    async def test_system_message_becomes_instruction(self, gemini):
        mock_post = AsyncMock(return_value=httpx.Response(200, json=GEMINI_OK))
        with patch("httpx.AsyncClient.post", mock_post):
            await gemini.chat(
                [
                    {"role": "system", "content": "Be brief."},
                    {"role": "user", "content": "Hi"},
                ]
            )

        body = mock_post.call_args.kwargs["json"]
        assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert len(body["contents"]) == 1

    async def test_blocked_prompt_returns_empty_content(self, gemini):
        blocked = {"promptFeedback": {"blockReason": "SAFETY"}}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=httpx.Response(200, json=blocked))):
            response = await gemini.generate("x")

        assert response.content == ""
        assert response.finish_reason == "blocked:SAFETY"

    async def test_invalid_key(self, gemini):
        error_body = {"error": {"code": 400, "status": "INVALID_ARGUMENT", "details": [{"reason": "API_KEY_INVALID"}]}}
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=httpx.Response(400, json=error_body))):
            with pytest.raises(ModelError) as exc_info:
                await gemini.generate("x")

        assert exc_info.value.message == "Gemini API key is invalid."
        assert exc_info.value.provider == "Gemini"
        assert exc_info.value.status_code == 502

    async def test_rate_limit_retried(self, gemini):
        mock_post = AsyncMock(
            side_effect=[
                httpx.Response(429, json={"error": {"status": "RESOURCE_EXHAUSTED"}}),
                httpx.Response(200, json=GEMINI_OK),
            ]
        )
        with patch("httpx.AsyncClient.post", mock_post):
            with patch("app.core.llm_providers.asyncio.sleep", new_callable=AsyncMock) as sleep:
                response = await gemini.generate("x")

        assert response.content == "<p>Hello world</p>"
        assert mock_post.await_count == 2
        sleep.assert_awaited_once()

    async def test_rate_limit_exhausted(self, gemini):
        mock_post = AsyncMock(return_value=httpx.Response(429, text="slow down"))
        with patch("httpx.AsyncClient.post", mock_post):
            with patch("app.core.llm_providers.asyncio.sleep", new_callable=AsyncMock):
                with pytest.raises(ModelError) as exc_info:
                    await gemini.generate("x")

        assert mock_post.await_count == MAX_RETRIES
        assert exc_info.value.retriable is True

    async def test_quota_exhausted_not_retried(self, gemini):
        body = {"error": {"message": "You exceeded your current quota, please check your plan."}}
        mock_post = AsyncMock(return_value=httpx.Response(429, json=body))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ModelError, match="quota exhausted"):
                await gemini.generate("x")

        assert mock_post.await_count == 1

    async def test_timeout(self, gemini):
        with patch("httpx.AsyncClient.post", AsyncMock(side_effect=httpx.ReadTimeout("slow"))):
            with pytest.raises(ModelError) as exc_info:
                await gemini.generate("x")

        assert "timed out" in exc_info.value.message
        assert exc_info.value.retriable is True

    async def test_non_json_body_raises_model_error(self, gemini):
        html = httpx.Response(200, text="<html>Bad gateway page</html>")
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=html)):
            with pytest.raises(ModelError) as exc_info:
                await gemini.generate("x")

        assert exc_info.value.message == "Gemini returned an unreadable response."
        assert exc_info.value.status_code == 502


@pytest.mark.asyncio
class TestOpenAIChatProvider:
    async def test_generate_parses_response(self, openai):
        payload = {
            "model": "gpt-4.1-mini-2025-04-14",
            "choices": [{"message": {"role": "assistant", "content": "<p>Hi</p>"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 50, "completion_tokens": 5},
        }
        mock_post = AsyncMock(return_value=httpx.Response(200, json=payload))
        with patch("httpx.AsyncClient.post", mock_post):
            response = await openai.generate("Write an email", temperature=0.8, max_tokens=1000)

        assert response.content == "<p>Hi</p>"
        assert response.tokens_input == 50
        assert response.tokens_output == 5
        assert response.finish_reason == "stop"

        assert mock_post.call_args.args[0] == OPENAI_URL
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer openai-key"
        body = mock_post.call_args.kwargs["json"]
        assert body["model"] == "gpt-4.1-mini"
        assert body["max_tokens"] == 1000
        assert body["messages"] == [{"role": "user", "content": "Write an email"}]

    async def test_unauthorized(self, openai):
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=httpx.Response(401, json={"error": {}}))):
            with pytest.raises(ModelError, match="invalid or lacks access"):
                await openai.generate("x")

    async def test_server_error_includes_status(self, openai):
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=httpx.Response(500, text="boom"))):
            with pytest.raises(ModelError) as exc_info:
                await openai.generate("x")

        assert "500" in exc_info.value.message
        assert exc_info.value.retriable is False

    async def test_missing_choices_raises_model_error(self, openai):
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=httpx.Response(200, json={}))):
            with pytest.raises(ModelError, match="no completion choices"):
                await openai.generate("x")

    async def test_empty_choices_raises_model_error(self, openai):
        with patch("httpx.AsyncClient.post", AsyncMock(return_value=httpx.Response(200, json={"choices": []}))):
            with pytest.raises(ModelError, match="no completion choices"):
                await openai.generate("x")
