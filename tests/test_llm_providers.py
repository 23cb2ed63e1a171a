import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import httpx
import pytest

from convopilot.config import Settings
from convopilot.services.history_service import ChatTurn
from convopilot.services.llm import (
    GeminiProvider,
    LLMError,
    OpenAIProvider,
    build_system_instructions,
    get_llm_provider,
)
from convopilot.services.llm.instructions import DATETIME_PLACEHOLDER

HISTORY = [
    ChatTurn(role="user", text="שלום"),
    ChatTurn(role="assistant", text="היי! במה אפשר לעזור?"),
]


def _mock_client(mock_client_class, status_code=200, payload=None, text=""):
    mock_client = MagicMock()
    mock_client_class.return_value.__aenter__.return_value = mock_client

    mock_response = Mock()
    mock_response.status_code = status_code
    mock_response.json.return_value = payload or {}
    mock_response.text = text
    mock_client.post = AsyncMock(return_value=mock_response)
    return mock_client


class TestSystemInstructions:
    NOW = datetime(2025, 2, 17, 8, 30, tzinfo=timezone.utc)

    def test_placeholder_replaced(self):
        result = build_system_instructions(f"היום: {DATETIME_PLACEHOLDER}. תהיה נחמד.", now=self.NOW)

        assert DATETIME_PLACEHOLDER not in result
        assert "2025-02-17T08:30:00+00:00" in result
        assert "17.02.2025 10:30:00" in result
        assert result.endswith("תהיה נחמד.")

    def test_header_added_without_placeholder(self):
        result = build_system_instructions("תהיה נחמד.", now=self.NOW)

        assert result.startswith("[הקשר זמן]")
        assert result.endswith("תהיה נחמד.")

    def test_empty_base(self):
        assert build_system_instructions(None, now=self.NOW).startswith("[הקשר זמן]")


class TestGeminiProvider:
    def test_payload_shape(self):
        provider = GeminiProvider(api_key="k", temperature=0.2, max_tokens=300)

        payload = provider.build_payload(HISTORY, "מה השעות?", "הוראות")

        assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
        assert payload["contents"][-1]["parts"] == [{"text": "מה השעות?"}]
        assert payload["systemInstruction"] == {"parts": [{"text": "הוראות"}]}
        assert payload["generationConfig"] == {"temperature": 0.2, "maxOutputTokens": 300}

    def test_leading_model_turns_dropped(self):
        provider = GeminiProvider(api_key="k")
        history = [ChatTurn(role="assistant", text="שלום")] + HISTORY

        payload = provider.build_payload(history, "היי", None)

        assert payload["contents"][0]["role"] == "user"
        assert "systemInstruction" not in payload

    @pytest.mark.asyncio
    @patch("convopilot.services.llm.gemini_provider.httpx.AsyncClient")
    async def test_generate(self, mock_client_class):
        mock_client = _mock_client(
            mock_client_class,
            payload={
                "candidates": [{"content": {"parts": [{"text": "שלום "}, {"text": "לך"}]}}],
                "modelVersion": "gemini-2.5-flash",
            },
        )
        provider = GeminiProvider(api_key="secret")

        response = await provider.generate(HISTORY, "היי", system_instructions="הוראות")

        assert response.content == "שלום לך"
        assert response.model == "gemini-2.5-flash"
        call_args = mock_client.post.call_args
        assert call_args[0][0].endswith("/gemini-2.5-flash:generateContent")
        assert call_args[1]["headers"]["x-goog-api-key"] == "secret"

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(LLMError):
            await GeminiProvider(api_key="").generate([], "היי")

    @pytest.mark.asyncio
    @patch("convopilot.services.llm.gemini_provider.httpx.AsyncClient")
    async def test_http_error_status(self, mock_client_class):
        _mock_client(mock_client_class, status_code=429, text="quota")

        with pytest.raises(LLMError, match="429"):
            await GeminiProvider(api_key="k").generate([], "היי")

    @pytest.mark.asyncio
    @patch("convopilot.services.llm.gemini_provider.httpx.AsyncClient")
    async def test_empty_content(self, mock_client_class):
        _mock_client(mock_client_class, payload={"candidates": [{"content": {"parts": [{"text": "  "}]}}]})

        with pytest.raises(LLMError):
            await GeminiProvider(api_key="k").generate([], "היי")

    @pytest.mark.asyncio
    @patch("convopilot.services.llm.gemini_provider.httpx.AsyncClient")
    async def test_non_json_body(self, mock_client_class):
        mock_client = _mock_client(mock_client_class, text="<html>bad gateway</html>")
        mock_client.post.return_value.json.side_effect = json.JSONDecodeError("Expecting value", "<html>", 0)

        with pytest.raises(LLMError):
            await GeminiProvider(api_key="k").generate([], "היי")

    @pytest.mark.asyncio
    @patch("convopilot.services.llm.gemini_provider.httpx.AsyncClient")
    async def test_network_error(self, mock_client_class):
        mock_client = _mock_client(mock_client_class)
        mock_client.post.side_effect = httpx.ConnectError("refused")

        with pytest.raises(LLMError):
            await GeminiProvider(api_key="k").generate([], "היי")


class TestOpenAIProvider:
    @pytest.mark.asyncio
    @patch("convopilot.services.llm.openai_provider.httpx.AsyncClient")
    async def test_generate(self, mock_client_class):
        mock_client = _mock_client(
            mock_client_class,
            payload={"choices": [{"message": {"content": "שלום"}}], "model": "gpt-5-mini"},
        )
        provider = OpenAIProvider(api_key="secret", max_tokens=200)

        response = await provider.generate(HISTORY, "היי", system_instructions="הוראות")

        assert response.content == "שלום"
        json_data = mock_client.post.call_args[1]["json"]
        assert [m["role"] for m in json_data["messages"]] == ["system", "user", "assistant", "user"]
        assert json_data["messages"][-1]["content"] == "היי"
        assert json_data["max_completion_tokens"] == 200
        assert mock_client.post.call_args[1]["headers"]["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    @patch("convopilot.services.llm.openai_provider.httpx.AsyncClient")
    async def test_error_status(self, mock_client_class):
        _mock_client(mock_client_class, status_code=500, text="boom")

        with pytest.raises(LLMError):
            await OpenAIProvider(api_key="k").generate([], "היי")


    @pytest.mark.asyncio
    @patch("convopilot.services.llm.openai_provider.httpx.AsyncClient")
    async def test_non_json_body(self, mock_client_class):
        mock_client = _mock_client(mock_client_class, text="<html>")
        mock_client.post.return_value.json.side_effect = ValueError("not json")

        with pytest.raises(LLMError):
            await OpenAIProvider(api_key="k").generate([], "היי")

class TestGetLLMProvider:
    def test_gemini_default(self):
        provider = get_llm_provider(Settings(gemini_api_key="g"))
        assert isinstance(provider, GeminiProvider)
        assert provider.api_key == "g"

    def test_openai(self):
        provider = get_llm_provider(Settings(llm_provider="OpenAI", openai_api_key="o"))
        assert isinstance(provider, OpenAIProvider)

    def test_unknown(self):
        with pytest.raises(ValueError):
            get_llm_provider(Settings(llm_provider="llama"))
