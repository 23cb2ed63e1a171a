from typing import List, Optional

import httpx

from convopilot.logging_config import get_logger
from convopilot.services.history_service import ChatTurn
from convopilot.services.llm.base import LLMError, LLMProvider, LLMResponse

logger = get_logger("llm.gemini")

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiProvider(LLMProvider):
    """Google Gemini REST provider (generateContent)."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gemini-2.5-flash",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: float = 60.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    def build_payload(self, history: List[ChatTurn], prompt: str, system_instructions: Optional[str]) -> dict:
        contents = [
            {"role": "user" if turn.role == "user" else "model", "parts": [{"text": turn.text}]}
            for turn in history
        ]
        while contents and contents[0]["role"] == "model":
            contents.pop(0)
        contents.append({"role": "user", "parts": [{"text": prompt}]})

        payload = {
            "contents": contents,
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }
        if system_instructions:
            payload["systemInstruction"] = {"parts": [{"text": system_instructions}]}
        return payload

    async def generate(
        self,
        history: List[ChatTurn],
        prompt: str,
        *,
        system_instructions: Optional[str] = None,
    ) -> LLMResponse:
        """Generate response from Gemini."""
        if not self.api_key:
            raise LLMError("Gemini API key is not configured")

        model = self.default_model
        payload = self.build_payload(history, prompt, system_instructions)
        logger.debug(f"Gemini request: model={model}, contents_count={len(payload['contents'])}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{GEMINI_API_URL}/{model}:generateContent",
                    headers={"x-goog-api-key": self.api_key, "Content-Type": "application/json"},
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"Gemini request failed: {e}")
            raise LLMError(f"Gemini request failed: {e}") from e

        logger.debug(f"Gemini response status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"Gemini error: {response.text}")
            raise LLMError(f"Gemini API error: {response.status_code} - {response.text}")

        try:
            data = response.json()
            content = ""
            candidates = data.get("candidates") or []
            if candidates:
                parts = (candidates[0].get("content") or {}).get("parts") or []
                content = "".join(part.get("text") or "" for part in parts if isinstance(part, dict))
        except (ValueError, AttributeError, TypeError) as e:
            logger.error(f"Gemini returned an unreadable body: {response.text[:200]}")
            raise LLMError(f"Gemini returned an unreadable body: {e}") from e
        if not content.strip():
            raise LLMError("Gemini returned an empty response")

        return LLMResponse(
            content=content,
            model=data.get("modelVersion", model),
            usage=data.get("usageMetadata"),
        )
