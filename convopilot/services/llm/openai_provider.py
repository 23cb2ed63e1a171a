from typing import List, Optional

import httpx

from convopilot.logging_config import get_logger
from convopilot.services.history_service import ChatTurn
from convopilot.services.llm.base import LLMError, LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI API provider."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-5-mini",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_seconds: float = 60.0,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.base_url = "https://api.openai.com/v1/chat/completions"

    async def generate(
        self,
        history: List[ChatTurn],
        prompt: str,
        *,
        system_instructions: Optional[str] = None,
    ) -> LLMResponse:
        """Generate response from OpenAI."""
        if not self.api_key:
            raise LLMError("OpenAI API key is not configured")

        model = self.default_model
        messages = []
        if system_instructions:
            messages.append({"role": "system", "content": system_instructions})
        messages.extend({"role": turn.role, "content": turn.text} for turn in history)
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
            "max_completion_tokens": self.max_tokens,
        }
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(f"OpenAI request failed: {e}")
            raise LLMError(f"OpenAI request failed: {e}") from e

        logger.debug(f"OpenAI response status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text}")
            raise LLMError(f"OpenAI API error: {response.status_code} - {response.text}")

        try:
            data = response.json()
            content = ""
            if data.get("choices"):
                message = data["choices"][0].get("message") or {}
                content = message.get("content") or ""
        except (ValueError, AttributeError, TypeError, IndexError, KeyError) as e:
            logger.error(f"OpenAI returned an unreadable body: {response.text[:200]}")
            raise LLMError(f"OpenAI returned an unreadable body: {e}") from e
        if not content.strip():
            raise LLMError("OpenAI returned an empty response")

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
        )
