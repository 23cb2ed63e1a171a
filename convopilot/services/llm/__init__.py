from convopilot.config import Settings
from convopilot.services.llm.base import LLMError, LLMProvider, LLMResponse
from convopilot.services.llm.gemini_provider import GeminiProvider
from convopilot.services.llm.instructions import build_system_instructions
from convopilot.services.llm.openai_provider import OpenAIProvider


def get_llm_provider(settings: Settings) -> LLMProvider:
    provider = (settings.llm_provider or "gemini").strip().lower()
    if provider == "openai":
        return OpenAIProvider(
            api_key=settings.openai_api_key or "",
            default_model=settings.openai_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    if provider != "gemini":
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")
    return GeminiProvider(
        api_key=settings.gemini_api_key or "",
        default_model=settings.gemini_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout_seconds=settings.llm_timeout_seconds,
    )


__all__ = [
    "GeminiProvider",
    "LLMError",
    "LLMProvider",
    "LLMResponse",
    "OpenAIProvider",
    "build_system_instructions",
    "get_llm_provider",
]
