from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from convopilot.services.history_service import ChatTurn


class LLMError(Exception):
    """Model call failed; no usable text was produced."""


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def generate(
        self,
        history: List[ChatTurn],
        prompt: str,
        *,
        system_instructions: Optional[str] = None,
    ) -> LLMResponse:
        """Generate a reply to ``prompt`` given prior turns. Raises LLMError."""
        pass
