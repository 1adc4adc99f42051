"""Base LLM provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.finish_reason == "error"

    @property
    def text(self) -> str:
        return self.content or ""


class LLMProvider(ABC):
    """
    Abstract base class for generation backends.

    Implementations must report transport or backend failures as an
    ``LLMResponse`` with ``finish_reason == "error"`` instead of raising.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """
        Send a non-streaming chat completion request.

        Args:
            messages: Ordered list of message dicts with 'role' and 'content'.
            model: Model identifier (provider-specific).
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.

        Returns:
            LLMResponse with the completion text and optional usage.
        """

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
