"""LLM provider abstraction module."""

from companion.providers.base import LLMProvider, LLMResponse
from companion.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider"]
