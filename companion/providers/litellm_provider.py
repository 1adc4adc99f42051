"""Generation backend backed by LiteLLM."""

import asyncio
import logging
from typing import Any

import litellm
from litellm import acompletion

from companion.logging import get_logger, mask_secret
from companion.providers.base import LLMProvider, LLMResponse

logger = get_logger("companion.providers.litellm")

# Keys an OpenAI-style chat message may carry; anything else is dropped.
_MESSAGE_KEYS = frozenset({"role", "content", "name"})
_EMPTY_CONTENT = "(empty)"


class LiteLLMProvider(LLMProvider):
    """
    Non-streaming chat completions through LiteLLM.

    Every request is fire-once (``num_retries=0``) and bounded only by the
    transport timeout. Failures come back as ``finish_reason="error"``
    responses with any API key masked.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "openai/gpt-4o-mini",
        extra_headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.extra_headers = extra_headers or {}
        self.timeout = timeout

        litellm.suppress_debug_info = True
        litellm.drop_params = True

        if api_key:
            logger.info("provider_initialized", model=default_model, api_key=mask_secret(api_key))

    @classmethod
    def from_config(cls, provider_config: Any, generation_config: Any) -> "LiteLLMProvider":
        """Build from ``ProviderConfig`` + ``GenerationConfig``."""
        return cls(
            api_key=provider_config.resolved_api_key or None,
            api_base=provider_config.api_base,
            default_model=generation_config.model,
            extra_headers=provider_config.extra_headers,
            timeout=provider_config.timeout,
        )

    @staticmethod
    def _sanitize_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
        sanitized = []
        for msg in messages:
            clean = {key: value for key, value in msg.items() if key in _MESSAGE_KEYS}
            if not clean.get("content"):
                clean["content"] = _EMPTY_CONTENT
            sanitized.append(clean)
        return sanitized

    def _request_kwargs(
        self,
        messages: list[dict[str, Any]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": self._sanitize_messages(messages),
            "max_tokens": max(1, max_tokens),
            "temperature": temperature,
            "stream": False,
            "num_retries": 0,
        }
        optional = {
            "api_key": self.api_key,
            "api_base": self.api_base,
            "extra_headers": self.extra_headers,
            "request_timeout": self.timeout,
        }
        kwargs.update({key: value for key, value in optional.items() if value})
        return kwargs

    def _error(self, detail: str) -> LLMResponse:
        if self.api_key and self.api_key in detail:
            detail = detail.replace(self.api_key, mask_secret(self.api_key))
        return LLMResponse(content=f"Error calling LLM: {detail}", finish_reason="error")

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        model = model or self.default_model
        kwargs = self._request_kwargs(messages, model, max_tokens, temperature)

        if logging.getLogger("companion").isEnabledFor(logging.DEBUG):
            logger.debug(
                "litellm_request",
                model=model,
                message_count=len(kwargs["messages"]),
                max_tokens=kwargs["max_tokens"],
                temperature=temperature,
            )

        try:
            response = await acompletion(**kwargs)
        except asyncio.TimeoutError:
            logger.error("llm_call_timeout", model=model, timeout_s=self.timeout)
            return self._error("request timed out")
        except Exception as e:
            response = self._error(str(e))
            logger.error("llm_call_failed", model=model, error=response.text)
            return response
        return self._parse_response(response)

    def _parse_response(self, response: Any) -> LLMResponse:
        choices = getattr(response, "choices", None) or []
        if not choices:
            logger.error("llm_response_unparsable", reason="no_choices")
            return self._error("response had no choices")

        choice = choices[0]
        usage: dict[str, int] = {}
        raw_usage = getattr(response, "usage", None)
        if raw_usage:
            usage = {
                "prompt_tokens": raw_usage.prompt_tokens,
                "completion_tokens": raw_usage.completion_tokens,
                "total_tokens": raw_usage.total_tokens,
            }
        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        return self.default_model
