from datetime import datetime
from typing import Any

import pytest

from companion.providers.base import LLMProvider, LLMResponse
from companion.store.memory import InMemoryStore
from companion.store.models import ConversationProfile


class ScriptedProvider(LLMProvider):
    """Returns queued responses in order and records every call."""

    def __init__(self, *responses: LLMResponse | str):
        super().__init__()
        self.responses = [r if isinstance(r, LLMResponse) else LLMResponse(content=r) for r in responses]
        self.calls: list[dict[str, Any]] = []

    async def chat(self, messages, model=None, max_tokens=4096, temperature=0.7):
        self.calls.append({
            "messages": messages,
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        if not self.responses:
            raise AssertionError("ScriptedProvider ran out of responses")
        return self.responses.pop(0)

    def get_default_model(self) -> str:
        return "test-model"


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def error_response(message: str = "boom") -> LLMResponse:
    return LLMResponse(content=f"Error calling LLM: {message}", finish_reason="error")


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def profile() -> ConversationProfile:
    return ConversationProfile(conversation_id="conv-1", character_name="Aria", user_name="Sam")


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 3, 1, 9, 0)
