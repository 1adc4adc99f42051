"""Run one generation turn from stored history to delivered messages."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping

from companion.agent.context import ContextBuilder
from companion.agent.delivery import DeliveryScheduler, PublishCallback, SleepFn
from companion.agent.directives import (
    Directive,
    DirectiveContext,
    DirectiveParser,
    ToastCallback,
)
from companion.agent.output_cleanup import clean_generation_output
from companion.agent.recall import RecallEscalation, RecallOutcome, StatusCallback
from companion.agent.segmenter import segment_response
from companion.config.schema import DeliveryConfig, GenerationConfig
from companion.logging import bind_conversation, get_logger
from companion.providers.base import LLMProvider
from companion.store.models import ConversationProfile, Message, MessageRole, MessageType
from companion.store.protocols import ChatStore, Notifier

logger = get_logger(__name__)


@dataclass
class TurnResult:
    conversation_id: str
    delivered: list[Message] = field(default_factory=list)
    directives: list[Directive] = field(default_factory=list)
    recall: RecallOutcome | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatTurnRunner:
    """
    Compose a full chat turn.

    context -> backend -> output cleanup -> recall escalation -> directive
    parsing -> segmentation -> paced delivery. A failed backend call is
    recorded as a system message and ends the turn without delivering
    anything. Callers must not run two turns for one conversation at once.
    """

    def __init__(
        self,
        provider: LLMProvider,
        store: ChatStore,
        *,
        generation: GenerationConfig | None = None,
        delivery: DeliveryConfig | None = None,
        emojis: Mapping[str, str] | None = None,
        notifier: Notifier | None = None,
        toast: ToastCallback | None = None,
        on_status: StatusCallback | None = None,
        publish: PublishCallback | None = None,
        sleep: SleepFn = asyncio.sleep,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.provider = provider
        self.store = store
        self.generation = generation or GenerationConfig()
        self.emojis = dict(emojis or {})
        self.notifier = notifier
        self.toast = toast
        self.clock = clock
        self.context = ContextBuilder(store, self.emojis)
        self.parser = DirectiveParser()
        self.recall = RecallEscalation(
            provider,
            store,
            model=self.generation.model,
            temperature=self.generation.recall_temperature,
            max_tokens=self.generation.max_tokens,
            on_status=on_status,
            toast=toast,
        )
        self.delivery = DeliveryScheduler(store, delivery, sleep=sleep, rng=rng, publish=publish)

    async def run(self, profile: ConversationProfile) -> TurnResult:
        conversation_id = profile.conversation_id
        bind_conversation(conversation_id)
        result = TurnResult(conversation_id=conversation_id)

        history = [m for m in self.store.fetch_history(conversation_id) if profile.is_visible(m)]
        messages = self.context.build_messages(profile, history)
        logger.info("turn_started", history_messages=len(messages) - 1, model=self.generation.model)

        response = await self.provider.chat(
            messages=messages,
            model=self.generation.model,
            max_tokens=self.generation.max_tokens,
            temperature=self.generation.temperature,
        )
        if response.is_error:
            result.error = response.text
            logger.warning("turn_generation_failed", error=response.text)
            self.store.insert_message(Message(
                conversation_id=conversation_id,
                role=MessageRole.SYSTEM,
                type=MessageType.TEXT,
                content=f"[Connection interrupted: {response.text}]",
            ))
            return result

        first = clean_generation_output(response.text, profile.character_name)
        result.recall = await self.recall.resolve(first, messages=messages, conversation_id=conversation_id)
        text = clean_generation_output(result.recall.text, profile.character_name)

        ctx = DirectiveContext(
            conversation_id=conversation_id,
            display_name=profile.character_name,
            store=self.store,
            notifier=self.notifier,
            toast=self.toast,
            clock=self.clock,
        )
        parsed = self.parser.parse_and_execute(text, ctx)
        result.directives = parsed.executed

        units = segment_response(parsed.text, self.emojis)
        result.delivered = await self.delivery.deliver(
            units,
            conversation_id=conversation_id,
            history=history,
            user_name=profile.user_name,
            source_text=parsed.text,
        )
        logger.info(
            "turn_finished",
            delivered=len(result.delivered),
            directives=len(result.directives),
            usage=response.usage,
        )
        return result
