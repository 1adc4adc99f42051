"""Paced, sequential delivery of segmented reply units."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Sequence, TypeAlias

from companion.agent.segmenter import QUOTE_RE, DeliveryUnit, UnitKind
from companion.config.schema import DeliveryConfig
from companion.logging import get_logger
from companion.store.models import Message, MessageRole, MessageType, ReplyRef
from companion.store.protocols import MessageSink

logger = get_logger(__name__)

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]
PublishCallback: TypeAlias = Callable[[Message], None]


def text_delay_seconds(chunk: str, config: DeliveryConfig) -> float:
    """Typing delay proportional to chunk length, clamped to [min, max]."""
    delay_ms = len(chunk) * config.ms_per_char
    return min(max(delay_ms, config.min_delay_ms), config.max_delay_ms) / 1000


def emoji_delay_seconds(config: DeliveryConfig, rng: random.Random) -> float:
    return rng.uniform(config.emoji_delay_min_ms, config.emoji_delay_max_ms) / 1000


def find_quote_target(snippet: str, history: Sequence[Message], user_name: str) -> ReplyRef | None:
    """Latest user-authored message in *history* containing *snippet*, as a reply reference."""
    snippet = snippet.strip()
    if not snippet:
        return None
    for msg in reversed(history):
        if msg.role is MessageRole.USER and msg.id is not None and snippet in msg.content:
            return ReplyRef(id=msg.id, content=msg.content, name=user_name)
    return None


class DeliveryScheduler:
    """
    Persist delivery units one at a time, each after its own delay.

    Units are never delivered in parallel: every message must be stored and
    published before the next delay starts. Callers must not run two
    deliveries for the same conversation at once.
    """

    def __init__(
        self,
        store: MessageSink,
        config: DeliveryConfig | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        rng: random.Random | None = None,
        publish: PublishCallback | None = None,
    ) -> None:
        self.store = store
        self.config = config or DeliveryConfig()
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.publish = publish

    async def deliver(
        self,
        units: Sequence[DeliveryUnit],
        *,
        conversation_id: str,
        history: Sequence[Message],
        user_name: str,
        source_text: str = "",
    ) -> list[Message]:
        """Deliver *units* in order and return the persisted messages.

        *history* is the visible history from before this turn; reply quotes
        resolve only against it. A quote in *source_text* applies to the first
        delivered text chunk unless that chunk names its own.
        """
        turn_target: ReplyRef | None = None
        turn_quote = QUOTE_RE.search(source_text)
        if turn_quote:
            turn_target = find_quote_target(turn_quote.group(1), history, user_name)
            if turn_target is None:
                logger.debug("quote_unresolved", scope="turn")

        delivered: list[Message] = []
        first_text_pending = True
        for unit in units:
            if unit.kind is UnitKind.EMOJI:
                await self.sleep(emoji_delay_seconds(self.config, self.rng))
                delivered.append(self._persist(conversation_id, MessageType.EMOJI, unit.payload, None))
                continue

            chunk_target: ReplyRef | None = None
            chunk_quote = QUOTE_RE.search(unit.payload)
            if chunk_quote:
                chunk_target = find_quote_target(chunk_quote.group(1), history, user_name)
                if chunk_target is None:
                    logger.debug("quote_unresolved", scope="chunk")
            text = QUOTE_RE.sub("", unit.payload).strip()
            if not text:
                continue

            reply_to = chunk_target
            if reply_to is None and first_text_pending:
                reply_to = turn_target
            first_text_pending = False

            await self.sleep(text_delay_seconds(text, self.config))
            delivered.append(self._persist(conversation_id, MessageType.TEXT, text, reply_to))

        logger.info("delivery_complete", units=len(units), delivered=len(delivered))
        return delivered

    def _persist(
        self,
        conversation_id: str,
        msg_type: MessageType,
        content: str,
        reply_to: ReplyRef | None,
    ) -> Message:
        stored = self.store.insert_message(Message(
            conversation_id=conversation_id,
            role=MessageRole.ASSISTANT,
            type=msg_type,
            content=content,
            reply_to=reply_to,
        ))
        if self.publish is not None:
            self.publish(stored)
        return stored
