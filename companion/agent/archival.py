"""Condense conversation history into per-day memory fragments."""

from __future__ import annotations

import asyncio
import re
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Protocol, TypeVar

from companion.agent.archive_prompts import get_archive_prompt
from companion.agent.delivery import SleepFn
from companion.config.schema import ArchiveConfig
from companion.errors import GenerationError
from companion.logging import get_logger
from companion.providers.base import LLMProvider
from companion.store.models import (
    ArchivePrompt,
    ConversationProfile,
    MemoryFragment,
    Message,
    MessageRole,
    MessageType,
)
from companion.store.protocols import FragmentStore, HistorySource

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ARCHIVE_MOOD = "archive"

_RAW_LOG_PLACEHOLDER_RE = re.compile(r"\$\{rawLog.*?\}")
_WRAPPING_QUOTES_RE = re.compile(r"^[\"']|[\"']$")


class ArchiveStore(HistorySource, FragmentStore, Protocol):
    """Store capabilities the archival pipeline needs."""


@dataclass
class ArchiveReport:
    conversation_id: str
    requested: int
    processed: int = 0
    fragments: list[MemoryFragment] = field(default_factory=list)
    failed_date: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.failed_date is None


@dataclass
class Accumulated:
    """Successes gathered before the first failure (if any)."""

    results: list
    failed_item: object | None = None
    error: Exception | None = None


async def accumulate_until_failure(
    items: Iterable[T],
    step: Callable[[T], Awaitable[R]],
    *,
    between: Callable[[], Awaitable[None]] | None = None,
) -> Accumulated:
    """Run *step* over *items* in order, stopping at the first exception.

    Results produced before the failure are always kept.
    """
    acc = Accumulated(results=[])
    for index, item in enumerate(items):
        if index > 0 and between is not None:
            await between()
        try:
            acc.results.append(await step(item))
        except Exception as e:
            acc.failed_item = item
            acc.error = e
            break
    return acc


def _local(ts: datetime) -> datetime:
    return ts.astimezone() if ts.tzinfo is not None else ts


def local_day(ts: datetime) -> str:
    return _local(ts).strftime("%Y-%m-%d")


def partition_by_day(messages: Iterable[Message]) -> list[tuple[str, list[Message]]]:
    """Group messages by local calendar day, ascending."""
    buckets: dict[str, list[Message]] = defaultdict(list)
    for msg in messages:
        buckets[local_day(msg.timestamp)].append(msg)
    return sorted(buckets.items())


def render_log_line(msg: Message, profile: ConversationProfile) -> str:
    if msg.role is MessageRole.USER:
        speaker = profile.user_name
    elif msg.role is MessageRole.ASSISTANT:
        speaker = profile.character_name
    else:
        speaker = "System"
    content = msg.content if msg.type is MessageType.TEXT else f"[{msg.type.value}]"
    return f"[{_local(msg.timestamp).strftime('%H:%M')}] {speaker}: {content}"


def render_archive_prompt(
    template: str,
    *,
    date: str,
    profile: ConversationProfile,
    raw_log: str,
    raw_log_max_chars: int,
) -> str:
    prompt = template.replace("${dateStr}", date)
    prompt = prompt.replace("${char.name}", profile.character_name)
    prompt = prompt.replace("${userProfile.name}", profile.user_name)
    clipped = raw_log[:raw_log_max_chars]
    return _RAW_LOG_PLACEHOLDER_RE.sub(lambda _m: clipped, prompt)


class ArchivalPipeline:
    """
    Summarise each day of a conversation into a memory fragment.

    Days are processed one at a time in ascending order with a fixed pause
    between requests. The first failed day stops the run; fragments produced
    before it are still appended to the store.
    """

    def __init__(
        self,
        provider: LLMProvider,
        store: ArchiveStore,
        config: ArchiveConfig | None = None,
        *,
        model: str | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.store = store
        self.config = config or ArchiveConfig()
        self.model = model
        self.sleep = sleep

    async def run(
        self,
        profile: ConversationProfile,
        template: ArchivePrompt | None = None,
    ) -> ArchiveReport:
        template = template or get_archive_prompt(self.config.prompt_id)
        conversation_id = profile.conversation_id
        history = [m for m in self.store.fetch_history(conversation_id) if profile.is_visible(m)]
        buckets = partition_by_day(history)
        report = ArchiveReport(conversation_id=conversation_id, requested=len(buckets))
        if not buckets:
            logger.info("archive_nothing_to_do", conversation_id=conversation_id)
            return report

        logger.info("archive_started", conversation_id=conversation_id, days=len(buckets), template=template.id)

        async def _summarise(bucket: tuple[str, list[Message]]) -> MemoryFragment | None:
            date, day_messages = bucket
            raw_log = "\n".join(render_log_line(m, profile) for m in day_messages)
            prompt = render_archive_prompt(
                template.content,
                date=date,
                profile=profile,
                raw_log=raw_log,
                raw_log_max_chars=self.config.raw_log_max_chars,
            )
            response = await self.provider.chat(
                messages=[{"role": "user", "content": prompt}],
                model=self.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
            if response.is_error:
                raise GenerationError(response.text)
            summary = _WRAPPING_QUOTES_RE.sub("", response.text.strip())
            if not summary:
                logger.warning("archive_empty_summary", date=date)
                return None
            logger.debug("archive_day_done", date=date, summary_chars=len(summary))
            return MemoryFragment(
                id=f"mem-{uuid.uuid4().hex[:12]}",
                date=date,
                summary=summary,
                mood=ARCHIVE_MOOD,
            )

        async def _pause() -> None:
            await self.sleep(self.config.pacing_ms / 1000)

        acc = await accumulate_until_failure(buckets, _summarise, between=_pause)
        report.processed = len(acc.results)
        report.fragments = [f for f in acc.results if f is not None]
        if acc.error is not None:
            report.failed_date = acc.failed_item[0]
            report.error = str(acc.error)
            logger.warning(
                "archive_bucket_failed",
                date=report.failed_date,
                error=report.error,
                processed=report.processed,
                requested=report.requested,
            )

        if report.fragments:
            self.store.append_fragments(conversation_id, report.fragments)
        logger.info(
            "archive_finished",
            conversation_id=conversation_id,
            processed=report.processed,
            requested=report.requested,
            fragments=len(report.fragments),
            ok=report.ok,
        )
        return report
