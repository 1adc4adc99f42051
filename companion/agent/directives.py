"""Extract and execute action tags embedded in generated text.

Generated text is untrusted: each directive kind is a small pure extractor
(text in, stripped text + directives out) and the extractors run in a fixed
priority order. Execution happens afterwards and only for directives that
matched, so a malformed tag is inert and stays in the text untouched.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Literal, Protocol, TypeAlias

from companion.logging import get_logger
from companion.store.models import (
    CalendarEvent,
    Message,
    MessageRole,
    MessageType,
    ScheduledMessage,
)
from companion.store.protocols import MessageSink, Notifier, TaskStore

logger = get_logger(__name__)

ToastLevel: TypeAlias = Literal["info", "success", "error"]
ToastCallback: TypeAlias = Callable[[str, ToastLevel], None]

POKE_CONTENT = "[poke]"
TRANSFER_CONTENT = "[transfer]"


class DirectiveKind(str, Enum):
    POKE = "poke"
    TRANSFER = "transfer"
    ADD_EVENT = "add_event"
    SCHEDULE_MESSAGE = "schedule_message"
    RECALL = "recall"


@dataclass(frozen=True)
class Directive:
    kind: DirectiveKind
    params: dict[str, str]
    raw: str


@dataclass(frozen=True)
class DirectiveExtractor:
    """Pure pattern extractor for one directive kind."""

    kind: DirectiveKind
    pattern: re.Pattern[str]
    params: Callable[[re.Match[str]], dict[str, str]] = lambda m: {}

    def extract(self, text: str) -> tuple[str, list[Directive]]:
        found = [
            Directive(kind=self.kind, params=self.params(m), raw=m.group(0))
            for m in self.pattern.finditer(text)
        ]
        if not found:
            return text, []
        return self.pattern.sub("", text).strip(), found


POKE_RE = re.compile(r"\[\[ACTION:POKE\]\]")
TRANSFER_RE = re.compile(r"\[\[ACTION:TRANSFER:(\d+)\]\]")
ADD_EVENT_RE = re.compile(r"\[\[ACTION:ADD_EVENT\s*\|\s*(.*?)\s*\|\s*(.*?)\]\]")
# Content may hold balanced single-level brackets; the first unmatched `]` closes the tag.
SCHEDULE_RE = re.compile(
    r"\[schedule_message\s*\|\s*(.*?)\s*\|\s*fixed\s*\|\s*((?:[^\[\]]|\[[^\[\]]*\])*?)\s*\]"
)
RECALL_RE = re.compile(r"\[\[RECALL:\s*(\d{4})\s*[-/年]\s*(\d{1,2})\s*月?\s*\]\]")

DEFAULT_EXTRACTORS: tuple[DirectiveExtractor, ...] = (
    DirectiveExtractor(DirectiveKind.POKE, POKE_RE),
    DirectiveExtractor(
        DirectiveKind.TRANSFER,
        TRANSFER_RE,
        lambda m: {"amount": m.group(1)},
    ),
    DirectiveExtractor(
        DirectiveKind.ADD_EVENT,
        ADD_EVENT_RE,
        lambda m: {"title": m.group(1).strip(), "date": m.group(2).strip()},
    ),
    DirectiveExtractor(
        DirectiveKind.SCHEDULE_MESSAGE,
        SCHEDULE_RE,
        lambda m: {"time": m.group(1).strip(), "content": m.group(2).strip()},
    ),
    DirectiveExtractor(
        DirectiveKind.RECALL,
        RECALL_RE,
        lambda m: {"year": m.group(1), "month": m.group(2).zfill(2)},
    ),
)


def extract_directives(
    text: str,
    extractors: tuple[DirectiveExtractor, ...] = DEFAULT_EXTRACTORS,
) -> tuple[str, list[Directive]]:
    """Strip every recognised tag from *text*, returning the directives in priority order.

    Passes repeat until nothing matches, so stripping can never leave a tag
    behind (e.g. one assembled from the pieces around a removed tag).
    """
    directives: list[Directive] = []
    while True:
        found_in_pass = False
        for extractor in extractors:
            text, found = extractor.extract(text)
            if found:
                found_in_pass = True
                directives.extend(found)
        if not found_in_pass:
            return text.strip(), directives


def parse_schedule_time(value: str) -> datetime | None:
    """Parse an ISO 8601 date-time; aware values are converted to naive local time."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class DirectiveStore(MessageSink, TaskStore, Protocol):
    """Store capabilities directive execution needs."""


@dataclass
class DirectiveContext:
    """Where directive side effects land for one generation turn."""

    conversation_id: str
    display_name: str
    store: DirectiveStore
    notifier: Notifier | None = None
    toast: ToastCallback | None = None
    clock: Callable[[], datetime] = datetime.now

    def notify_toast(self, message: str, level: ToastLevel = "info") -> None:
        if self.toast is not None:
            self.toast(message, level)


@dataclass
class ParseResult:
    text: str
    directives: list[Directive] = field(default_factory=list)
    executed: list[Directive] = field(default_factory=list)


class DirectiveExecutor:
    """Apply the side effect of a single extracted directive."""

    def execute(self, directive: Directive, ctx: DirectiveContext) -> bool:
        handler = {
            DirectiveKind.POKE: self._poke,
            DirectiveKind.TRANSFER: self._transfer,
            DirectiveKind.ADD_EVENT: self._add_event,
            DirectiveKind.SCHEDULE_MESSAGE: self._schedule_message,
            DirectiveKind.RECALL: self._recall,
        }[directive.kind]
        executed = handler(directive, ctx)
        logger.info(
            "directive_executed" if executed else "directive_skipped",
            kind=directive.kind.value,
        )
        return executed

    @staticmethod
    def _poke(directive: Directive, ctx: DirectiveContext) -> bool:
        ctx.store.insert_message(Message(
            conversation_id=ctx.conversation_id,
            role=MessageRole.ASSISTANT,
            type=MessageType.INTERACTION,
            content=POKE_CONTENT,
        ))
        return True

    @staticmethod
    def _transfer(directive: Directive, ctx: DirectiveContext) -> bool:
        ctx.store.insert_message(Message(
            conversation_id=ctx.conversation_id,
            role=MessageRole.ASSISTANT,
            type=MessageType.TRANSFER,
            content=TRANSFER_CONTENT,
            metadata={"amount": directive.params["amount"]},
        ))
        return True

    @staticmethod
    def _add_event(directive: Directive, ctx: DirectiveContext) -> bool:
        title = directive.params.get("title", "")
        date = directive.params.get("date", "")
        if not title or not date:
            return False
        ctx.store.save_calendar_event(CalendarEvent(
            id=f"event-{uuid.uuid4().hex[:12]}",
            conversation_id=ctx.conversation_id,
            title=title,
            date=date,
        ))
        ctx.notify_toast(f"{ctx.display_name} added a new event: {title}", "success")
        ctx.store.insert_message(Message(
            conversation_id=ctx.conversation_id,
            role=MessageRole.SYSTEM,
            type=MessageType.TEXT,
            content=f'[System: {ctx.display_name} added event "{title}" ({date})]',
        ))
        return True

    @staticmethod
    def _schedule_message(directive: Directive, ctx: DirectiveContext) -> bool:
        content = directive.params.get("content", "")
        due_at = parse_schedule_time(directive.params.get("time", ""))
        now = ctx.clock()
        if due_at is None or due_at <= now or not content:
            logger.debug(
                "schedule_message_dropped",
                time=directive.params.get("time"),
                reason="unparsable" if due_at is None else ("past" if due_at <= now else "empty"),
            )
            return False

        ctx.store.save_scheduled_message(ScheduledMessage(
            id=f"sched-{uuid.uuid4().hex}",
            conversation_id=ctx.conversation_id,
            content=content,
            due_at=due_at,
            created_at=now,
        ))
        if ctx.notifier is not None:
            try:
                ctx.notifier.schedule_alert(ctx.display_name, content, due_at)
            except Exception as e:
                logger.warning("schedule_alert_failed", error=str(e))
        ctx.notify_toast(f"{ctx.display_name} seems to be planning to message you later...", "info")
        return True

    @staticmethod
    def _recall(directive: Directive, ctx: DirectiveContext) -> bool:
        # Recall is resolved before parsing; here the tag is only removed.
        return False


class DirectiveParser:
    """Strip directive tags from generated text and run their side effects once."""

    def __init__(
        self,
        extractors: tuple[DirectiveExtractor, ...] = DEFAULT_EXTRACTORS,
        executor: DirectiveExecutor | None = None,
    ) -> None:
        self.extractors = extractors
        self.executor = executor or DirectiveExecutor()

    def parse_and_execute(self, text: str, ctx: DirectiveContext) -> ParseResult:
        cleaned, directives = extract_directives(text, self.extractors)
        result = ParseResult(text=cleaned, directives=directives)
        for directive in directives:
            if self.executor.execute(directive, ctx):
                result.executed.append(directive)
        return result
