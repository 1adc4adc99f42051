"""Second-round generation when a reply asks to recall an archived month."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence, TypeAlias

from companion.agent.directives import RECALL_RE, ToastCallback
from companion.logging import get_logger
from companion.providers.base import LLMProvider
from companion.store.models import MemoryFragment
from companion.store.protocols import FragmentStore

logger = get_logger(__name__)

StatusCallback: TypeAlias = Callable[[str], None]

_DATE_SEPARATORS_RE = re.compile(r"[/年月.]")


@dataclass(frozen=True)
class DirectOutcome:
    """First-call output proceeds; ``requested_period`` is set when a recall found nothing or failed."""

    text: str
    requested_period: str | None = None


@dataclass(frozen=True)
class EscalatedOutcome:
    """Second-call output replaces the first."""

    text: str
    period: str
    fragments: tuple[MemoryFragment, ...] = field(default_factory=tuple)
    usage: dict[str, int] = field(default_factory=dict)


RecallOutcome: TypeAlias = DirectOutcome | EscalatedOutcome


def strip_recall_markers(text: str) -> str:
    return RECALL_RE.sub("", text).strip()


def fragment_month(date: str) -> str | None:
    """Normalise ``2024-3-01`` / ``2024/03/01`` / ``2024年3月1日`` to ``2024-03``."""
    normalized = _DATE_SEPARATORS_RE.sub("-", date.strip()).replace("日", "")
    parts = [p for p in normalized.split("-") if p]
    if len(parts) < 2 or not (parts[0].isdigit() and parts[1].isdigit()):
        return None
    return f"{parts[0]}-{parts[1].zfill(2)}"


def fragments_for_period(fragments: Sequence[MemoryFragment], period: str) -> list[MemoryFragment]:
    return [f for f in fragments if fragment_month(f.date) == period]


def build_recall_note(period: str, fragments: Sequence[MemoryFragment]) -> str:
    lines = [f"[{f.date}] ({f.mood or 'normal'}): {f.summary}" for f in fragments]
    return (
        f"[System: retrieved the detailed memory log for {period}]\n"
        + "\n".join(lines)
        + "\n[System: now answer the user using these details where they fit. Keep the conversation natural.]"
    )


class RecallEscalation:
    """Direct -> Escalated transition driven by a ``[[RECALL:YYYY-MM]]`` marker."""

    def __init__(
        self,
        provider: LLMProvider,
        fragments: FragmentStore,
        *,
        model: str | None = None,
        temperature: float = 0.8,
        max_tokens: int = 4096,
        on_status: StatusCallback | None = None,
        toast: ToastCallback | None = None,
    ) -> None:
        self.provider = provider
        self.fragments = fragments
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.on_status = on_status
        self.toast = toast

    def _status(self, text: str) -> None:
        if self.on_status is not None:
            self.on_status(text)

    async def resolve(
        self,
        first_output: str,
        *,
        messages: list[dict[str, Any]],
        conversation_id: str,
    ) -> RecallOutcome:
        match = RECALL_RE.search(first_output)
        stripped = strip_recall_markers(first_output)
        if match is None:
            return DirectOutcome(text=stripped)

        period = f"{match.group(1)}-{match.group(2).zfill(2)}"
        self._status(f"Looking through the archive for {period}...")
        try:
            found = fragments_for_period(self.fragments.list_fragments(conversation_id), period)
            if not found:
                logger.info("recall_no_fragments", period=period)
                return DirectOutcome(text=stripped, requested_period=period)

            recall_messages = [*messages, {"role": "system", "content": build_recall_note(period, found)}]
            response = await self.provider.chat(
                messages=recall_messages,
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            if response.is_error:
                logger.warning("recall_generation_failed", period=period, error=response.text)
                return DirectOutcome(text=stripped, requested_period=period)

            logger.info("recall_escalated", period=period, fragment_count=len(found))
            if self.toast is not None:
                self.toast(f"Recalled memories from {period}", "info")
            return EscalatedOutcome(
                text=strip_recall_markers(response.text),
                period=period,
                fragments=tuple(found),
                usage=response.usage,
            )
        finally:
            self._status("")
