"""Split cleaned reply text into ordered delivery units.

Pass 1 separates ``[[SEND_EMOJI: name]]`` markers from prose. Pass 2 breaks
each prose segment into utterance-sized chunks so the reply can be delivered
bubble by bubble.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from companion.logging import get_logger

logger = get_logger(__name__)

EMOJI_RE = re.compile(r"\[\[SEND_EMOJI:\s*(.*?)\]\]")
QUOTE_RE = re.compile(r"\[\[QUOTE:\s*(.*?)\]\]")

_SPLIT = "\ue010"
_OPEN, _CLOSE = "\ue000", "\ue001"
_PLACEHOLDER_RE = re.compile(f"{_OPEN}(\\d+){_CLOSE}")
# Sentinels are reserved; model text carrying them is scrubbed first.
_RESERVED_RE = re.compile(f"[{_SPLIT}{_OPEN}{_CLOSE}]")
# Runs that must never be split: quote markers and ellipses.
_ATOMIC_RE = re.compile(r"\[\[QUOTE:.*?\]\]|\.{3,}|…+|。{2,}|．{2,}")

_CLOSERS = r"""）)\]】」』"”'"""
_SPLIT_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(rf"(。)(?![{_CLOSERS}])"), rf"\1{_SPLIT}"),
    (re.compile(r"\.(?=\s|$)"), f".{_SPLIT}"),
    (re.compile(rf"([！!？?~]++)(?![{_CLOSERS}])"), rf"\1{_SPLIT}"),
    (re.compile(r"\n+"), _SPLIT),
    (re.compile(r"(?<=[\u4e00-\u9fff])[ \t\u3000]+(?=[\u4e00-\u9fff])"), _SPLIT),
)


class UnitKind(str, Enum):
    TEXT = "text"
    EMOJI = "emoji"


@dataclass(frozen=True)
class DeliveryUnit:
    kind: UnitKind
    payload: str


def split_response(text: str) -> list[DeliveryUnit]:
    """Pass 1: split on emoji markers. Emoji units carry the raw emoji name."""
    parts: list[DeliveryUnit] = []
    last = 0
    for match in EMOJI_RE.finditer(text):
        before = text[last:match.start()].strip()
        if before:
            parts.append(DeliveryUnit(UnitKind.TEXT, before))
        parts.append(DeliveryUnit(UnitKind.EMOJI, match.group(1).strip()))
        last = match.end()
    remaining = text[last:].strip()
    if remaining:
        parts.append(DeliveryUnit(UnitKind.TEXT, remaining))
    return parts


def chunk_text(text: str) -> list[str]:
    """Pass 2: split prose on sentence-final punctuation, newlines and CJK pauses.

    Punctuation stays attached to the chunk it ends, and ellipses (``...``,
    ``…``, ``。。``) and quote markers are never split. A non-blank input
    always yields at least one chunk.
    """
    protected: list[str] = []

    def _protect(match: re.Match[str]) -> str:
        protected.append(match.group(0))
        return f"{_OPEN}{len(protected) - 1}{_CLOSE}"

    text = _RESERVED_RE.sub("", text)
    work = _ATOMIC_RE.sub(_protect, text)
    for pattern, replacement in _SPLIT_RULES:
        work = pattern.sub(replacement, work)

    chunks = []
    for piece in work.split(_SPLIT):
        piece = _PLACEHOLDER_RE.sub(lambda m: protected[int(m.group(1))], piece).strip()
        if piece:
            chunks.append(piece)

    if not chunks and text.strip():
        chunks.append(text.strip())
    return chunks


def segment_response(text: str, emojis: Mapping[str, str]) -> list[DeliveryUnit]:
    """Turn cleaned reply text into delivery units in source order.

    Emoji units carry the resolved resource from *emojis*; unknown names are
    skipped.
    """
    units: list[DeliveryUnit] = []
    for part in split_response(text):
        if part.kind is UnitKind.EMOJI:
            resource = emojis.get(part.payload)
            if resource is None:
                logger.debug("emoji_unresolved", name=part.payload)
                continue
            units.append(DeliveryUnit(UnitKind.EMOJI, resource))
            continue
        units.extend(DeliveryUnit(UnitKind.TEXT, chunk) for chunk in chunk_text(part.payload))
    return units
