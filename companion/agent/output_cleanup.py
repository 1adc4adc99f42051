"""Normalise raw model text before directives are interpreted."""

from __future__ import annotations

import re

# "[2024-03-01 10:00]" style echoes of the history timestamps.
_TIMESTAMP_ECHO_RE = re.compile(r"\[\d{4}[-/年]\d{1,2}[-/月]\d{1,2}[^\]]*?\]")
# "[User sent a sticker: smile]" echoes of how stickers appear in history.
_STICKER_ECHO_RE = re.compile(
    r"\[(?:你|User|用户|System)\s*(?:发送了表情包|sent a sticker)[:：]\s*(.*?)\]",
    re.IGNORECASE,
)


def clean_generation_output(text: str, speaker_name: str | None = None) -> str:
    """Remove history-format echoes the model tends to copy into its reply.

    - bracketed timestamps are dropped;
    - a leading ``<speaker_name>:`` prefix is dropped;
    - sticker echoes are rewritten into ``[[SEND_EMOJI: name]]`` markers.
    """
    text = _TIMESTAMP_ECHO_RE.sub("", text)
    if speaker_name:
        text = re.sub(rf"^\s*{re.escape(speaker_name)}\s*[:：]\s*", "", text)
    text = _STICKER_ECHO_RE.sub(lambda m: f"[[SEND_EMOJI: {m.group(1).strip()}]]", text)
    return text.strip()
