"""Context builder for assembling chat prompts."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from companion.agent.recall import fragment_month
from companion.store.models import (
    ConversationProfile,
    MemoryFragment,
    Message,
    MessageRole,
    MessageType,
)
from companion.store.protocols import FragmentStore

_PROTOCOL_GUIDE = """### Actions
You may embed these tags in your reply. They are removed before the user sees it.
- [[ACTION:POKE]] poke the user
- [[ACTION:TRANSFER:<amount>]] send the user money (whole number)
- [[ACTION:ADD_EVENT | <title> | <YYYY-MM-DD>]] add a shared calendar event
- [schedule_message | <YYYY-MM-DD HH:MM> | fixed | <content>] message the user later
- [[RECALL:<YYYY-MM>]] look up your detailed memories of a month before answering
- [[QUOTE: <snippet>]] reply to the user's message containing the snippet
- [[SEND_EMOJI: <name>]] send a sticker"""


class ContextBuilder:
    """
    Builds the context (system prompt + messages) for a chat turn.

    The system prompt carries identity, the user profile, the month index of
    archived memories and the action tag guide. History is rendered with
    timestamps and clipped to the profile's context limit.
    """

    def __init__(self, fragments: FragmentStore, emojis: Mapping[str, str] | None = None):
        self.fragments = fragments
        self.emojis = dict(emojis or {})
        self._emoji_names = {url: name for name, url in self.emojis.items()}

    def build_system_prompt(self, profile: ConversationProfile) -> str:
        parts = [
            "[System: Roleplay Configuration]",
            f"### Character\n- Name: {profile.character_name}\n"
            f"- Persona:\n{profile.persona or 'A warm, human-like companion.'}",
            f"### User\n- Name: {profile.user_name}",
            self._memory_section(self.fragments.list_fragments(profile.conversation_id)),
            _PROTOCOL_GUIDE,
        ]
        if self.emojis:
            parts.append("### Stickers\n" + ", ".join(sorted(self.emojis)))
        return "\n\n".join(parts)

    @staticmethod
    def _memory_section(fragments: Sequence[MemoryFragment]) -> str:
        if not fragments:
            return "### Memory\n(No archived memories yet. Respond from the current conversation.)"
        months = sorted({m for m in map(fragment_month, (f.date for f in fragments)) if m})
        return (
            "### Memory\n"
            f"Archived months you can recall: {', '.join(months)}\n"
            "Use [[RECALL:YYYY-MM]] when the user refers to something from one of them."
        )

    def render_message(self, msg: Message) -> str:
        """Render one stored message the way it is shown to the model."""
        stamp = msg.timestamp.strftime("%Y-%m-%d %H:%M")
        if msg.type is MessageType.EMOJI:
            name = self._emoji_names.get(msg.content, msg.content)
            if msg.role is MessageRole.USER:
                return f"[{stamp}] [User sent a sticker: {name}]"
            return f"[{stamp}] [[SEND_EMOJI: {name}]]"
        if msg.type is MessageType.TRANSFER:
            return f"[{stamp}] [transfer: {msg.metadata.get('amount', '?')}]"
        if msg.type is MessageType.TEXT or msg.type is MessageType.SYSTEM:
            return f"[{stamp}] {msg.content}"
        return f"[{stamp}] [{msg.type.value}]"

    def build_history(
        self,
        profile: ConversationProfile,
        history: Sequence[Message],
    ) -> list[dict[str, Any]]:
        visible = [m for m in history if profile.is_visible(m)]
        if profile.context_limit > 0:
            visible = visible[-profile.context_limit:]
        return [
            {"role": m.role.value, "content": self.render_message(m)}
            for m in visible
        ]

    def build_messages(
        self,
        profile: ConversationProfile,
        history: Sequence[Message],
    ) -> list[dict[str, Any]]:
        """
        Build the complete message list for a generation call.

        Args:
            profile: Who is talking and how much history is visible.
            history: Stored conversation history, oldest first.

        Returns:
            System prompt followed by the rendered history.
        """
        return [
            {"role": "system", "content": self.build_system_prompt(profile)},
            *self.build_history(profile, history),
        ]
