"""Persisted record types for conversations, memories and scheduled work."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageType(str, Enum):
    TEXT = "text"
    EMOJI = "emoji"
    IMAGE = "image"
    TRANSFER = "transfer"
    INTERACTION = "interaction"
    SOCIAL_CARD = "social_card"
    SYSTEM = "system"


@dataclass(frozen=True)
class ReplyRef:
    """Quoted message a delivered chunk replies to."""

    id: int
    content: str
    name: str


@dataclass
class Message:
    """A single chat message. ``id`` is assigned by the store on insert."""

    conversation_id: str
    role: MessageRole
    content: str
    type: MessageType = MessageType.TEXT
    id: int | None = None
    reply_to: ReplyRef | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role.value,
            "type": self.type.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.reply_to is not None:
            data["reply_to"] = asdict(self.reply_to)
        if self.metadata:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        reply = data.get("reply_to")
        return cls(
            id=data.get("id"),
            conversation_id=data["conversation_id"],
            role=MessageRole(data["role"]),
            type=MessageType(data.get("type", MessageType.TEXT.value)),
            content=data.get("content", ""),
            reply_to=ReplyRef(**reply) if isinstance(reply, dict) else None,
            metadata=dict(data.get("metadata") or {}),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True)
class MemoryFragment:
    """Dated summary of one day of conversation. Never mutated once stored."""

    id: str
    date: str
    summary: str
    mood: str = "archive"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScheduledMessage:
    id: str
    conversation_id: str
    content: str
    due_at: datetime
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "content": self.content,
            "due_at": self.due_at.isoformat(),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduledMessage:
        return cls(
            id=data["id"],
            conversation_id=data["conversation_id"],
            content=data["content"],
            due_at=datetime.fromisoformat(data["due_at"]),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    conversation_id: str
    title: str
    date: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ArchivePrompt:
    """Archive template; placeholders are ``${dateStr}``, ``${char.name}``,
    ``${userProfile.name}`` and ``${rawLog}``."""

    id: str
    name: str
    content: str


@dataclass
class ConversationProfile:
    """Who is talking in a conversation and how much history is visible."""

    conversation_id: str
    character_name: str
    user_name: str = "User"
    persona: str = ""
    context_limit: int = 500
    hide_before_id: int | None = None

    def is_visible(self, message: Message) -> bool:
        if self.hide_before_id is None or message.id is None:
            return True
        return message.id >= self.hide_before_id
