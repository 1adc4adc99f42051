"""Persisted records and the store capabilities the pipeline needs."""

from companion.store.jsonl import ConversationStore
from companion.store.memory import InMemoryStore
from companion.store.models import (
    ArchivePrompt,
    CalendarEvent,
    ConversationProfile,
    MemoryFragment,
    Message,
    MessageRole,
    MessageType,
    ReplyRef,
    ScheduledMessage,
)
from companion.store.protocols import ChatStore, Notifier

__all__ = [
    "ArchivePrompt",
    "CalendarEvent",
    "ChatStore",
    "ConversationProfile",
    "ConversationStore",
    "InMemoryStore",
    "MemoryFragment",
    "Message",
    "MessageRole",
    "MessageType",
    "Notifier",
    "ReplyRef",
    "ScheduledMessage",
]
